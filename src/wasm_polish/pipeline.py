"""End-to-end polish run over one ``pkg/`` directory.

Every input is read and every output computed before anything is written, so
a fatal edit leaves the previous artifacts untouched.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from wasm_polish import diagnostics
from wasm_polish.compat import GeneratorVersion, check_generator
from wasm_polish.config import PolishConfig
from wasm_polish.declarations import DeclarationRewrite, OutputMethod, rewrite_declarations
from wasm_polish.errors import IOFailure, RequiredPatternMissing
from wasm_polish.glue import GlueRewrite, rewrite_glue
from wasm_polish.module import ModuleEdits, is_wasm_binary, transform
from wasm_polish.toolchain import Binaryen, Toolchain


@dataclass(frozen=True)
class Artifacts:
    pkg_dir: Path
    name: str

    @property
    def binary(self) -> Path:
        return self.pkg_dir / f"{self.name}_bg.wasm"

    @property
    def module_text(self) -> Path:
        return self.pkg_dir / f"{self.name}_bg.wast"

    @property
    def declarations(self) -> Path:
        return self.pkg_dir / f"{self.name}.d.ts"

    @property
    def internal_declarations(self) -> Path:
        return self.pkg_dir / f"{self.name}_bg.d.ts"

    @property
    def glue(self) -> Path:
        return self.pkg_dir / f"{self.name}.js"

    @property
    def split_glue(self) -> Path:
        return self.pkg_dir / f"{self.name}.split.js"

    @property
    def module_import(self) -> str:
        return f"./{self.name}_bg"


@dataclass
class PolishReport:
    generator: GeneratorVersion | None
    module: ModuleEdits
    accessors: list[str] = field(default_factory=list)
    out_methods: list[OutputMethod] = field(default_factory=list)
    outputs: dict[Path, int] = field(default_factory=dict)
    written: bool = False


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise IOFailure(path, "source artifact not found") from exc
    except OSError as exc:
        raise IOFailure(path, str(exc)) from exc


def _read_text(path: Path) -> str:
    try:
        return _read_bytes(path).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise IOFailure(path, f"not valid UTF-8 text: {exc}") from exc


def check_consistency(declarations: DeclarationRewrite, glue: GlueRewrite) -> None:
    """Both artifacts must have received the same accessor and out-parameter edits."""
    declared = set(declarations.accessors)
    rewritten = set(glue.accessors)
    if declared != rewritten:
        only_decl = sorted(declared - rewritten)
        only_glue = sorted(rewritten - declared)
        raise RequiredPatternMissing(
            "declarations/glue",
            "elements accessor",
            f"declarations only: {only_decl or '-'}; glue only: {only_glue or '-'}",
        )
    declared_methods = {(m.qualified, m.type) for m in declarations.out_methods}
    rewritten_methods = {(m.qualified, m.type) for m in glue.out_methods}
    if declared_methods != rewritten_methods:
        mismatch = sorted(declared_methods ^ rewritten_methods)
        detail = ", ".join(f"{name}: {type_name}" for name, type_name in mismatch)
        raise RequiredPatternMissing(
            "declarations/glue", "output-parameter method", f"mismatched: {detail}"
        )


def write_outputs(pkg_dir: Path, outputs: dict[Path, bytes]) -> None:
    """Stage every artifact next to its destination, then move them into place."""
    try:
        staging = tempfile.TemporaryDirectory(prefix=".wasm-polish-", dir=pkg_dir)
    except OSError as exc:
        raise IOFailure(pkg_dir, f"cannot stage outputs: {exc}") from exc
    with staging as tmp:
        staged: list[tuple[Path, Path]] = []
        for index, (target, data) in enumerate(outputs.items()):
            path = Path(tmp) / f"{index}-{target.name}"
            try:
                path.write_bytes(data)
            except OSError as exc:
                raise IOFailure(target, f"cannot write: {exc}") from exc
            staged.append((path, target))
        for path, target in staged:
            try:
                path.replace(target)
            except OSError as exc:
                raise IOFailure(target, f"cannot replace: {exc}") from exc


def polish(
    config: PolishConfig,
    toolchain: Toolchain | None = None,
    *,
    dry_run: bool = False,
) -> PolishReport:
    generator = check_generator(config)
    artifacts = Artifacts(config.pkg_dir, config.out_name)

    binary = _read_bytes(artifacts.binary)
    if not is_wasm_binary(binary):
        raise IOFailure(artifacts.binary, "not a wasm module")
    glue_text = _read_text(artifacts.glue)
    declarations_text = _read_text(artifacts.declarations)
    internal_text = _read_text(artifacts.internal_declarations)

    if toolchain is None:
        toolchain = Binaryen.discover(config.optimize_flags)
    module = transform(binary, toolchain)
    if module.edits.dead_branches == 0:
        diagnostics.note("no dead bounds-check branches found; module left as is")
    diagnostics.note(
        f"module: removed {module.edits.dead_branches} dead branches, "
        f"{len(module.edits.stubs)} stubs, {len(module.edits.exports)} exports"
    )

    declarations = rewrite_declarations(declarations_text)
    header = config.header
    variants = rewrite_glue(
        glue_text,
        config.offsets,
        module.binary,
        header,
        artifacts.module_import,
        config.internal_init,
    )
    check_consistency(declarations, variants.body)
    diagnostics.note(
        f"bindings: {len(variants.body.accessors)} accessors, "
        f"{len(variants.body.out_methods)} output-parameter methods"
    )

    outputs: dict[Path, bytes] = {
        artifacts.binary: module.binary,
        artifacts.module_text: module.text.encode("utf-8"),
        artifacts.declarations: (header + declarations.text).encode("utf-8"),
        artifacts.glue: variants.inlined.encode("utf-8"),
        artifacts.split_glue: variants.split.encode("utf-8"),
        artifacts.internal_declarations: (header + internal_text).encode("utf-8"),
    }
    report = PolishReport(
        generator=generator,
        module=module.edits,
        accessors=variants.body.accessors,
        out_methods=variants.body.out_methods,
        outputs={path: len(data) for path, data in outputs.items()},
    )
    if dry_run:
        return report
    write_outputs(artifacts.pkg_dir, outputs)
    report.written = True
    for path in outputs:
        diagnostics.note(f"wrote {path}")
    return report
