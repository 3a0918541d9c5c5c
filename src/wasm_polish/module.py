"""Module transformer: optimize, prune generated stubs, re-emit.

The pruning works on the s-expression tree of the module text. Every deletion
is a whole node, located by kind and shape rather than by formatting.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from wasm_polish.edits import EditBuffer
from wasm_polish.errors import RoundTripFailure, SExprError
from wasm_polish.sexpr import Atom, SList, parse_module
from wasm_polish.toolchain import Toolchain

WASM_MAGIC = b"\x00asm"
WASM_VERSION = b"\x01\x00\x00\x00"
STUB_SUFFIX = "_elements"

_TEE = {"local.tee", "tee_local"}
_GET = {"local.get", "get_local"}
_FUNC_HEADER = {"type", "param", "result", "local", "export", "import"}


@dataclass
class ModuleEdits:
    dead_branches: int = 0
    stubs: list[str] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.dead_branches or self.stubs or self.exports)


@dataclass(frozen=True)
class ModuleTransform:
    binary: bytes
    text: str
    edits: ModuleEdits


def is_wasm_binary(data: bytes) -> bool:
    return data[:4] == WASM_MAGIC and data[4:8] == WASM_VERSION


def _atom(node: object, text: str | None = None) -> bool:
    if not isinstance(node, Atom):
        return False
    return text is None or node.text == text


def _is_dead_branch(node: SList) -> bool:
    """Match ``(br_if $l (i32.eq (local.tee $n (i32.load (local.get $m))) (i32.const -1)))``."""
    if node.head != "br_if" or len(node.items) != 3:
        return False
    label, cond = node.items[1], node.items[2]
    if not _atom(label) or not isinstance(cond, SList):
        return False
    if cond.head != "i32.eq" or len(cond.items) != 3:
        return False
    tee, sentinel = cond.items[1], cond.items[2]
    if not isinstance(sentinel, SList) or len(sentinel.items) != 2:
        return False
    if sentinel.head != "i32.const" or not _atom(sentinel.items[1], "-1"):
        return False
    if not isinstance(tee, SList) or tee.head not in _TEE or len(tee.items) != 3:
        return False
    load = tee.items[2]
    if not _atom(tee.items[1]) or not isinstance(load, SList):
        return False
    if load.head != "i32.load" or len(load.items) != 2:
        return False
    get = load.items[1]
    return (
        isinstance(get, SList)
        and get.head in _GET
        and len(get.items) == 2
        and _atom(get.items[1])
    )


def _func_name(func: SList) -> str | None:
    if len(func.items) > 1:
        name = func.items[1]
        if isinstance(name, Atom) and name.text.startswith("$"):
            return name.value
    return None


def _split_func(func: SList) -> tuple[list[SList], list[object]]:
    header: list[SList] = []
    body: list[object] = []
    for item in func.items[1:]:
        if not body and isinstance(item, Atom) and item.text.startswith("$"):
            continue
        if not body and isinstance(item, SList) and item.head in _FUNC_HEADER:
            header.append(item)
            continue
        body.append(item)
    return header, body


def _param_types(header: list[SList]) -> list[str]:
    types: list[str] = []
    for item in header:
        if item.head != "param":
            continue
        for arg in item.args:
            if isinstance(arg, Atom) and not arg.text.startswith("$"):
                types.append(arg.text)
    return types


def _is_unreachable(node: object) -> bool:
    if isinstance(node, Atom):
        return node.text == "unreachable"
    return isinstance(node, SList) and node.head == "unreachable" and len(node.items) == 1


def _inline_exports(header: list[SList]) -> list[str]:
    names: list[str] = []
    for item in header:
        if item.head == "export" and len(item.items) == 2:
            target = item.items[1]
            if isinstance(target, Atom) and target.is_string:
                names.append(target.value)
    return names


def _is_stub(func: SList, exported_as: list[str]) -> bool:
    name = _func_name(func) or ""
    header, body = _split_func(func)
    if not (
        name.endswith(STUB_SUFFIX)
        or any(export.endswith(STUB_SUFFIX) for export in exported_as)
        or any(export.endswith(STUB_SUFFIX) for export in _inline_exports(header))
    ):
        return False
    if any(item.head in {"result", "import"} for item in header):
        return False
    if _param_types(header) != ["i32", "i32"]:
        return False
    return bool(body) and _is_unreachable(body[-1])


def _export_target(export: SList) -> tuple[str, str] | None:
    if len(export.items) != 3:
        return None
    name, desc = export.items[1], export.items[2]
    if not isinstance(name, Atom) or not name.is_string:
        return None
    if not isinstance(desc, SList) or desc.head != "func" or len(desc.items) != 2:
        return None
    target = desc.items[1]
    if not isinstance(target, Atom):
        return None
    return name.value, target.value


_CALLS = {"call", "return_call", "ref.func"}


def _elem_targets(elem: SList, inline: bool) -> list[Atom]:
    # A segment id comes before the offset or the ``func`` keyword; the
    # function indices follow them. Inline table segments hold only indices.
    targets: list[Atom] = []
    seen_prefix = inline
    for item in elem.args:
        if isinstance(item, SList) or _atom(item, "func"):
            seen_prefix = True
        elif seen_prefix and isinstance(item, Atom) and item.text.startswith("$"):
            targets.append(item)
    return targets


def _function_references(module: SList) -> list[Atom]:
    """Atoms that name a function: call operands, table entries, start and exports.

    Locals, labels and globals share the ``$0`` numbering with functions in
    nameless modules, so only these positions count.
    """
    refs: list[Atom] = []
    for node in module.walk():
        if not isinstance(node, SList):
            continue
        for op, operand in zip(node.items[1:], node.items[2:]):
            # Flat instruction sequences: `call $f` as sibling atoms.
            if _atom(op) and op.text in _CALLS and _atom(operand):
                refs.append(operand)
        head = node.head
        if head in _CALLS or head == "start":
            if len(node.items) > 1 and _atom(node.items[1]):
                refs.append(node.items[1])
        elif head == "elem":
            refs.extend(_elem_targets(node, inline=False))
        elif head == "table":
            for elem in node.children("elem"):
                refs.extend(_elem_targets(elem, inline=True))
        elif head == "export":
            for desc in node.children("func"):
                if len(desc.items) == 2 and _atom(desc.items[1]):
                    refs.append(desc.items[1])
    return refs


def _check_references(text: str, removed: set[str]) -> None:
    if not removed:
        return
    try:
        module = parse_module(text)
    except SExprError as exc:
        raise RoundTripFailure(f"Edited module text is malformed: {exc}") from exc
    for ref in _function_references(module):
        if ref.value in removed:
            raise RoundTripFailure(
                f"Removed function {ref.value} is still referenced at offset {ref.start}"
            )


def strip_module_text(text: str) -> tuple[str, ModuleEdits]:
    """Delete dead bounds checks, ``*_elements`` stubs and their exports."""
    try:
        module = parse_module(text)
    except SExprError as exc:
        raise RoundTripFailure(f"Module text is malformed: {exc}") from exc

    buffer = EditBuffer(text)
    edits = ModuleEdits()

    exports: list[tuple[SList, str, str]] = []
    exported_as: dict[str, list[str]] = {}
    for export in module.children("export"):
        target = _export_target(export)
        if target is None:
            continue
        exports.append((export, *target))
        exported_as.setdefault(target[1], []).append(target[0])

    removed: set[str] = set()
    removed_spans: list[tuple[int, int]] = []
    for func in module.children("func"):
        name = _func_name(func)
        if name is None or not _is_stub(func, exported_as.get(name, [])):
            continue
        buffer.delete(func.start, func.end, whole_lines=True)
        removed.add(name)
        removed_spans.append((func.start, func.end))
        edits.stubs.append(name)
        edits.exports.extend(_inline_exports(_split_func(func)[0]))

    for export, export_name, target in exports:
        if export_name.endswith(STUB_SUFFIX) or target in removed:
            buffer.delete(export.start, export.end, whole_lines=True)
            edits.exports.append(export_name)

    for node in module.walk():
        if not isinstance(node, SList) or not _is_dead_branch(node):
            continue
        if any(start <= node.start < end for start, end in removed_spans):
            continue
        buffer.delete(node.start, node.end, whole_lines=True)
        edits.dead_branches += 1

    edited = buffer.apply()
    try:
        parse_module(edited)
    except SExprError as exc:
        raise RoundTripFailure(f"Edited module text is malformed: {exc}") from exc
    _check_references(edited, removed)
    return edited, edits


def transform(binary: bytes, toolchain: Toolchain) -> ModuleTransform:
    optimized = toolchain.optimize(binary)
    text = toolchain.emit_text(optimized)
    edited, edits = strip_module_text(text)
    final = toolchain.parse_text(edited)
    if not is_wasm_binary(final):
        raise RoundTripFailure("Assembled module is missing the wasm header")
    return ModuleTransform(binary=final, text=edited, edits=edits)
