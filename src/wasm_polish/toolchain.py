"""binaryen command line tools behind the optimize / text / binary contract."""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Protocol, Sequence

from wasm_polish.errors import RoundTripFailure, ToolchainError

# Run the default pass pipeline, but at level zero with no shrinking: later
# edits depend on a canonical text shape, not on a minified one. -g keeps the
# names section so the text form carries function names; configured flags
# replace the whole set.
DEFAULT_OPTIMIZE_FLAGS: tuple[str, ...] = (
    "-O",
    "--optimize-level",
    "0",
    "--shrink-level",
    "0",
    "-g",
)

TOOL_ENV = {
    "wasm-opt": "WASM_POLISH_WASM_OPT",
    "wasm-dis": "WASM_POLISH_WASM_DIS",
    "wasm-as": "WASM_POLISH_WASM_AS",
}


class Toolchain(Protocol):
    def optimize(self, binary: bytes) -> bytes: ...

    def emit_text(self, binary: bytes) -> str: ...

    def parse_text(self, text: str) -> bytes: ...


def _find_tool(name: str) -> str | None:
    override = os.environ.get(TOOL_ENV[name], "").strip()
    if override:
        return override if Path(override).exists() else shutil.which(override)
    return shutil.which(name)


def _failure_detail(res: subprocess.CompletedProcess[str]) -> str:
    err = res.stderr.strip() or res.stdout.strip()
    return err or f"exit status {res.returncode}"


class Binaryen:
    def __init__(
        self,
        wasm_opt: str,
        wasm_dis: str,
        wasm_as: str,
        optimize_flags: Sequence[str] = DEFAULT_OPTIMIZE_FLAGS,
    ) -> None:
        self.wasm_opt = wasm_opt
        self.wasm_dis = wasm_dis
        self.wasm_as = wasm_as
        self.optimize_flags = tuple(optimize_flags)

    @classmethod
    def discover(
        cls, optimize_flags: Sequence[str] = DEFAULT_OPTIMIZE_FLAGS
    ) -> Binaryen:
        found: dict[str, str] = {}
        missing: list[str] = []
        for name in TOOL_ENV:
            path = _find_tool(name)
            if path is None:
                missing.append(name)
            else:
                found[name] = path
        if missing:
            raise ToolchainError(
                f"{', '.join(missing)} not found; install binaryen or set "
                + ", ".join(TOOL_ENV[name] for name in missing)
            )
        return cls(
            found["wasm-opt"], found["wasm-dis"], found["wasm-as"], optimize_flags
        )

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(cmd, capture_output=True, text=True)
        except OSError as exc:
            raise ToolchainError(f"Failed to run {cmd[0]}: {exc}") from exc

    def optimize(self, binary: bytes) -> bytes:
        with tempfile.TemporaryDirectory(prefix="wasm-polish-") as tmp:
            source = Path(tmp) / "input.wasm"
            target = Path(tmp) / "optimized.wasm"
            source.write_bytes(binary)
            cmd = [self.wasm_opt, str(source), *self.optimize_flags]
            res = self._run([*cmd, "-o", str(target)])
            if res.returncode != 0:
                raise ToolchainError(f"wasm-opt failed: {_failure_detail(res)}")
            return target.read_bytes()

    def emit_text(self, binary: bytes) -> str:
        with tempfile.TemporaryDirectory(prefix="wasm-polish-") as tmp:
            source = Path(tmp) / "module.wasm"
            target = Path(tmp) / "module.wast"
            source.write_bytes(binary)
            res = self._run([self.wasm_dis, str(source), "-o", str(target)])
            if res.returncode != 0:
                raise ToolchainError(f"wasm-dis failed: {_failure_detail(res)}")
            return target.read_text(encoding="utf-8")

    def parse_text(self, text: str) -> bytes:
        with tempfile.TemporaryDirectory(prefix="wasm-polish-") as tmp:
            source = Path(tmp) / "module.wast"
            target = Path(tmp) / "module.wasm"
            source.write_text(text, encoding="utf-8")
            res = self._run([self.wasm_as, str(source), "-o", str(target)])
            if res.returncode != 0:
                raise RoundTripFailure(
                    f"Edited module text failed to assemble: {_failure_detail(res)}"
                )
            return target.read_bytes()
