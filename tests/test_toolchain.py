from __future__ import annotations

import shutil
import stat
from pathlib import Path

import pytest

from wasm_polish.errors import RoundTripFailure, ToolchainError
from wasm_polish.module import is_wasm_binary, transform
from wasm_polish.toolchain import DEFAULT_OPTIMIZE_FLAGS, Binaryen, _find_tool

HAVE_BINARYEN = all(shutil.which(tool) for tool in ("wasm-opt", "wasm-dis", "wasm-as"))

STUB_MODULE = """\
(module
 (type $0 (func (param i32 i32)))
 (memory $0 1)
 (export "memory" (memory $0))
 (export "vector3_elements" (func $vector3_elements))
 (export "vector3_copy" (func $vector3_copy))
 (func $vector3_copy (type $0) (param $0 i32) (param $1 i32)
  (local $2 i32)
  (block $label$0
   (br_if $label$0
    (i32.eq
     (local.tee $2
      (i32.load
       (local.get $0)
      )
     )
     (i32.const -1)
    )
   )
   (i32.store
    (local.get $0)
    (local.get $2)
   )
  )
 )
 (func $vector3_elements (type $0) (param $0 i32) (param $1 i32)
  (unreachable)
 )
)
"""


def _script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


def test_env_override_points_at_tool(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    tool = _script(tmp_path / "my-wasm-opt", "exit 0\n")
    monkeypatch.setenv("WASM_POLISH_WASM_OPT", str(tool))
    assert _find_tool("wasm-opt") == str(tool)


def test_discover_lists_every_missing_tool(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PATH", str(tmp_path))
    for var in ("WASM_POLISH_WASM_OPT", "WASM_POLISH_WASM_DIS", "WASM_POLISH_WASM_AS"):
        monkeypatch.delenv(var, raising=False)
    with pytest.raises(ToolchainError) as excinfo:
        Binaryen.discover()
    message = str(excinfo.value)
    assert "wasm-opt, wasm-dis, wasm-as not found" in message
    assert "WASM_POLISH_WASM_AS" in message


def test_optimizer_failure_is_a_toolchain_error(tmp_path: Path) -> None:
    failing = _script(tmp_path / "wasm-opt", "echo 'bad input' >&2\nexit 1\n")
    binaryen = Binaryen(str(failing), "wasm-dis", "wasm-as")
    with pytest.raises(ToolchainError, match="wasm-opt failed: bad input"):
        binaryen.optimize(b"\x00asm\x01\x00\x00\x00")


def test_assembler_failure_is_a_round_trip_failure(tmp_path: Path) -> None:
    failing = _script(tmp_path / "wasm-as", "echo 'unknown operator' >&2\nexit 1\n")
    binaryen = Binaryen("wasm-opt", "wasm-dis", str(failing))
    with pytest.raises(RoundTripFailure, match="unknown operator"):
        binaryen.parse_text("(module)")


def _recording_optimizer(tmp_path: Path) -> tuple[Path, Path]:
    log = tmp_path / "args.txt"
    # Copy input to output and record the argument list.
    recorder = _script(
        tmp_path / "wasm-opt",
        f'echo "$@" > {log}\n'
        'while [ "$#" -gt 0 ]; do\n'
        '  if [ "$1" = "-o" ]; then cp "$in" "$2"; fi\n'
        '  case "$1" in *.wasm) [ -z "$in" ] && in="$1";; esac\n'
        "  shift\n"
        "done\n",
    )
    return recorder, log


def test_optimizer_receives_default_flags_with_names(tmp_path: Path) -> None:
    recorder, log = _recording_optimizer(tmp_path)
    binaryen = Binaryen(str(recorder), "wasm-dis", "wasm-as")
    data = b"\x00asm\x01\x00\x00\x00"
    assert binaryen.optimize(data) == data
    args = log.read_text(encoding="utf-8").split()
    assert "-g" in DEFAULT_OPTIMIZE_FLAGS
    assert args[1:-2] == list(DEFAULT_OPTIMIZE_FLAGS)
    assert args[-2] == "-o"


def test_configured_optimizer_flags_replace_the_defaults(tmp_path: Path) -> None:
    recorder, log = _recording_optimizer(tmp_path)
    binaryen = Binaryen(str(recorder), "wasm-dis", "wasm-as", optimize_flags=("-O1",))
    binaryen.optimize(b"\x00asm\x01\x00\x00\x00")
    args = log.read_text(encoding="utf-8").split()
    assert args[1:-2] == ["-O1"]
    assert "-g" not in args


@pytest.mark.skipif(not HAVE_BINARYEN, reason="binaryen not installed")
def test_real_binaryen_round_trip() -> None:
    binaryen = Binaryen.discover()
    binary = binaryen.parse_text(STUB_MODULE)
    result = transform(binary, binaryen)
    assert is_wasm_binary(result.binary)
    assert result.edits.stubs == ["$vector3_elements"]
    assert result.edits.exports == ["vector3_elements"]
    assert "vector3_elements" not in binaryen.emit_text(result.binary)
