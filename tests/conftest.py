from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from wasm_polish.errors import RoundTripFailure
from wasm_polish.module import WASM_MAGIC, WASM_VERSION
from wasm_polish.sexpr import parse_module

FIXTURES = Path(__file__).resolve().parent / "fixtures" / "bindgen"
NAME = "gl_matrix_wasm"

CARGO_TOML = """\
[package]
name = "gl-matrix-wasm"
version = "0.5.1"
authors = ["Jane Roe <jane@example.com>"]
license = "MIT"

[lib]
crate-type = ["cdylib"]

[dependencies]
wasm-bindgen = "=0.2.29"
"""


class FakeToolchain:
    """Text-backed stand-in for binaryen.

    A "binary" is the wasm header followed by the UTF-8 module text, so the
    optimize, disassemble and assemble steps are plain byte/text conversions.
    """

    def __init__(self, reject_text: bool = False) -> None:
        self.reject_text = reject_text
        self.calls: list[str] = []

    def optimize(self, binary: bytes) -> bytes:
        self.calls.append("optimize")
        return binary

    def emit_text(self, binary: bytes) -> str:
        self.calls.append("emit_text")
        return binary[8:].decode("utf-8")

    def parse_text(self, text: str) -> bytes:
        self.calls.append("parse_text")
        if self.reject_text:
            raise RoundTripFailure("Edited module text failed to assemble: rejected")
        parse_module(text)
        return encode_module(text)


def encode_module(text: str) -> bytes:
    return WASM_MAGIC + WASM_VERSION + text.encode("utf-8")


def fixture_text(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def glue_text() -> str:
    return fixture_text(f"{NAME}.js")


@pytest.fixture
def declarations_text() -> str:
    return fixture_text(f"{NAME}.d.ts")


@pytest.fixture
def module_text() -> str:
    return fixture_text(f"{NAME}_bg.wast")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A crate checkout with freshly generated bindings under ``pkg/``."""
    (tmp_path / "Cargo.toml").write_text(CARGO_TOML, encoding="utf-8")
    pkg = tmp_path / "pkg"
    pkg.mkdir()
    for suffix in (".js", ".d.ts", "_bg.d.ts"):
        shutil.copyfile(FIXTURES / f"{NAME}{suffix}", pkg / f"{NAME}{suffix}")
    (pkg / f"{NAME}_bg.wasm").write_bytes(
        encode_module(fixture_text(f"{NAME}_bg.wast"))
    )
    return tmp_path
