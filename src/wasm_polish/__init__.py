"""wasm-polish: post-build packaging pass for wasm-bindgen output."""

from __future__ import annotations

from wasm_polish.declarations import rewrite_declarations
from wasm_polish.glue import rewrite_glue
from wasm_polish.module import transform
from wasm_polish.offsets import DEFAULT_OFFSETS, OffsetTable

__all__ = [
    "DEFAULT_OFFSETS",
    "OffsetTable",
    "rewrite_declarations",
    "rewrite_glue",
    "transform",
]
