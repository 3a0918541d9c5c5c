"""stderr diagnostics for the polish pipeline."""

from __future__ import annotations

import os
import sys

PREFIX = "[wasm-polish]"


def _quiet() -> bool:
    raw = os.environ.get("WASM_POLISH_QUIET", "").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def note(message: str) -> None:
    if _quiet():
        return
    print(f"{PREFIX} {message}", file=sys.stderr)


def warn(message: str) -> None:
    print(f"{PREFIX} warning: {message}", file=sys.stderr)


def error(message: str) -> None:
    print(f"{PREFIX} error: {message}", file=sys.stderr)
