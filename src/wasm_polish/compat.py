"""Bindings generator compatibility gate.

The rewrite rules key on the exact output shape of one generator: the
``*_elements`` stub names, the ``out`` parameter documentation and the
``init(module)`` loader. Runs against an unrecognized generator version are
refused instead of silently emitting wrong output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from wasm_polish import diagnostics
from wasm_polish.config import PolishConfig, load_toml
from wasm_polish.errors import GeneratorCompatibilityError

GENERATOR = "wasm-bindgen"
# Inclusive lower bound, exclusive upper bound.
SUPPORTED_RANGE: tuple[tuple[int, int, int], tuple[int, int, int]] = (
    (0, 2, 25),
    (0, 2, 40),
)
VersionSource = Literal["config", "Cargo.lock", "Cargo.toml"]

_VERSION_RE = re.compile(r"^\s*=?\s*v?(\d+)\.(\d+)\.(\d+)")
# Cargo reads a bare "X.Y.Z" as "^X.Y.Z"; only "=X.Y.Z" pins one release.
_PIN_RE = re.compile(r"^\s*=\s*v?\d+\.\d+\.\d+\s*$")


@dataclass(frozen=True)
class GeneratorVersion:
    version: tuple[int, int, int]
    source: VersionSource

    @property
    def text(self) -> str:
        return ".".join(str(part) for part in self.version)


def parse_version(raw: str) -> tuple[int, int, int] | None:
    """Parse an exact ``X.Y.Z`` version, optionally written as ``=X.Y.Z``."""
    match = _VERSION_RE.match(raw)
    if match is None:
        return None
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


def is_supported(version: tuple[int, int, int]) -> bool:
    low, high = SUPPORTED_RANGE
    return low <= version < high


def _lockfile_version(project_root: Path) -> str | None:
    lock = load_toml(project_root / "Cargo.lock")
    for package in lock.get("package", []):
        if package.get("name") == GENERATOR:
            version = package.get("version")
            if isinstance(version, str):
                return version
    return None


def _manifest_requirement(cargo: dict[str, Any]) -> str | None:
    for table in ("dependencies", "build-dependencies"):
        requirement = cargo.get(table, {}).get(GENERATOR)
        if isinstance(requirement, dict):
            requirement = requirement.get("version")
        if isinstance(requirement, str):
            return requirement
    return None


def resolve_generator_version(config: PolishConfig) -> GeneratorVersion | None:
    candidates: list[tuple[str | None, VersionSource]] = [
        (config.generator_version, "config"),
        (_lockfile_version(config.project_root), "Cargo.lock"),
        (_manifest_requirement(config.cargo), "Cargo.toml"),
    ]
    for raw, source in candidates:
        if raw is None:
            continue
        if source == "Cargo.toml" and not _PIN_RE.match(raw):
            continue
        version = parse_version(raw)
        if version is not None:
            return GeneratorVersion(version, source)
        if source == "config":
            raise GeneratorCompatibilityError(
                f"generator-version {raw!r} is not an exact X.Y.Z version"
            )
    return None


def check_generator(config: PolishConfig) -> GeneratorVersion | None:
    low, high = (".".join(map(str, bound)) for bound in SUPPORTED_RANGE)
    resolved = resolve_generator_version(config)
    if resolved is not None and is_supported(resolved.version):
        return resolved
    if resolved is None:
        detail = (
            f"could not determine the {GENERATOR} version "
            "(no Cargo.lock entry, no exact Cargo.toml requirement, "
            "no generator-version setting)"
        )
    else:
        detail = (
            f"{GENERATOR} {resolved.text} (from {resolved.source}) is outside "
            f"the supported range >={low},<{high}"
        )
    if config.skip_generator_check:
        diagnostics.warn(f"{detail}; continuing because the check is skipped")
        return resolved
    raise GeneratorCompatibilityError(detail)
