"""Project configuration and package metadata.

Settings live in the crate manifest under ``[package.metadata.wasm-polish]``;
package identity comes from ``package.json`` when the project has one and from
the ``[package]`` table of ``Cargo.toml`` otherwise.
"""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wasm_polish.errors import ConfigError
from wasm_polish.glue import INTERNAL_INIT
from wasm_polish.offsets import OffsetTable
from wasm_polish.toolchain import DEFAULT_OPTIMIZE_FLAGS

METADATA_KEY = "wasm-polish"
DEFAULT_PKG_DIR = "pkg"
_KNOWN_KEYS = {
    "pkg-dir",
    "out-name",
    "internal-init-name",
    "copyright",
    "generator-version",
    "skip-generator-check",
    "optimize-flags",
    "offsets",
}


@dataclass(frozen=True)
class PackageMetadata:
    name: str
    version: str
    author: str | None = None
    license: str | None = None


@dataclass
class PolishConfig:
    project_root: Path
    pkg_dir: Path
    out_name: str
    metadata: PackageMetadata
    offsets: OffsetTable = field(default_factory=OffsetTable)
    internal_init: str = INTERNAL_INIT
    copyright: str | None = None
    generator_version: str | None = None
    skip_generator_check: bool = False
    optimize_flags: tuple[str, ...] = DEFAULT_OPTIMIZE_FLAGS
    cargo: dict[str, Any] = field(default_factory=dict)

    @property
    def header(self) -> str:
        return license_header(self.metadata, self.copyright)


def load_toml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


def _author_text(raw: object) -> str | None:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    if isinstance(raw, dict):
        name = str(raw.get("name", "")).strip()
        email = str(raw.get("email", "")).strip()
        if name and email:
            return f"{name} <{email}>"
        return name or None
    if isinstance(raw, list) and raw:
        return ", ".join(filter(None, (_author_text(item) for item in raw))) or None
    return None


def load_metadata(project_root: Path, cargo: dict[str, Any]) -> PackageMetadata:
    npm = _load_json(project_root / "package.json")
    crate = cargo.get("package", {})
    name = npm.get("name") or crate.get("name")
    version = npm.get("version") or crate.get("version")
    if not isinstance(name, str) or not name:
        raise ConfigError("Package name missing from package.json and Cargo.toml")
    if not isinstance(version, str) or not version:
        raise ConfigError("Package version missing from package.json and Cargo.toml")
    author = _author_text(npm.get("author")) or _author_text(crate.get("authors"))
    license_name = npm.get("license") or crate.get("license")
    return PackageMetadata(
        name=name,
        version=version,
        author=author,
        license=license_name if isinstance(license_name, str) else None,
    )


def license_header(metadata: PackageMetadata, copyright: str | None = None) -> str:
    lines = ["/**", f" * @license {metadata.name} v{metadata.version}"]
    holder = copyright or metadata.author
    if holder:
        lines.append(f" * Copyright (c) {holder}.")
    if metadata.license:
        lines.extend(
            [
                " *",
                f" * This source code is licensed under the {metadata.license} license found in the",
                " * LICENSE file in the root directory of this source tree.",
            ]
        )
    lines.append(" */")
    return "\n".join(lines) + "\n"


def _settings(cargo: dict[str, Any]) -> dict[str, Any]:
    settings = cargo.get("package", {}).get("metadata", {}).get(METADATA_KEY, {})
    if not isinstance(settings, dict):
        raise ConfigError(f"[package.metadata.{METADATA_KEY}] must be a table")
    unknown = sorted(set(settings) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(
            f"Unknown [package.metadata.{METADATA_KEY}] keys: {', '.join(unknown)}"
        )
    return settings


def _string_setting(settings: dict[str, Any], key: str) -> str | None:
    value = settings.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} must be a non-empty string")
    return value.strip()


def load_config(
    project_root: Path,
    *,
    pkg_dir: str | None = None,
    out_name: str | None = None,
    skip_generator_check: bool | None = None,
) -> PolishConfig:
    """Build the effective configuration; keyword arguments override the manifest."""
    project_root = project_root.resolve()
    cargo = load_toml(project_root / "Cargo.toml")
    settings = _settings(cargo)
    metadata = load_metadata(project_root, cargo)

    crate_name = cargo.get("package", {}).get("name") or metadata.name
    name = out_name or _string_setting(settings, "out-name")
    if name is None:
        name = crate_name.replace("-", "_")

    flags = settings.get("optimize-flags", list(DEFAULT_OPTIMIZE_FLAGS))
    if not isinstance(flags, list) or not all(isinstance(flag, str) for flag in flags):
        raise ConfigError("optimize-flags must be a list of strings")

    extra_offsets = settings.get("offsets", {})
    if not isinstance(extra_offsets, dict):
        raise ConfigError("offsets must be a table of TypeName = count")

    skip = settings.get("skip-generator-check", False)
    if not isinstance(skip, bool):
        raise ConfigError("skip-generator-check must be a boolean")
    if skip_generator_check is not None:
        skip = skip_generator_check

    internal_init = _string_setting(settings, "internal-init-name") or INTERNAL_INIT
    if not internal_init.isidentifier():
        raise ConfigError(f"internal-init-name is not an identifier: {internal_init}")

    pkg = pkg_dir or _string_setting(settings, "pkg-dir") or DEFAULT_PKG_DIR
    return PolishConfig(
        project_root=project_root,
        pkg_dir=(project_root / pkg).resolve(),
        out_name=name,
        metadata=metadata,
        offsets=OffsetTable().extended(extra_offsets),
        internal_init=internal_init,
        copyright=_string_setting(settings, "copyright"),
        generator_version=_string_setting(settings, "generator-version"),
        skip_generator_check=skip,
        optimize_flags=tuple(flags),
        cargo=cargo,
    )
