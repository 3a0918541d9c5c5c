"""Element counts for the fixed-size value types exposed by the bindings.

Each count is the number of 32-bit float lanes that follow the leading control
word of an instance in linear memory.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType

from wasm_polish.errors import ConfigError, UnknownValueType

DEFAULT_OFFSETS: Mapping[str, int] = MappingProxyType(
    {
        "Matrix2": 4,
        "Matrix2d": 6,
        "Matrix3": 9,
        "Matrix4": 16,
        "Vector2": 2,
        "Vector3": 3,
        "Vector4": 4,
        "Quaternion": 4,
        "Quaternion2": 8,
    }
)


def _validate_entry(name: object, count: object) -> tuple[str, int]:
    if not isinstance(name, str) or not name.isidentifier():
        raise ConfigError(f"Invalid value type name in offset table: {name!r}")
    # bool is an int subclass; reject it explicitly.
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise ConfigError(
            f"Offset table entry {name} must be a positive integer, got {count!r}"
        )
    return name, count


class OffsetTable:
    def __init__(self, entries: Mapping[str, int] | None = None) -> None:
        source = DEFAULT_OFFSETS if entries is None else entries
        self._entries: dict[str, int] = {}
        for name, count in source.items():
            key, value = _validate_entry(name, count)
            self._entries[key] = value

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OffsetTable):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"OffsetTable({self._entries!r})"

    def get(self, name: str) -> int | None:
        return self._entries.get(name)

    def element_count(self, name: str, artifact: str = "glue") -> int:
        count = self._entries.get(name)
        if count is None:
            raise UnknownValueType(artifact, name)
        return count

    def items(self) -> list[tuple[str, int]]:
        return list(self._entries.items())

    def extended(self, extra: Mapping[str, object]) -> OffsetTable:
        """Return a copy with ``extra`` entries added.

        Entries already present may be repeated with the same count but not
        redefined.
        """
        merged = dict(self._entries)
        for name, count in extra.items():
            key, value = _validate_entry(name, count)
            existing = merged.get(key)
            if existing is not None and existing != value:
                raise ConfigError(
                    f"Offset table entry {key} is fixed at {existing}, got {value}"
                )
            merged[key] = value
        return OffsetTable(merged)
