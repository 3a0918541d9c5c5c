"""Span-based text editing shared by the module, declaration and glue passes."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Edit:
    start: int
    end: int
    replacement: str


class EditBuffer:
    """Collects non-overlapping replacements against one source text.

    Offsets always refer to the original text, so edits can be recorded in any
    order while walking a parsed outline.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self._edits: list[Edit] = []

    def __len__(self) -> int:
        return len(self._edits)

    def replace(self, start: int, end: int, replacement: str) -> None:
        if not 0 <= start <= end <= len(self.text):
            raise ValueError(f"Edit span {start}:{end} outside text")
        for edit in self._edits:
            if start < edit.end and edit.start < end:
                raise ValueError(
                    f"Edit span {start}:{end} overlaps {edit.start}:{edit.end}"
                )
            if start == end == edit.start == edit.end:
                raise ValueError(f"Duplicate insertion at {start}")
        self._edits.append(Edit(start, end, replacement))

    def insert(self, offset: int, text: str) -> None:
        self.replace(offset, offset, text)

    def delete(self, start: int, end: int, *, whole_lines: bool = False) -> None:
        if whole_lines:
            start, end = line_span(self.text, start, end)
        self.replace(start, end, "")

    def apply(self) -> str:
        parts: list[str] = []
        cursor = 0
        for edit in sorted(self._edits, key=lambda item: (item.start, item.end)):
            parts.append(self.text[cursor : edit.start])
            parts.append(edit.replacement)
            cursor = edit.end
        parts.append(self.text[cursor:])
        return "".join(parts)


def line_span(text: str, start: int, end: int) -> tuple[int, int]:
    """Grow ``start:end`` to cover its whole lines when nothing else is on them."""
    line_start = text.rfind("\n", 0, start) + 1
    if text[line_start:start].strip():
        return start, end
    line_end = text.find("\n", end)
    if line_end == -1:
        line_end = len(text)
    if text[end:line_end].strip():
        return start, end
    if line_end < len(text):
        return line_start, line_end + 1
    # Last line: eat the newline that precedes it instead.
    if line_start > 0:
        return line_start - 1, line_end
    return line_start, line_end


def line_indent(text: str, offset: int) -> str:
    line_start = text.rfind("\n", 0, offset) + 1
    prefix = text[line_start:offset]
    return prefix[: len(prefix) - len(prefix.lstrip(" \t"))]
