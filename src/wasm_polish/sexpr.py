"""S-expression reader for the module text form.

The reader keeps source offsets on every node so that callers can edit the
original text span-by-span and leave everything they did not touch byte for
byte intact.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from wasm_polish.errors import SExprError

_DELIMITERS = frozenset(" \t\r\n()\";")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "'": "'", "\\": "\\"}


@dataclass
class Atom:
    text: str
    start: int
    end: int

    @property
    def is_string(self) -> bool:
        return self.text.startswith('"')

    @property
    def value(self) -> str:
        """The atom with string quoting removed."""
        if self.is_string:
            return _unquote(self.text[1:-1])
        if self.text.startswith('$"'):
            return "$" + _unquote(self.text[2:-1])
        return self.text


@dataclass
class SList:
    items: list[Node] = field(default_factory=list)
    start: int = 0
    end: int = 0

    @property
    def head(self) -> str | None:
        if self.items and isinstance(self.items[0], Atom):
            first = self.items[0]
            if not first.is_string:
                return first.text
        return None

    @property
    def args(self) -> list[Node]:
        return self.items[1:]

    def children(self, head: str | None = None) -> Iterator[SList]:
        for item in self.items:
            if isinstance(item, SList) and (head is None or item.head == head):
                yield item

    def walk(self) -> Iterator[Node]:
        """Depth-first walk over this list and everything below it."""
        stack: list[Node] = [self]
        while stack:
            node = stack.pop()
            yield node
            if isinstance(node, SList):
                stack.extend(reversed(node.items))


Node = Atom | SList


def _unquote(body: str) -> str:
    out: list[str] = []
    idx = 0
    while idx < len(body):
        char = body[idx]
        if char != "\\" or idx + 1 >= len(body):
            out.append(char)
            idx += 1
            continue
        nxt = body[idx + 1]
        if nxt in _ESCAPES:
            out.append(_ESCAPES[nxt])
            idx += 2
            continue
        hex_pair = body[idx + 1 : idx + 3]
        try:
            out.append(chr(int(hex_pair, 16)))
            idx += 3
        except ValueError:
            out.append(char)
            idx += 1
    return "".join(out)


def _skip_block_comment(text: str, pos: int) -> int:
    # Block comments nest.
    depth = 0
    while pos < len(text):
        if text.startswith("(;", pos):
            depth += 1
            pos += 2
        elif text.startswith(";)", pos):
            depth -= 1
            pos += 2
            if depth == 0:
                return pos
        else:
            pos += 1
    raise SExprError("Unterminated block comment", text, pos)


def _read_string(text: str, pos: int) -> int:
    start = pos
    pos += 1
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 2
            continue
        if char == '"':
            return pos + 1
        pos += 1
    raise SExprError("Unterminated string", text, start)


def parse(text: str) -> list[Node]:
    """Parse every top-level form in ``text``."""
    stack: list[SList] = []
    top: list[Node] = []
    pos = 0
    length = len(text)
    while pos < length:
        char = text[pos]
        if char in " \t\r\n":
            pos += 1
            continue
        if text.startswith(";;", pos):
            newline = text.find("\n", pos)
            pos = length if newline == -1 else newline + 1
            continue
        if text.startswith("(;", pos):
            pos = _skip_block_comment(text, pos)
            continue
        if char == "(":
            stack.append(SList(start=pos))
            pos += 1
            continue
        if char == ")":
            if not stack:
                raise SExprError("Unbalanced ')'", text, pos)
            node = stack.pop()
            node.end = pos + 1
            (stack[-1].items if stack else top).append(node)
            pos += 1
            continue
        if char == '"':
            end = _read_string(text, pos)
        elif text.startswith('$"', pos):
            end = _read_string(text, pos + 1)
        elif char == ";":
            raise SExprError("Stray ';'", text, pos)
        else:
            end = pos
            while end < length and text[end] not in _DELIMITERS:
                end += 1
        atom = Atom(text[pos:end], pos, end)
        (stack[-1].items if stack else top).append(atom)
        pos = end
    if stack:
        raise SExprError("Unclosed '('", text, stack[-1].start)
    return top


def parse_module(text: str) -> SList:
    forms = parse(text)
    modules = [form for form in forms if isinstance(form, SList)]
    if len(forms) != 1 or len(modules) != 1 or modules[0].head != "module":
        raise SExprError("Expected a single (module ...) form", text, 0)
    return modules[0]
