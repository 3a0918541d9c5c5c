"""Lexical outline of generated JavaScript glue and TypeScript declarations.

This is not a full parser. It tokenizes well enough to never mistake the
inside of a string, template, comment or regex literal for structure, then
recognizes the handful of top-level shapes the bindings generator emits:
classes with their members, function declarations and simple statements.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from wasm_polish.errors import ScanError

TokenKind = Literal["ident", "punct", "string", "template", "number", "regex", "comment"]
MemberKind = Literal["method", "getter", "setter", "property"]
ExportKind = Literal["none", "export", "default"]

_REGEX_AFTER_KEYWORDS = {
    "return",
    "typeof",
    "instanceof",
    "in",
    "of",
    "new",
    "delete",
    "void",
    "throw",
    "case",
    "do",
    "else",
    "yield",
    "await",
}
_MEMBER_MODIFIERS = {
    "static",
    "readonly",
    "public",
    "private",
    "protected",
    "async",
    "declare",
    "abstract",
    "override",
}
_CLASS_MODIFIERS = {"export", "default", "declare", "abstract"}
_STATEMENT_STARTERS = {
    "function",
    "class",
    "export",
    "import",
    "let",
    "const",
    "var",
    "if",
    "async",
}
_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}
_DOC_TAG_RE = re.compile(r"@(param|returns?)\s*\{([^}]*)\}(?:[ \t]*([\w$]+))?")


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    start: int
    end: int


def _is_ident_start(char: str) -> bool:
    return char.isalpha() or char in "_$"


def _is_ident_char(char: str) -> bool:
    return char.isalnum() or char in "_$"


def _scan_quoted(text: str, pos: int, quote: str) -> int:
    start = pos
    pos += 1
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 2
            continue
        if char == quote:
            return pos + 1
        if char == "\n":
            break
        pos += 1
    raise ScanError("Unterminated string literal", text, start)


def _scan_template(text: str, pos: int) -> int:
    start = pos
    pos += 1
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 2
            continue
        if char == "`":
            return pos + 1
        if text.startswith("${", pos):
            pos = _scan_substitution(text, pos + 2)
            continue
        pos += 1
    raise ScanError("Unterminated template literal", text, start)


def _scan_substitution(text: str, pos: int) -> int:
    start = pos
    depth = 1
    while pos < len(text):
        char = text[pos]
        if char in "'\"":
            pos = _scan_quoted(text, pos, char)
            continue
        if char == "`":
            pos = _scan_template(text, pos)
            continue
        if text.startswith("//", pos):
            newline = text.find("\n", pos)
            pos = len(text) if newline == -1 else newline
            continue
        if text.startswith("/*", pos):
            close = text.find("*/", pos + 2)
            if close == -1:
                raise ScanError("Unterminated comment", text, pos)
            pos = close + 2
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return pos + 1
        pos += 1
    raise ScanError("Unterminated template substitution", text, start)


def _scan_regex(text: str, pos: int) -> int:
    start = pos
    pos += 1
    in_class = False
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 2
            continue
        if char == "\n":
            break
        if char == "[":
            in_class = True
        elif char == "]":
            in_class = False
        elif char == "/" and not in_class:
            pos += 1
            while pos < len(text) and _is_ident_char(text[pos]):
                pos += 1
            return pos
        pos += 1
    raise ScanError("Unterminated regular expression", text, start)


def _regex_allowed(previous: Token | None) -> bool:
    if previous is None:
        return True
    if previous.kind == "punct":
        return previous.text not in _CLOSERS
    if previous.kind == "ident":
        return previous.text in _REGEX_AFTER_KEYWORDS
    return False


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    previous: Token | None = None
    pos = 0
    length = len(text)
    while pos < length:
        char = text[pos]
        if char.isspace():
            pos += 1
            continue
        start = pos
        if text.startswith("//", pos):
            newline = text.find("\n", pos)
            pos = length if newline == -1 else newline
            tokens.append(Token("comment", text[start:pos], start, pos))
            continue
        if text.startswith("/*", pos):
            close = text.find("*/", pos + 2)
            if close == -1:
                raise ScanError("Unterminated comment", text, pos)
            pos = close + 2
            tokens.append(Token("comment", text[start:pos], start, pos))
            continue
        if char in "'\"":
            pos = _scan_quoted(text, pos, char)
            kind: TokenKind = "string"
        elif char == "`":
            pos = _scan_template(text, pos)
            kind = "template"
        elif _is_ident_start(char):
            while pos < length and _is_ident_char(text[pos]):
                pos += 1
            kind = "ident"
        elif char.isdigit() or (char == "." and text[pos + 1 : pos + 2].isdigit()):
            while pos < length and (_is_ident_char(text[pos]) or text[pos] == "."):
                pos += 1
            kind = "number"
        elif char == "/" and _regex_allowed(previous):
            pos = _scan_regex(text, pos)
            kind = "regex"
        elif text.startswith("...", pos):
            pos += 3
            kind = "punct"
        elif text.startswith("=>", pos):
            pos += 2
            kind = "punct"
        else:
            pos += 1
            kind = "punct"
        token = Token(kind, text[start:pos], start, pos)
        tokens.append(token)
        previous = token
    return tokens


@dataclass
class DocComment:
    text: str
    start: int
    end: int

    def param_types(self, name: str) -> list[str]:
        return [
            match.group(2).strip()
            for match in _DOC_TAG_RE.finditer(self.text)
            if match.group(1) == "param" and match.group(3) == name
        ]

    def return_types(self) -> list[str]:
        return [
            match.group(2).strip()
            for match in _DOC_TAG_RE.finditer(self.text)
            if match.group(1) != "param"
        ]

    def void_return_span(self) -> tuple[int, int] | None:
        """Absolute span of ``void`` inside the last ``@returns {void}`` tag."""
        span = None
        for match in _DOC_TAG_RE.finditer(self.text):
            if match.group(1) != "param" and match.group(2).strip() == "void":
                inner = match.start(2) + match.group(2).index("void")
                span = (self.start + inner, self.start + inner + len("void"))
        return span


@dataclass
class Param:
    name: str
    type: str | None
    start: int
    end: int


@dataclass
class Member:
    name: str
    kind: MemberKind
    is_static: bool
    start: int
    name_start: int
    name_end: int
    end: int
    doc: DocComment | None = None
    params: list[Param] = field(default_factory=list)
    params_end: int | None = None
    return_type: str | None = None
    return_type_span: tuple[int, int] | None = None
    body: tuple[int, int] | None = None


@dataclass
class ClassDecl:
    name: str
    start: int
    end: int
    body_open: int
    body_close: int
    members: list[Member] = field(default_factory=list)

    def member(self, name: str, kind: MemberKind | None = None) -> list[Member]:
        return [
            member
            for member in self.members
            if member.name == name and (kind is None or member.kind == kind)
        ]


@dataclass
class FunctionDecl:
    name: str
    export: ExportKind
    start: int
    keyword_start: int
    name_start: int
    name_end: int
    end: int
    params: list[Param] = field(default_factory=list)
    return_type: str | None = None
    body: tuple[int, int] | None = None


@dataclass
class Statement:
    start: int
    end: int
    words: tuple[str, ...]


@dataclass
class Outline:
    text: str
    tokens: list[Token]
    classes: list[ClassDecl] = field(default_factory=list)
    functions: list[FunctionDecl] = field(default_factory=list)
    statements: list[Statement] = field(default_factory=list)

    def function(self, name: str) -> FunctionDecl | None:
        for func in self.functions:
            if func.name == name:
                return func
        return None

    def statements_matching(self, *words: str) -> list[Statement]:
        return [stmt for stmt in self.statements if stmt.words == words]

    def top_level_names(self) -> set[str]:
        names = {cls.name for cls in self.classes}
        names.update(func.name for func in self.functions)
        for stmt in self.statements:
            if len(stmt.words) > 1 and stmt.words[0] in {"let", "const", "var"}:
                names.add(stmt.words[1])
        return names

    def tokens_between(self, start: int, end: int) -> list[Token]:
        return [
            token
            for token in self.tokens
            if token.start >= start and token.end <= end and token.kind != "comment"
        ]


class _Outliner:
    def __init__(self, text: str) -> None:
        self.text = text
        self.all_tokens = tokenize(text)
        self.tokens = [tok for tok in self.all_tokens if tok.kind != "comment"]
        self._docs: dict[int, DocComment] = {}
        # Map each code token index to the doc comment directly before it.
        pending: DocComment | None = None
        index = 0
        for tok in self.all_tokens:
            if tok.kind == "comment":
                if tok.text.startswith("/**"):
                    pending = DocComment(tok.text, tok.start, tok.end)
                continue
            if pending is not None:
                self._docs[index] = pending
                pending = None
            index += 1
        self._matches = self._match_brackets()

    def _match_brackets(self) -> dict[int, int]:
        matches: dict[int, int] = {}
        stack: list[int] = []
        for idx, tok in enumerate(self.tokens):
            if tok.kind != "punct":
                continue
            if tok.text in _OPENERS:
                stack.append(idx)
            elif tok.text in _CLOSERS:
                if not stack:
                    raise ScanError(f"Unbalanced '{tok.text}'", self.text, tok.start)
                opener = stack.pop()
                if _OPENERS[self.tokens[opener].text] != tok.text:
                    raise ScanError(
                        f"Mismatched '{tok.text}'", self.text, tok.start
                    )
                matches[opener] = idx
        if stack:
            tok = self.tokens[stack[-1]]
            raise ScanError(f"Unclosed '{tok.text}'", self.text, tok.start)
        return matches

    def _text(self, idx: int) -> str | None:
        if 0 <= idx < len(self.tokens):
            return self.tokens[idx].text
        return None

    def _is(self, idx: int, text: str) -> bool:
        if not 0 <= idx < len(self.tokens):
            return False
        tok = self.tokens[idx]
        return tok.text == text and tok.kind in {"punct", "ident"}

    def _params(self, open_idx: int) -> list[Param]:
        close_idx = self._matches[open_idx]
        params: list[Param] = []
        idx = open_idx + 1
        while idx < close_idx:
            start_idx = idx
            colon: int | None = None
            default: int | None = None
            while idx < close_idx and not self._is(idx, ","):
                tok = self.tokens[idx]
                if tok.kind == "punct" and tok.text in _OPENERS:
                    idx = self._matches[idx] + 1
                    continue
                if colon is None and default is None and self._is(idx, ":"):
                    colon = idx
                elif default is None and self._is(idx, "="):
                    default = idx
                idx += 1
            end_idx = idx - 1
            first = self.tokens[start_idx]
            name_idx = start_idx + 1 if first.text == "..." else start_idx
            type_text = None
            if colon is not None:
                type_end = (default - 1) if default is not None else end_idx
                type_text = self.text[
                    self.tokens[colon + 1].start : self.tokens[type_end].end
                ].strip()
            params.append(
                Param(
                    name=self.tokens[name_idx].text,
                    type=type_text,
                    start=first.start,
                    end=self.tokens[end_idx].end,
                )
            )
            idx += 1
        return params

    def _type_end(self, idx: int, stop: int) -> int:
        """Index of the token that terminates a type annotation starting at ``idx``."""
        angle = 0
        while idx < stop:
            tok = self.tokens[idx]
            if tok.kind == "punct":
                if tok.text == "<":
                    angle += 1
                elif tok.text == ">" and angle:
                    angle -= 1
                elif tok.text == ";" and not angle:
                    return idx
                elif tok.text == "{" and not angle and idx > 0:
                    prev = self.tokens[idx - 1]
                    if prev.kind == "ident" or prev.text in {">", "]", ")"}:
                        return idx
                if tok.text in _OPENERS:
                    idx = self._matches[idx] + 1
                    continue
            idx += 1
        return stop

    def _skip_type_params(self, idx: int) -> int:
        depth = 0
        while idx < len(self.tokens):
            text = self._text(idx)
            if text == "<":
                depth += 1
            elif text == ">":
                depth -= 1
                if depth == 0:
                    return idx + 1
            idx += 1
        return idx

    def _member(self, idx: int, stop: int) -> tuple[Member | None, int]:
        start_idx = idx
        is_static = False
        kind: MemberKind = "method"
        while idx < stop:
            word = self._text(idx)
            nxt = self._text(idx + 1)
            is_modifier = word in _MEMBER_MODIFIERS or word in {"get", "set"}
            if not is_modifier or nxt in {"(", ":", "=", ";", "?", "!", "<"}:
                break
            if word == "static":
                if nxt == "{":
                    # Static initialization block.
                    close = self._matches[idx + 1]
                    return None, close + 1
                is_static = True
            elif word == "get":
                kind = "getter"
            elif word == "set":
                kind = "setter"
            idx += 1
        if self._is(idx, "*"):
            idx += 1
        if idx >= stop:
            return None, stop
        name_tok = self.tokens[idx]
        if name_tok.kind not in {"ident", "string", "number"}:
            if self._is(idx, "["):
                close = self._matches[idx]
                name = self.text[name_tok.start : self.tokens[close].end]
                name_end_idx = close
            elif self._is(idx, "#") and idx + 1 < stop:
                name = "#" + self.tokens[idx + 1].text
                name_end_idx = idx + 1
            else:
                return None, idx + 1
        else:
            name = name_tok.text
            name_end_idx = idx
        member = Member(
            name=name,
            kind=kind,
            is_static=is_static,
            start=self.tokens[start_idx].start,
            name_start=name_tok.start,
            name_end=self.tokens[name_end_idx].end,
            end=self.tokens[name_end_idx].end,
            doc=self._docs.get(start_idx),
        )
        idx = name_end_idx + 1
        while self._text(idx) in {"?", "!"}:
            idx += 1
        if self._is(idx, "<"):
            idx = self._skip_type_params(idx)
        if self._is(idx, "("):
            close = self._matches[idx]
            member.params = self._params(idx)
            member.params_end = self.tokens[close].end
            idx = close + 1
            if self._is(idx, ":"):
                end = self._type_end(idx + 1, stop)
                if end > idx + 1:
                    first, last = self.tokens[idx + 1], self.tokens[end - 1]
                    member.return_type_span = (first.start, last.end)
                    member.return_type = self.text[first.start : last.end]
                idx = end
        else:
            if member.kind == "method":
                member.kind = "property"
            if self._is(idx, ":"):
                end = self._type_end(idx + 1, stop)
                if end > idx + 1:
                    first, last = self.tokens[idx + 1], self.tokens[end - 1]
                    member.return_type_span = (first.start, last.end)
                    member.return_type = self.text[first.start : last.end]
                idx = end
            if self._is(idx, "="):
                while idx < stop and not self._is(idx, ";"):
                    tok = self.tokens[idx]
                    if tok.kind == "punct" and tok.text in _OPENERS:
                        idx = self._matches[idx]
                    idx += 1
        if self._is(idx, "{"):
            close = self._matches[idx]
            member.body = (self.tokens[idx].start, self.tokens[close].end)
            member.end = self.tokens[close].end
            return member, close + 1
        if self._is(idx, ";"):
            member.end = self.tokens[idx].end
            return member, idx + 1
        if idx > 0:
            member.end = self.tokens[idx - 1].end
        return member, idx

    def _class(self, start_idx: int, class_idx: int) -> tuple[ClassDecl, int]:
        name_tok = self.tokens[class_idx + 1]
        idx = class_idx + 2
        while idx < len(self.tokens) and not self._is(idx, "{"):
            idx += 1
        if idx >= len(self.tokens):
            raise ScanError("Class without body", self.text, name_tok.start)
        close = self._matches[idx]
        decl = ClassDecl(
            name=name_tok.text,
            start=self.tokens[start_idx].start,
            end=self.tokens[close].end,
            body_open=self.tokens[idx].start,
            body_close=self.tokens[close].start,
        )
        inner = idx + 1
        while inner < close:
            if self._is(inner, ";"):
                inner += 1
                continue
            member, inner = self._member(inner, close)
            if member is not None:
                decl.members.append(member)
        return decl, close + 1

    def _function(
        self, start_idx: int, keyword_idx: int, export: ExportKind
    ) -> tuple[FunctionDecl, int]:
        func_idx = keyword_idx + 1 if self._is(keyword_idx, "async") else keyword_idx
        name_idx = func_idx + 1
        if self._is(name_idx, "*"):
            name_idx += 1
        name_tok = self.tokens[name_idx]
        open_idx = name_idx + 1
        if self._is(open_idx, "<"):
            open_idx = self._skip_type_params(open_idx)
        if not self._is(open_idx, "("):
            raise ScanError("Expected '(' after function name", self.text, name_tok.start)
        close = self._matches[open_idx]
        decl = FunctionDecl(
            name=name_tok.text,
            export=export,
            start=self.tokens[start_idx].start,
            keyword_start=self.tokens[keyword_idx].start,
            name_start=name_tok.start,
            name_end=name_tok.end,
            end=self.tokens[close].end,
            params=self._params(open_idx),
        )
        idx = close + 1
        if self._is(idx, ":"):
            end = self._type_end(idx + 1, len(self.tokens))
            if end > idx + 1:
                decl.return_type = self.text[
                    self.tokens[idx + 1].start : self.tokens[end - 1].end
                ]
            idx = end
        if self._is(idx, "{"):
            body_close = self._matches[idx]
            decl.body = (self.tokens[idx].start, self.tokens[body_close].end)
            decl.end = self.tokens[body_close].end
            return decl, body_close + 1
        if self._is(idx, ";"):
            decl.end = self.tokens[idx].end
            return decl, idx + 1
        return decl, idx

    def _statement(self, idx: int) -> tuple[Statement, int]:
        start_idx = idx
        while idx < len(self.tokens):
            tok = self.tokens[idx]
            if tok.kind == "punct" and tok.text in _OPENERS:
                close = self._matches[idx]
                idx = close + 1
                if tok.text == "{" and (
                    idx >= len(self.tokens)
                    or self.tokens[idx].text in _STATEMENT_STARTERS
                ):
                    break
                continue
            if self._is(idx, ";"):
                idx += 1
                break
            idx += 1
        words = tuple(tok.text for tok in self.tokens[start_idx:idx])
        end = self.tokens[idx - 1].end
        return Statement(self.tokens[start_idx].start, end, words), idx

    def outline(self) -> Outline:
        result = Outline(self.text, self.all_tokens)
        idx = 0
        while idx < len(self.tokens):
            start_idx = idx
            export: ExportKind = "none"
            cursor = idx
            while self._text(cursor) in _CLASS_MODIFIERS:
                if self._text(cursor) == "export" and export == "none":
                    export = "export"
                elif self._text(cursor) == "default":
                    export = "default"
                cursor += 1
            word = self._text(cursor)
            if word == "class" and cursor + 1 < len(self.tokens):
                decl, idx = self._class(start_idx, cursor)
                result.classes.append(decl)
                continue
            is_async_function = word == "async" and self._text(cursor + 1) == "function"
            if (word == "function" or is_async_function) and cursor + 1 < len(self.tokens):
                decl, idx = self._function(start_idx, cursor, export)
                result.functions.append(decl)
                continue
            stmt, idx = self._statement(start_idx)
            result.statements.append(stmt)
        return result


def outline(text: str) -> Outline:
    return _Outliner(text).outline()
