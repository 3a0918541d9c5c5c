"""Rewrites for the JavaScript glue module and its two distribution variants."""

from __future__ import annotations

from dataclasses import dataclass, field

from wasm_polish.declarations import (
    ACCESSOR_NAME,
    OUT_PARAM,
    OutputMethod,
    output_parameter_type,
    outline_artifact,
)
from wasm_polish.edits import EditBuffer, line_indent
from wasm_polish.errors import RequiredPatternMissing
from wasm_polish.jsscan import Member, Outline, Token
from wasm_polish.offsets import OffsetTable

INTERNAL_INIT = "initModule"
LOADER_NAME = "init"


@dataclass
class GlueRewrite:
    text: str
    accessors: list[str] = field(default_factory=list)
    out_methods: list[OutputMethod] = field(default_factory=list)


@dataclass(frozen=True)
class GlueVariants:
    inlined: str
    split: str
    body: GlueRewrite


def _inner_indent(text: str, body: tuple[int, int], outer: str) -> str:
    start, end = body
    for line in text[start + 1 : end - 1].splitlines():
        if line.strip():
            indent = line[: len(line) - len(line.lstrip(" \t"))]
            if len(indent) > len(outer):
                return indent
            break
    return outer + "    "


def accessor_body(count: int, outer: str, inner: str) -> str:
    return (
        "{\n"
        f"{inner}const ptr = this.ptr / 4 + 1;\n"
        f"{inner}return new Float32Array(wasm.memory.buffer).slice(ptr, ptr + {count});\n"
        f"{outer}}}"
    )


def _rewrite_accessors(
    tree: Outline, buffer: EditBuffer, offsets: OffsetTable, result: GlueRewrite
) -> None:
    for cls in tree.classes:
        for member in cls.member(ACCESSOR_NAME, "getter"):
            if member.body is None:
                continue
            count = offsets.element_count(cls.name, "glue")
            outer = line_indent(tree.text, member.start)
            inner = _inner_indent(tree.text, member.body, outer)
            buffer.replace(*member.body, accessor_body(count, outer, inner))
            result.accessors.append(cls.name)
    if not result.accessors:
        raise RequiredPatternMissing("glue", "elements accessor")


def _rewrite_loader(tree: Outline, buffer: EditBuffer, internal: str) -> None:
    loader = tree.function(LOADER_NAME)
    if loader is None or loader.body is None:
        raise RequiredPatternMissing("glue", "init entry point")
    if internal in tree.top_level_names():
        raise RequiredPatternMissing(
            "glue", "init entry point", f"{internal} is already defined"
        )
    if loader.start != loader.keyword_start:
        buffer.replace(loader.start, loader.keyword_start, "")
    buffer.replace(loader.name_start, loader.name_end, internal)
    previous: Token | None = None
    for token in tree.tokens_between(*loader.body):
        is_self_reference = token.kind == "ident" and token.text == LOADER_NAME
        if is_self_reference and (previous is None or previous.text != "."):
            buffer.replace(token.start, token.end, internal)
        previous = token
    for stmt in tree.statements_matching("export", "default", LOADER_NAME, ";"):
        buffer.delete(stmt.start, stmt.end, whole_lines=True)


_BLOCK_KEYWORDS = {"else", "do", "try", "finally"}
_HEAD_KEYWORDS = {"if", "for", "while", "with", "switch", "catch"}
_CONTINUATIONS = {"else", "catch", "finally"}
_BRACKETS = {"(", "[", "{", ";", ")", "]", "}"}


def _final_statement(tokens: list[Token]) -> int:
    """Index of the first token of the last top-level statement.

    Only ``;`` and the ``}`` of a statement block end a statement; braces of
    object literals and function expressions do not.
    """
    # One entry per open bracket: the block kind for a statement block, else None.
    stack: list[str | None] = []
    last = 0
    paren_keyword = ""
    for idx, token in enumerate(tokens):
        if token.kind != "punct" or token.text not in _BRACKETS:
            continue
        prev = tokens[idx - 1] if idx > last else None
        if token.text == "(":
            if not stack:
                paren_keyword = prev.text if prev is not None else ""
            stack.append(None)
            continue
        if token.text == "[":
            stack.append(None)
            continue
        if token.text == "{":
            block: str | None = None
            if not stack:
                if prev is None:
                    block = "{"
                elif prev.kind == "ident" and prev.text in _BLOCK_KEYWORDS:
                    block = prev.text
                elif prev.text == ")" and paren_keyword in _HEAD_KEYWORDS:
                    block = paren_keyword
                elif tokens[last].text in {"function", "class"}:
                    block = tokens[last].text
            stack.append(block)
            continue
        if token.text == ";":
            ends = not stack
        elif token.text == "}":
            block = stack.pop() if stack else None
            ends = not stack and block is not None
            if ends and idx + 1 < len(tokens):
                nxt = tokens[idx + 1].text
                if nxt in _CONTINUATIONS or (block == "do" and nxt == "while"):
                    ends = False
        else:
            if stack:
                stack.pop()
            ends = False
        if ends and idx + 1 < len(tokens):
            last = idx + 1
    return last


def _return_out(tree: Outline, buffer: EditBuffer, member: Member) -> None:
    start, end = member.body
    tokens = tree.tokens_between(start + 1, end - 1)
    outer = line_indent(tree.text, member.start)
    if not tokens:
        inner = outer + "    "
        buffer.insert(start + 1, f"\n{inner}return {OUT_PARAM};\n{outer}")
        return
    last = _final_statement(tokens)
    first = tokens[last]
    inner = line_indent(tree.text, first.start)
    if first.kind == "ident" and first.text == "return":
        if last + 1 < len(tokens) and tokens[last + 1].text == ";":
            buffer.replace(first.start, tokens[last + 1].end, f"return {OUT_PARAM};")
            return
        if last + 1 < len(tokens):
            buffer.delete(first.start, tokens[last + 1].start)
    tail = tokens[-1]
    terminator = "" if tail.text in {";", "}"} else ";"
    buffer.insert(tail.end, f"{terminator}\n{inner}return {OUT_PARAM};")


def _rewrite_out_methods(
    tree: Outline, buffer: EditBuffer, result: GlueRewrite
) -> None:
    for cls in tree.classes:
        for member in cls.members:
            if member.body is None:
                continue
            out_type = output_parameter_type(member, "glue")
            if out_type is None:
                continue
            buffer.replace(*member.doc.void_return_span(), out_type)
            _return_out(tree, buffer, member)
            result.out_methods.append(OutputMethod(cls.name, member.name, out_type))
    if not result.out_methods:
        raise RequiredPatternMissing("glue", "output-parameter method")


def rewrite_glue_body(
    text: str, offsets: OffsetTable, internal_init: str = INTERNAL_INIT
) -> GlueRewrite:
    """Apply the accessor, loader and output-parameter rewrites."""
    tree = outline_artifact(text, "glue")
    buffer = EditBuffer(text)
    result = GlueRewrite(text)
    _rewrite_accessors(tree, buffer, offsets, result)
    _rewrite_loader(tree, buffer, internal_init)
    _rewrite_out_methods(tree, buffer, result)
    result.text = buffer.apply()
    return result


def emit_inlined(
    body: str, binary: bytes, header: str, internal_init: str = INTERNAL_INIT
) -> str:
    if not binary:
        raise RequiredPatternMissing("glue", "inlined variant", "module is empty")
    literal = ",".join(str(byte) for byte in binary)
    return (
        header
        + body
        + "\nexport async function init() {\n"
        + f"  return {internal_init}(new Uint8Array([{literal}]));\n"
        + "}\n"
    )


def emit_split(body: str, module_import: str, header: str) -> str:
    tree = outline_artifact(body, "glue")
    placeholders = tree.statements_matching("let", "wasm", ";")
    if not placeholders:
        raise RequiredPatternMissing("glue", "split variant", "no 'let wasm;' binding")
    buffer = EditBuffer(body)
    for stmt in placeholders:
        buffer.delete(stmt.start, stmt.end, whole_lines=True)
    return header + f"import * as wasm from '{module_import}';\n" + buffer.apply()


def rewrite_glue(
    text: str,
    offsets: OffsetTable,
    binary: bytes,
    header: str,
    module_import: str,
    internal_init: str = INTERNAL_INIT,
) -> GlueVariants:
    body = rewrite_glue_body(text, offsets, internal_init)
    return GlueVariants(
        inlined=emit_inlined(body.text, binary, header, internal_init),
        split=emit_split(body.text, module_import, header),
        body=body,
    )
