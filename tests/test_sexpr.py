from __future__ import annotations

import pytest

from wasm_polish.errors import SExprError
from wasm_polish.sexpr import Atom, SList, parse, parse_module


def test_parse_keeps_source_offsets() -> None:
    text = '(module (func $f (param i32)))'
    (module,) = parse(text)
    assert isinstance(module, SList)
    assert module.head == "module"
    func = next(module.children("func"))
    assert text[func.start : func.end] == "(func $f (param i32))"
    name = func.items[1]
    assert isinstance(name, Atom)
    assert text[name.start : name.end] == "$f"


def test_comments_are_skipped() -> None:
    text = "(module ;; trailing\n (; block (; nested ;) ;) (memory $0 1))"
    module = parse_module(text)
    assert [child.head for child in module.children()] == ["memory"]


def test_strings_may_contain_parens_and_semicolons() -> None:
    module = parse_module('(module (data (i32.const 8) "a(b;c)\\00"))')
    data = next(module.children("data"))
    literal = data.items[2]
    assert isinstance(literal, Atom)
    assert literal.is_string
    assert literal.value == "a(b;c)\x00"


def test_quoted_identifier_value() -> None:
    (atom,) = parse('$"odd name"')
    assert isinstance(atom, Atom)
    assert atom.value == "$odd name"


def test_walk_visits_nested_nodes_in_order() -> None:
    module = parse_module("(module (func $a (nop)) (func $b))")
    heads = [node.head for node in module.walk() if isinstance(node, SList)]
    assert heads == ["module", "func", "nop", "func"]


@pytest.mark.parametrize(
    "text, message",
    [
        ("(module (func)", "Unclosed"),
        ("(module))", "Unbalanced"),
        ('(module "open)', "Unterminated string"),
        ("(module (; open)", "Unterminated block comment"),
        ("(module ; x)", "Stray"),
    ],
)
def test_malformed_text_reports_position(text: str, message: str) -> None:
    with pytest.raises(SExprError, match=message) as excinfo:
        parse(text)
    assert excinfo.value.line == 1


def test_parse_module_requires_single_module() -> None:
    with pytest.raises(SExprError, match="single"):
        parse_module("(module) (module)")
    with pytest.raises(SExprError, match="single"):
        parse_module("(func)")
