from __future__ import annotations

import pytest

from wasm_polish.edits import EditBuffer, line_indent, line_span


def test_edits_apply_in_offset_order() -> None:
    buffer = EditBuffer("alpha beta gamma")
    buffer.replace(11, 16, "GAMMA")
    buffer.replace(0, 5, "ALPHA")
    buffer.insert(6, ">")
    assert len(buffer) == 3
    assert buffer.apply() == "ALPHA >beta GAMMA"


def test_untouched_text_is_preserved() -> None:
    text = "keep\n  this\tas is\n"
    assert EditBuffer(text).apply() == text


def test_overlapping_edits_are_rejected() -> None:
    buffer = EditBuffer("abcdef")
    buffer.replace(1, 4, "x")
    with pytest.raises(ValueError, match="overlaps"):
        buffer.replace(3, 5, "y")


def test_duplicate_insertion_is_rejected() -> None:
    buffer = EditBuffer("abc")
    buffer.insert(1, "x")
    with pytest.raises(ValueError, match="Duplicate insertion"):
        buffer.insert(1, "y")


def test_out_of_range_span_is_rejected() -> None:
    with pytest.raises(ValueError, match="outside text"):
        EditBuffer("abc").replace(2, 9, "")


def test_whole_line_delete_removes_the_line() -> None:
    text = "one\n  two;\nthree\n"
    buffer = EditBuffer(text)
    start = text.index("two")
    buffer.delete(start, start + len("two;"), whole_lines=True)
    assert buffer.apply() == "one\nthree\n"


def test_line_span_keeps_shared_lines() -> None:
    text = "a = 1; b = 2;\n"
    assert line_span(text, 7, 13) == (7, 13)


def test_line_span_on_last_line_eats_previous_newline() -> None:
    text = "first\nlast"
    assert line_span(text, 6, 10) == (5, 10)


def test_line_indent() -> None:
    text = "x\n    \tvalue"
    assert line_indent(text, text.index("value")) == "    \t"
    assert line_indent(text, 0) == ""
