from __future__ import annotations

import pytest

from wasm_polish.errors import ScanError
from wasm_polish.jsscan import outline, tokenize


def _kinds(text: str) -> list[tuple[str, str]]:
    return [(tok.kind, tok.text) for tok in tokenize(text)]


def test_tokenize_strings_and_comments_hide_structure() -> None:
    text = "const a = '{'; // }\nconst b = \"(\";\n/* ) */"
    kinds = _kinds(text)
    assert ("string", "'{'") in kinds
    assert ("string", '"("') in kinds
    assert ("comment", "// }") in kinds
    assert ("comment", "/* ) */") in kinds
    assert not any(kind == "punct" and value in "{}()" for kind, value in kinds)


def test_tokenize_template_with_nested_substitution() -> None:
    text = "const s = `a ${ {x: `}`}.x } b`;"
    templates = [tok for tok in tokenize(text) if tok.kind == "template"]
    assert len(templates) == 1
    assert templates[0].text == "`a ${ {x: `}`}.x } b`"


def test_tokenize_distinguishes_regex_from_division() -> None:
    kinds = _kinds("x = a / 4 + b / 2; y = /[/]}/g.test(s);")
    assert ("regex", "/[/]}/g") in kinds
    assert kinds.count(("punct", "/")) == 2


def test_tokenize_arrow_and_spread() -> None:
    texts = [tok.text for tok in tokenize("(...args) => f(...args)")]
    assert texts.count("...") == 2
    assert "=>" in texts


def test_unterminated_literal_reports_line() -> None:
    with pytest.raises(ScanError, match="line 2") as excinfo:
        tokenize("let a;\nlet b = 'oops;\n")
    assert excinfo.value.column == 9


def test_unbalanced_brackets_fail_outline() -> None:
    with pytest.raises(ScanError, match="Unclosed"):
        outline("function f() {")
    with pytest.raises(ScanError, match="Mismatched"):
        outline("function f() { ]")


def test_outline_classes_and_members() -> None:
    text = (
        "export class Vector3 {\n"
        "    static __wrap(ptr) { return ptr; }\n"
        "    /**\n"
        "    * @param {Vector3} out\n"
        "    * @returns {void}\n"
        "    */\n"
        "    static copy(out, a) { return wasm.vector3_copy(out.ptr, a.ptr); }\n"
        "    get elements() { return null; }\n"
        "    set elements(value) {}\n"
        "    free() {}\n"
        "}\n"
    )
    tree = outline(text)
    (cls,) = tree.classes
    assert cls.name == "Vector3"
    assert [(m.name, m.kind, m.is_static) for m in cls.members] == [
        ("__wrap", "method", True),
        ("copy", "method", True),
        ("elements", "getter", False),
        ("elements", "setter", False),
        ("free", "method", False),
    ]
    copy = cls.member("copy")[0]
    assert [p.name for p in copy.params] == ["out", "a"]
    assert copy.doc is not None
    assert copy.doc.param_types("out") == ["Vector3"]
    assert text[copy.body[0]] == "{"
    assert text[copy.body[1] - 1] == "}"
    assert cls.member("elements", "getter")[0].doc is None


def test_outline_typescript_members() -> None:
    text = (
        "export class Matrix4 {\n"
        "  free(): void;\n"
        "  get elements(): Float32Array;\n"
        "  readonly size: number;\n"
        "  static from<T>(items: Array<T>, scale?: number): Matrix4;\n"
        "  static identity(out: Matrix4): void;\n"
        "}\n"
    )
    tree = outline(text)
    members = {m.name: m for m in tree.classes[0].members}
    assert members["free"].return_type == "void"
    assert members["elements"].kind == "getter"
    assert members["elements"].return_type == "Float32Array"
    assert members["size"].kind == "property"
    assert members["size"].return_type == "number"
    assert [(p.name, p.type) for p in members["from"].params] == [
        ("items", "Array<T>"),
        ("scale", "number"),
    ]
    assert members["from"].return_type == "Matrix4"
    identity = members["identity"]
    start, end = identity.return_type_span
    assert text[start:end] == "void"
    assert identity.params[0].type == "Matrix4"


def test_doc_comment_tags() -> None:
    text = (
        "class Vector3 {\n"
        "/**\n"
        "* @param {vec3} out the receiving vector\n"
        "* @returns {vec3} out\n"
        "* @param {Vector3} out\n"
        "* @returns {void}\n"
        "*/\n"
        "static copy(out) {}\n"
        "}\n"
    )
    doc = outline(text).classes[0].members[0].doc
    assert doc is not None
    assert doc.param_types("out") == ["vec3", "Vector3"]
    assert doc.param_types("a") == []
    assert doc.return_types() == ["vec3", "void"]
    start, end = doc.void_return_span()
    assert text[start:end] == "void"
    assert text.rindex("{void}") + 1 == start


def test_outline_functions_and_statements() -> None:
    text = (
        "let wasm;\n"
        "const cache = { a: 1 };\n"
        "export function helper(a: number): string;\n"
        "async function load(module) { return module; }\n"
        "export default function init (module_or_path: RequestInfo | BufferSource): Promise<any>;\n"
        "export default init;\n"
    )
    tree = outline(text)
    names = [(f.name, f.export) for f in tree.functions]
    assert names == [("helper", "export"), ("load", "none"), ("init", "default")]
    init = tree.function("init")
    assert init.return_type == "Promise<any>"
    assert text[init.start : init.end].startswith("export default function init")
    assert text[init.start : init.end].endswith("Promise<any>;")
    assert init.params[0].type == "RequestInfo | BufferSource"
    load = tree.function("load")
    assert load.body is not None
    assert tree.statements_matching("let", "wasm", ";")
    assert tree.statements_matching("export", "default", "init", ";")
    assert tree.top_level_names() == {"wasm", "cache", "helper", "load", "init"}


def test_outline_generated_glue(glue_text: str) -> None:
    tree = outline(glue_text)
    assert [cls.name for cls in tree.classes] == ["Matrix4", "Vector3"]
    loader = tree.function("init")
    assert loader is not None and loader.export == "none"
    matrix = tree.classes[0]
    getter = matrix.member("elements", "getter")[0]
    assert getter.doc is not None
    assert getter.doc.return_types() == ["Float32Array"]
    assert [m.name for m in matrix.members if m.is_static] == [
        "__wrap",
        "create",
        "identity",
        "multiply",
        "str",
    ]
