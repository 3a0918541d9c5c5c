"""Rewrites for the public TypeScript declarations."""

from __future__ import annotations

from dataclasses import dataclass, field

from wasm_polish.edits import EditBuffer
from wasm_polish.errors import RequiredPatternMissing, ScanError
from wasm_polish.jsscan import Member, Outline, outline

ACCESSOR_NAME = "elements"
OUT_PARAM = "out"
INIT_DECLARATION = "export function init(): Promise<any>;"


@dataclass(frozen=True)
class OutputMethod:
    owner: str
    name: str
    type: str

    @property
    def qualified(self) -> str:
        return f"{self.owner}.{self.name}"


@dataclass
class DeclarationRewrite:
    text: str
    accessors: list[str] = field(default_factory=list)
    out_methods: list[OutputMethod] = field(default_factory=list)


def outline_artifact(text: str, artifact: str) -> Outline:
    try:
        return outline(text)
    except ScanError as exc:
        raise RequiredPatternMissing(artifact, "outline", str(exc)) from exc


def output_parameter_type(member: Member, artifact: str) -> str | None:
    """Return ``T`` when ``member`` writes its result into ``out: T``.

    The type comes from the last ``@param {T} out`` tag of the doc comment, so
    author prose such as ``@param {vec3} out`` is overridden by the tag the
    bindings generator appends after it.
    """
    if member.kind != "method" or not member.is_static or member.doc is None:
        return None
    if not member.params or member.params[0].name != OUT_PARAM:
        return None
    if member.doc.void_return_span() is None:
        return None
    documented = member.doc.param_types(OUT_PARAM)
    if not documented:
        return None
    out_type = documented[-1]
    declared = member.params[0].type
    if declared is not None and declared != out_type:
        raise RequiredPatternMissing(
            artifact,
            "output-parameter method",
            f"{member.name} documents out as {out_type} but declares {declared}",
        )
    return out_type


def rewrite_declarations(text: str) -> DeclarationRewrite:
    tree = outline_artifact(text, "declarations")
    buffer = EditBuffer(text)
    result = DeclarationRewrite(text)

    for cls in tree.classes:
        for member in cls.member(ACCESSOR_NAME, "getter"):
            if member.params_end is None:
                continue
            buffer.replace(member.start, member.params_end, f"readonly {ACCESSOR_NAME}")
            result.accessors.append(cls.name)
    if not result.accessors:
        raise RequiredPatternMissing("declarations", "elements accessor")

    init = tree.function("init")
    if init is None:
        raise RequiredPatternMissing("declarations", "init signature")
    buffer.replace(init.start, init.end, INIT_DECLARATION)

    for cls in tree.classes:
        for member in cls.members:
            if member.return_type != "void" or member.return_type_span is None:
                continue
            out_type = output_parameter_type(member, "declarations")
            if out_type is None:
                continue
            buffer.replace(*member.return_type_span, out_type)
            buffer.replace(*member.doc.void_return_span(), out_type)
            result.out_methods.append(OutputMethod(cls.name, member.name, out_type))
    if not result.out_methods:
        raise RequiredPatternMissing("declarations", "output-parameter method")

    result.text = buffer.apply()
    return result
