"""Error taxonomy for the polish pipeline."""

from __future__ import annotations


class PolishError(RuntimeError):
    """Base class for every fatal pipeline condition."""


class IOFailure(PolishError):
    def __init__(self, path: object, detail: str) -> None:
        super().__init__(f"{path}: {detail}")
        self.path = path
        self.detail = detail


class RoundTripFailure(PolishError):
    """The edited module text could not be turned back into a module."""


class RequiredPatternMissing(PolishError):
    def __init__(self, artifact: str, edit: str, detail: str | None = None) -> None:
        message = f"{artifact}: required edit '{edit}' found no match"
        if detail:
            message = f"{artifact}: required edit '{edit}' failed: {detail}"
        super().__init__(message)
        self.artifact = artifact
        self.edit = edit
        self.detail = detail


class UnknownValueType(RequiredPatternMissing):
    def __init__(self, artifact: str, type_name: str) -> None:
        super().__init__(
            artifact,
            "elements accessor",
            f"value type {type_name!r} has no offset table entry",
        )
        self.type_name = type_name


class ToolchainError(PolishError):
    """A binaryen tool is unavailable or failed outside the round trip."""


class GeneratorCompatibilityError(PolishError):
    """The bindings generator version is not one this tool understands."""


class ConfigError(PolishError):
    pass


class _LocatedError(ValueError):
    def __init__(self, message: str, text: str, offset: int) -> None:
        line = text.count("\n", 0, offset) + 1
        column = offset - (text.rfind("\n", 0, offset) + 1) + 1
        super().__init__(f"{message} at line {line}, column {column}")
        self.offset = offset
        self.line = line
        self.column = column


class SExprError(_LocatedError):
    """Malformed module text."""


class ScanError(_LocatedError):
    """Malformed JavaScript or TypeScript text."""
