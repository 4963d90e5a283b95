"""Error taxonomy shared by every compilation stage."""

from __future__ import annotations

from enum import Enum

from texmirror.source import SourcePosition, SourceText


class TexMirrorError(Exception):
    """Base class for all compilation failures."""

    position: SourcePosition | None = None
    source: SourceText | None = None

    def diagnostic(self) -> str:
        """The message, prefixed with ``file:line:column`` and followed by the offending line."""
        if self.position is None:
            return str(self)
        if self.source is None:
            return f"{self.position}: {self}"
        excerpt = self.source.excerpt(self.position)
        message = f"{self.source.location(self.position)}: {self}"
        return f"{message}\n{excerpt}" if excerpt else message


class LexErrorKind(str, Enum):
    UNTERMINATED_GROUP = "unterminated group"
    UNTERMINATED_MATH = "unterminated math"


class LexError(TexMirrorError):
    def __init__(self, kind: LexErrorKind, position: SourcePosition) -> None:
        super().__init__(kind.value)
        self.kind = kind
        self.position = position


class ParseErrorKind(str, Enum):
    UNKNOWN_CONTROL_SEQUENCE = "unknown control sequence"
    UNEXPECTED_ENVIRONMENT = "unexpected environment"
    MALFORMED_EQUATION_ENVIRONMENT = "malformed equation environment"
    UNEXPECTED_TOKEN = "unexpected token"


class ParseError(TexMirrorError):
    def __init__(self, kind: ParseErrorKind, position: SourcePosition, detail: str = "") -> None:
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)
        self.kind = kind
        self.position = position
        self.detail = detail


class ResolveError(TexMirrorError):
    """Raised by the cross-reference resolver."""


class DuplicateLabelError(ResolveError):
    def __init__(self, name: str, position: SourcePosition | None = None) -> None:
        super().__init__(f"label {name!r} is declared more than once")
        self.name = name
        self.position = position


class UnresolvedReferenceError(ResolveError):
    def __init__(self, name: str, kind: str = "reference", position: SourcePosition | None = None) -> None:
        if kind == "citation":
            message = f"citation key {name!r} is not in the bibliography"
        else:
            message = f"reference to undeclared label {name!r}"
        super().__init__(message)
        self.name = name
        self.kind = kind
        self.position = position


class OrphanLabelError(ResolveError):
    def __init__(self, name: str, position: SourcePosition | None = None) -> None:
        super().__init__(f"label {name!r} is not inside a numbered section, block, item or equation")
        self.name = name
        self.position = position


class BibParseError(TexMirrorError):
    def __init__(self, position: SourcePosition, message: str) -> None:
        super().__init__(message)
        self.position = position
        self.message = message


class RenderStage(str, Enum):
    TYPESET = "typeset"
    CROP = "crop"
    TRACE = "trace"
    TIMEOUT = "timeout"


class RenderError(TexMirrorError):
    def __init__(self, stage: RenderStage, formula_source: str, message: str) -> None:
        super().__init__(f"{stage.value} failed for formula {formula_source!r}: {message}")
        self.stage = stage
        self.formula_source = formula_source
        self.message = message


class RenderFailures(TexMirrorError):
    """One or more formulas could not be rendered; the rest of the document was emitted."""

    def __init__(self, errors: list[RenderError]) -> None:
        super().__init__(f"{len(errors)} formula(s) failed to render")
        self.errors = errors
