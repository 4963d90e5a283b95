"""Source positions and diagnostic excerpts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class SourcePosition:
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


@dataclass(slots=True)
class SourceText:
    """Original file contents, used to print the offending line of a diagnostic."""

    text: str
    path: Path | None = None

    def excerpt(self, position: SourcePosition) -> str:
        lines = self.text.splitlines()
        if not 1 <= position.line <= len(lines):
            return ""
        line = lines[position.line - 1].expandtabs(1)
        gutter = f"{position.line} | "
        caret = " " * (len(gutter) + max(position.column - 1, 0)) + "^"
        return f"{gutter}{line}\n{caret}"

    def location(self, position: SourcePosition) -> str:
        name = str(self.path) if self.path is not None else "<input>"
        return f"{name}:{position}"
