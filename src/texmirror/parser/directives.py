"""Ignore-directive preprocessing.

A line consisting of ``% LATEX_TO_HTML_IGNORE`` marks the line right after it
as pdf-only: it is dropped before tokenization so the web build never sees it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

IGNORE_MARKER = "LATEX_TO_HTML_IGNORE"


@dataclass(slots=True)
class FilteredSource:
    text: str
    # line_map[i] is the 1-based line number in the original file of output line i + 1.
    line_map: list[int] = field(default_factory=list)
    ignored_lines: list[int] = field(default_factory=list)

    def original_line(self, line: int) -> int:
        if 1 <= line <= len(self.line_map):
            return self.line_map[line - 1]
        return line


class Preprocessor:
    """Drop every line that immediately follows an ignore-directive line."""

    def __init__(self, marker: str = IGNORE_MARKER) -> None:
        if not marker or any(ch.isspace() for ch in marker):
            raise ValueError(f"Invalid ignore marker: {marker!r}")
        self.marker = marker
        self._pattern = re.compile(rf"^[ \t]*%[ \t]*{re.escape(marker)}[ \t]*$")

    def is_directive(self, line: str) -> bool:
        return self._pattern.match(line) is not None

    def filter(self, text: str, *, first_line: int = 1) -> FilteredSource:
        lines = text.replace("\r\n", "\n").split("\n")
        kept: list[str] = []
        line_map: list[int] = []
        ignored: list[int] = []

        suppress_next = False
        for idx, line in enumerate(lines):
            lineno = first_line + idx
            suppressed = suppress_next
            # A suppressed directive still marks its own successor.
            suppress_next = self.is_directive(line)
            if suppressed:
                ignored.append(lineno)
                continue
            kept.append(line)
            line_map.append(lineno)

        return FilteredSource(text="\n".join(kept), line_map=line_map, ignored_lines=ignored)
