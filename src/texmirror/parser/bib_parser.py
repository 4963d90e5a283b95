"""BibTeX source parser."""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field
from pathlib import Path

from texmirror.errors import BibParseError
from texmirror.source import SourcePosition

_IDENT_RE = re.compile(r"[A-Za-z][A-Za-z0-9_-]*")
_KEY_RE = re.compile(r"[^\s,{}()\"=#%]+")
_BARE_VALUE_RE = re.compile(r"[A-Za-z0-9_.:+/-]+")
_SKIPPED_TYPES = ("comment", "string", "preamble")
# An "@" inside a word (an e-mail address) or not followed by a type name is comment text.
_ENTRY_START_RE = re.compile(r"(?<![\w.+-])@\s*[A-Za-z]")


@dataclass(slots=True)
class BibEntry:
    key: str
    entry_type: str
    fields: dict[str, str] = field(default_factory=dict)
    position: SourcePosition | None = None

    def get(self, name: str) -> str | None:
        return self.fields.get(name)


class BibParser:
    """Parse ``@type{key, field = value, ...}`` entries.

    Anything outside an entry is treated as a comment, as BibTeX does.
    Field names are lower-cased; all fields are kept, known or not.
    """

    def parse(self, input_path: Path) -> dict[str, BibEntry]:
        input_path = Path(input_path)
        return self.parse_text(input_path.read_text(encoding="utf-8"))

    def parse_text(self, text: str) -> dict[str, BibEntry]:
        return _BibReader(text).entries()


class _BibReader:
    def __init__(self, text: str) -> None:
        self.text = text.replace("\r\n", "\n")
        self.i = 0
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", self.text)]

    def position(self, offset: int | None = None) -> SourcePosition:
        offset = self.i if offset is None else offset
        line_idx = bisect_right(self._line_starts, offset) - 1
        return SourcePosition(line=line_idx + 1, column=offset - self._line_starts[line_idx] + 1)

    def fail(self, message: str, offset: int | None = None) -> BibParseError:
        return BibParseError(self.position(offset), message)

    def entries(self) -> dict[str, BibEntry]:
        result: dict[str, BibEntry] = {}
        while True:
            at = self.text.find("@", self.i)
            if at == -1:
                return result
            if _ENTRY_START_RE.match(self.text, at) is None:
                self.i = at + 1
                continue
            self.i = at
            entry = self._entry()
            if entry is None:
                continue
            if entry.key in result:
                raise self.fail(f"duplicate entry key {entry.key!r}", at)
            result[entry.key] = entry

    def _skip_ws(self) -> None:
        while self.i < len(self.text) and self.text[self.i].isspace():
            self.i += 1

    def _peek(self) -> str:
        return self.text[self.i] if self.i < len(self.text) else ""

    def _expect(self, ch: str) -> None:
        self._skip_ws()
        if self._peek() != ch:
            found = repr(self._peek()) if self._peek() else "end of input"
            raise self.fail(f"expected {ch!r}, found {found}")
        self.i += 1

    def _match(self, pattern: re.Pattern[str], what: str) -> str:
        self._skip_ws()
        match = pattern.match(self.text, self.i)
        if match is None:
            raise self.fail(f"expected {what}")
        self.i = match.end()
        return match.group(0)

    def _entry(self) -> BibEntry | None:
        start = self.i
        self.i += 1  # '@'
        entry_type = self._match(_IDENT_RE, "entry type").lower()
        self._skip_ws()
        opener = self._peek()
        if opener not in ("{", "("):
            raise self.fail(f"expected '{{' after @{entry_type}")
        closer = "}" if opener == "{" else ")"

        if entry_type in _SKIPPED_TYPES:
            self._balanced(opener, closer)
            return None

        self.i += 1
        key = self._match(_KEY_RE, "citation key")
        entry = BibEntry(key=key, entry_type=entry_type, position=self.position(start))

        while True:
            self._skip_ws()
            ch = self._peek()
            if ch == closer:
                self.i += 1
                return entry
            if ch != ",":
                raise self.fail(f"expected ',' or {closer!r} in entry {key!r}")
            self.i += 1
            self._skip_ws()
            if self._peek() == closer:
                self.i += 1
                return entry
            name = self._match(_IDENT_RE, "field name").lower()
            self._expect("=")
            value = self._value()
            if name in entry.fields:
                raise self.fail(f"duplicate field {name!r} in entry {key!r}")
            entry.fields[name] = value

    def _value(self) -> str:
        self._skip_ws()
        ch = self._peek()
        if ch == "{":
            start = self.i + 1
            self._balanced("{", "}")
            return _squash(self.text[start : self.i - 1])
        if ch == '"':
            start = self.i
            self.i += 1
            depth = 0
            while self.i < len(self.text):
                c = self.text[self.i]
                if c == "{":
                    depth += 1
                elif c == "}":
                    depth -= 1
                elif c == '"' and depth == 0:
                    self.i += 1
                    return _squash(self.text[start + 1 : self.i - 1])
                self.i += 1
            raise self.fail("unterminated quoted value", start)
        return self._match(_BARE_VALUE_RE, "field value")

    def _balanced(self, opener: str, closer: str) -> None:
        start = self.i
        depth = 0
        while self.i < len(self.text):
            c = self.text[self.i]
            self.i += 1
            if c == opener:
                depth += 1
            elif c == closer:
                depth -= 1
                if depth == 0:
                    return
        raise self.fail("unbalanced braces", start)


def _squash(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()
