"""Citation numbering and reference list formatting."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from texmirror.errors import UnresolvedReferenceError
from texmirror.parser.bib_parser import BibEntry
from texmirror.source import SourcePosition

_AND_RE = re.compile(r"\s+and\s+")
_PAGES_RE = re.compile(r"^\s*(\w+)\s*(?:-{1,3}|–)\s*(\w+)\s*$")


@dataclass(slots=True)
class CitationIndex:
    """Numbers cited entries in order of their first citation."""

    entries: dict[str, BibEntry]
    order: list[str] = field(default_factory=list)
    numbers: dict[str, int] = field(default_factory=dict)
    anchors: dict[str, str] = field(default_factory=dict)

    def cite(self, key: str, position: SourcePosition | None = None) -> int:
        if key not in self.entries:
            raise UnresolvedReferenceError(key, kind="citation", position=position)
        if key not in self.numbers:
            self.order.append(key)
            self.numbers[key] = len(self.order)
        return self.numbers[key]

    def cited_entries(self) -> list[tuple[int, BibEntry]]:
        return [(self.numbers[key], self.entries[key]) for key in self.order]


def cite_anchor(key: str) -> str:
    """Preferred id of a reference list entry; the resolver makes it unique."""
    slug = re.sub(r"[^A-Za-z0-9]+", "-", key).strip("-").lower()
    return f"cite-{slug or 'entry'}"


def format_entry(entry: BibEntry) -> str:
    """Render one reference as plain text: ``Authors. Title. Venue, vol(num):pages, year.``"""
    out: list[str] = []

    authors = entry.get("author")
    if authors:
        out.append(f" {format_authors(authors)}.")

    title = entry.get("title")
    if title:
        out.append(f" {_clean(title)}.")

    venue = False
    for name in ("journal", "booktitle", "series"):
        value = entry.get(name)
        if value:
            out.append(f" {_clean(value)}")
            venue = True

    volume, number = entry.get("volume"), entry.get("number")
    if volume and number:
        out.append(f", {_clean(volume)}({_clean(number)})")
    elif volume:
        out.append(f", {_clean(volume)}")
    elif number:
        out.append(f", ({_clean(number)})")
    has_volume_or_number = bool(volume or number)

    pages = entry.get("pages")
    if pages:
        match = _PAGES_RE.match(pages)
        if has_volume_or_number:
            out.append(":")
        else:
            out.append(", pages " if match else ", page ")
        out.append(f"{match.group(1)}–{match.group(2)}" if match else _clean(pages))

    year = entry.get("year")
    if has_volume_or_number or pages:
        out.append(f", {_clean(year)}." if year else ".")
    elif year:
        out.append(f", {_clean(year)}." if venue else f" {_clean(year)}.")
    elif venue:
        out.append(".")

    return "".join(out).strip()


def format_authors(value: str) -> str:
    people = [_person(name) for name in _AND_RE.split(value.strip()) if name.strip()]
    if len(people) <= 1:
        return "".join(people)
    return ", ".join(people[:-1]) + " and " + people[-1]


def _person(name: str) -> str:
    name = _clean(name)
    if "," in name:
        last, _, first = name.partition(",")
        return f"{first.strip()} {last.strip()}".strip()
    return name


def _clean(value: str) -> str:
    value = value.replace("\\&", "&").replace("~", " ").replace("---", "—").replace("--", "–")
    value = value.replace("{", "").replace("}", "")
    return re.sub(r"\s+", " ", value).strip()
