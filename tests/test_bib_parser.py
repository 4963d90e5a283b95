from pathlib import Path

import pytest

from texmirror.errors import BibParseError
from texmirror.parser.bib_parser import BibParser
from texmirror.source import SourcePosition


def test_bib_parser_reads_entries(bib_path: Path) -> None:
    entries = BibParser().parse(bib_path)

    assert list(entries) == ["knuth84", "lamport94"]
    knuth = entries["knuth84"]
    assert knuth.entry_type == "article"
    assert knuth.get("author") == "Donald E. Knuth"
    assert knuth.get("journal") == "The Computer Journal"
    assert knuth.get("volume") == "27"
    assert knuth.get("pages") == "97--111"
    assert knuth.get("year") == "1984"
    assert knuth.get("publisher") is None
    assert entries["lamport94"].get("title") == r"{\LaTeX}: A Document Preparation System"


def test_quoted_values_parentheses_and_unknown_fields() -> None:
    text = """
Some free text that BibTeX ignores.
@Book(tex,
  Title = "The {\\TeX}book",
  Keywords = {typesetting,
              fonts}
)
"""
    entries = BibParser().parse_text(text)

    entry = entries["tex"]
    assert entry.entry_type == "book"
    assert entry.fields == {"title": "The {\\TeX}book", "keywords": "typesetting, fonts"}
    assert entry.position == SourcePosition(3, 1)


def test_comment_string_and_preamble_blocks_are_skipped() -> None:
    text = """
@comment{ this {is} ignored }
@string{acm = "ACM"}
@preamble{"\\newcommand{\\x}{y}"}
@misc{only, title = {Only}}
"""
    entries = BibParser().parse_text(text)

    assert list(entries) == ["only"]


def test_duplicate_key_is_an_error() -> None:
    text = "@misc{a, title={A}}\n@misc{a, title={B}}\n"

    with pytest.raises(BibParseError) as excinfo:
        BibParser().parse_text(text)

    assert excinfo.value.position == SourcePosition(2, 1)
    assert "duplicate" in excinfo.value.message


@pytest.mark.parametrize(
    "text",
    [
        "@misc{a, title {A}}",
        "@misc{a, title = {A}",
        "@misc{a title = {A}}",
        '@misc{a, title = "A}',
        "@misc{a, title = {A}, title = {B}}",
        "@misc a, title = {A}}",
    ],
)
def test_malformed_entries(text: str) -> None:
    with pytest.raises(BibParseError):
        BibParser().parse_text(text)


def test_at_signs_in_free_text_are_comments() -> None:
    text = """
Maintained by bib-admin@example.org, last sync @ 2024-05-01.
@misc{only, title = {Only}}
"""
    entries = BibParser().parse_text(text)

    assert list(entries) == ["only"]
