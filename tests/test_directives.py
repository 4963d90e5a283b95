import pytest

from texmirror.parser.directives import Preprocessor


def test_marker_hides_the_following_line_only() -> None:
    source = "a\n% LATEX_TO_HTML_IGNORE\nb\nc"

    filtered = Preprocessor().filter(source)

    assert filtered.text == "a\n% LATEX_TO_HTML_IGNORE\nc"
    assert filtered.line_map == [1, 2, 4]
    assert filtered.ignored_lines == [3]
    assert filtered.original_line(3) == 4


def test_consecutive_markers_each_hide_their_successor() -> None:
    source = "%LATEX_TO_HTML_IGNORE\n% LATEX_TO_HTML_IGNORE\nx\ny"

    filtered = Preprocessor().filter(source)

    assert filtered.text == "%LATEX_TO_HTML_IGNORE\ny"
    assert filtered.ignored_lines == [2, 3]
    assert filtered.line_map == [1, 4]


def test_marker_on_last_line_hides_nothing() -> None:
    filtered = Preprocessor().filter("a\n% LATEX_TO_HTML_IGNORE")

    assert filtered.text == "a\n% LATEX_TO_HTML_IGNORE"
    assert filtered.ignored_lines == []


def test_directive_detection_is_strict() -> None:
    pre = Preprocessor()

    assert pre.is_directive("  %  LATEX_TO_HTML_IGNORE  ")
    assert pre.is_directive("\t%LATEX_TO_HTML_IGNORE")
    assert not pre.is_directive("% LATEX_TO_HTML_IGNORE please")
    assert not pre.is_directive("text % LATEX_TO_HTML_IGNORE")


def test_custom_marker() -> None:
    filtered = Preprocessor("WEB_SKIP").filter("% WEB_SKIP\nhidden\nshown")

    assert filtered.text == "% WEB_SKIP\nshown"


@pytest.mark.parametrize("marker", ["", "TWO WORDS"])
def test_invalid_marker_is_rejected(marker: str) -> None:
    with pytest.raises(ValueError):
        Preprocessor(marker)
