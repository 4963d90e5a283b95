from pathlib import Path

import pytest

from texmirror.errors import DuplicateLabelError, OrphanLabelError, UnresolvedReferenceError
from texmirror.parser.base import (
    BibliographyCite,
    DisplayMath,
    Eqref,
    Footnote,
    Label,
    Ref,
    Section,
    TheoremLikeBlock,
    walk,
)
from texmirror.parser.bib_parser import BibEntry, BibParser
from texmirror.parser.tex_parser import TeXParser
from texmirror.resolver import Resolver
from texmirror.source import SourcePosition

NUMBERED = r"""
\section{Intro}\label{sec:intro}
\begin{theorem}\label{thm:a}
A.
\end{theorem}
\begin{lemma}
B.
\end{lemma}
\begin{equation}
x
\end{equation}
\begin{equation}\label{eq:y}
y
\end{equation}
\subsection{Sub}\label{sub}
\section*{Extra}
\section{Two}\label{sec:two}
\subsection{Again}\label{sub:again}
\begin{definition}\label{def:c}
C.
\end{definition}
\begin{enumerate}
\item first
\item second\label{item:two}
\end{enumerate}

See \ref{thm:a}, \eqref{eq:y}, \ref{item:two} and \ref{later}.
\begin{remark}\label{later}
R.
\end{remark}
"""


def _resolve(tex: str, entries=None):
    document = TeXParser().parse_text(tex)
    return document, Resolver(entries).resolve(document)


def test_numbering_table() -> None:
    _document, resolution = _resolve(NUMBERED)
    table = resolution.numbering

    assert {name: (target.kind, target.number) for name, target in table.items()} == {
        "sec:intro": ("section", "1"),
        "thm:a": ("theorem", "1"),
        "eq:y": ("equation", "2"),
        "sub": ("subsection", "1.1"),
        "sec:two": ("section", "2"),
        "sub:again": ("subsection", "2.1"),
        "def:c": ("definition", "3"),
        "item:two": ("item", "2"),
        "later": ("remark", "4"),
    }
    assert table["sec:intro"].anchor == "sec-intro"
    assert [target.name for target in table.of_kind("section")] == ["sec:intro", "sec:two"]


def test_references_are_rewritten_including_forward_ones() -> None:
    document, _resolution = _resolve(NUMBERED)

    refs = [node for node in walk(document.parts) if isinstance(node, (Ref, Eqref))]
    assert [node.display for node in refs] == ["1", "(2)", "2", "4"]
    assert refs[1].target.anchor == "eq-y"


def test_labels_give_their_anchor_to_the_numbered_entity() -> None:
    document, _resolution = _resolve(NUMBERED)

    section = document.parts[0]
    theorem = next(part for part in document.parts if isinstance(part, TheoremLikeBlock))
    assert isinstance(section, Section)
    assert section.number == "1"
    assert section.anchor == "sec-intro"
    assert theorem.anchor == "thm-a"
    labels = [node for node in walk(document.parts) if isinstance(node, Label)]
    assert not any(label.standalone for label in labels)


def test_second_label_on_same_entity_keeps_its_own_anchor() -> None:
    document, resolution = _resolve("\\section{A}\\label{first}\\label{second}\n")

    first, second = [node for node in walk(document.parts) if isinstance(node, Label)]
    assert not first.standalone
    assert second.standalone
    assert second.anchor == "second"
    assert resolution.numbering["second"].number == "1"


def test_colliding_anchors_are_deduplicated() -> None:
    _document, resolution = _resolve("\\section{A}\\label{a:b}\n\\section{B}\\label{a-b}\n")

    assert resolution.numbering["a:b"].anchor == "a-b"
    assert resolution.numbering["a-b"].anchor == "a-b-2"


def test_resolution_is_deterministic() -> None:
    document, first = _resolve(NUMBERED)
    second = Resolver().resolve(document)

    assert dict(first.numbering) == dict(second.numbering)


def test_duplicate_label() -> None:
    tex = "\\section{A}\\label{x}\n\\section{B}\n\\label{x}\n"

    with pytest.raises(DuplicateLabelError) as excinfo:
        _resolve(tex)

    assert excinfo.value.name == "x"
    assert excinfo.value.position == SourcePosition(3, 1)


def test_unresolved_reference() -> None:
    with pytest.raises(UnresolvedReferenceError) as excinfo:
        _resolve("\\section{A}\nSee \\ref{missing}.\n")

    assert excinfo.value.name == "missing"
    assert excinfo.value.kind == "reference"
    assert excinfo.value.position == SourcePosition(2, 5)


def test_label_outside_numbered_entity() -> None:
    with pytest.raises(OrphanLabelError):
        _resolve("Intro text\\label{lost}\n")


def test_starred_heading_does_not_own_labels() -> None:
    with pytest.raises(OrphanLabelError):
        _resolve("\\section*{Preface}\\label{pre}\n")


def test_citations_are_resolved(bib_path: Path) -> None:
    entries = BibParser().parse(bib_path)

    document, resolution = _resolve("See \\cite{lamport94} and \\cite{knuth84,lamport94}.", entries)

    cites = [node for node in walk(document.parts) if isinstance(node, BibliographyCite)]
    assert [node.numbers for node in cites] == [[1], [2, 1]]
    assert [entry.key for _number, entry in resolution.citations.cited_entries()] == ["lamport94", "knuth84"]


def test_unknown_citation(bib_path: Path) -> None:
    entries = BibParser().parse(bib_path)

    with pytest.raises(UnresolvedReferenceError) as excinfo:
        _resolve("See \\cite{turing36}.", entries)

    assert excinfo.value.kind == "citation"
    assert excinfo.value.position == SourcePosition(1, 5)


def test_citation_anchors_are_unique() -> None:
    entries = {key: BibEntry(key=key, entry_type="misc", fields={"title": key}) for key in ("a:b", "a-b")}

    document, resolution = _resolve("\\section{Refs}\\label{cite:a-b}\nSee \\cite{a:b, a-b} and \\cite{a-b}.", entries)

    section = document.parts[0]
    assert section.anchor == "cite-a-b"
    assert resolution.citations.anchors == {"a:b": "cite-a-b-2", "a-b": "cite-a-b-3"}
    cites = [node for node in walk(document.parts) if isinstance(node, BibliographyCite)]
    assert [node.anchors for node in cites] == [["cite-a-b-2", "cite-a-b-3"], ["cite-a-b-3"]]


def test_footnotes_are_numbered_in_document_order() -> None:
    tex = "\\section{A}\\label{fn-1}\nOne\\footnote{first}.\n\n\\section{B}\nTwo\\footnote{second \\ref{fn-1}}."

    document, resolution = _resolve(tex)

    notes = [node for node in walk(document.parts) if isinstance(node, Footnote)]
    assert resolution.footnotes == notes
    assert [(note.number, note.anchor, note.ref_anchor) for note in notes] == [
        ("1", "fn-1-2", "fnref-1"),
        ("2", "fn-2", "fnref-2"),
    ]
    (ref,) = [node for node in walk(document.parts) if isinstance(node, Ref)]
    assert ref.display == "1"


def test_labelled_double_dollar_shares_the_equation_counter() -> None:
    tex = "\\begin{equation}a\\end{equation}\n$$ b $$\n$$\\label{eq:c} c$$\n\\eqref{eq:c}"

    document, resolution = _resolve(tex)

    maths = [node for node in walk(document.parts) if isinstance(node, DisplayMath)]
    assert [node.number for node in maths] == ["1", None, "2"]
    assert resolution.numbering["eq:c"].number == "2"
    (eqref,) = [node for node in walk(document.parts) if isinstance(node, Eqref)]
    assert eqref.display == "(2)"
