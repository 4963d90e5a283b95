"""Two-pass cross-reference resolution.

Pass 1 walks the tree in document order, numbers sections, theorem-like
blocks, enumerate items and equations, and records every ``\\label`` in a
:class:`NumberingTable`. Pass 2 walks the tree again and points every
``\\ref``/``\\eqref`` at its table entry, numbers citations and footnotes
and gives them anchors that cannot clash with the label anchors.
Nothing is numbered lazily, so references may precede their labels.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

from texmirror.bibliography import CitationIndex, cite_anchor
from texmirror.errors import DuplicateLabelError, OrphanLabelError, UnresolvedReferenceError
from texmirror.parser.base import (
    BibliographyCite,
    DisplayMath,
    Document,
    Eqref,
    Footnote,
    Label,
    ListBlock,
    ListItem,
    Node,
    Ref,
    Section,
    Subsection,
    TheoremLikeBlock,
    iter_children,
    walk,
)
from texmirror.parser.bib_parser import BibEntry
from texmirror.source import SourcePosition

LOG = logging.getLogger("texmirror")

Entity = Section | Subsection | TheoremLikeBlock | ListItem | DisplayMath


@dataclass(frozen=True, slots=True)
class LabelTarget:
    name: str
    kind: str
    number: str
    anchor: str


class NumberingTable(Mapping[str, LabelTarget]):
    """Read-only mapping from label name to its resolved target."""

    def __init__(self, targets: dict[str, LabelTarget], anchors: set[str] | None = None) -> None:
        self._targets = dict(targets)
        # Every HTML id handed out while numbering, label anchors included.
        if anchors is None:
            anchors = {target.anchor for target in targets.values()}
        self.anchors = frozenset(anchors)

    def __getitem__(self, name: str) -> LabelTarget:
        return self._targets[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def of_kind(self, kind: str) -> list[LabelTarget]:
        return [target for target in self._targets.values() if target.kind == kind]


@dataclass(slots=True)
class Resolution:
    numbering: NumberingTable
    citations: CitationIndex
    footnotes: list[Footnote] = field(default_factory=list)


class Resolver:
    def __init__(self, bibliography: dict[str, BibEntry] | None = None) -> None:
        self.bibliography = bibliography or {}

    def resolve(self, document: Document) -> Resolution:
        numbering = self.collect(document)
        citations = self.rewrite(document, numbering)
        footnotes = [node for node in walk(document.parts) if isinstance(node, Footnote)]
        LOG.info(
            "Resolved %d label(s), %d cited reference(s), %d footnote(s)",
            len(numbering),
            len(citations.order),
            len(footnotes),
        )
        return Resolution(numbering=numbering, citations=citations, footnotes=footnotes)

    def collect(self, document: Document) -> NumberingTable:
        collector = _Collector()
        collector.visit(document.parts)
        return NumberingTable(collector.targets, collector.anchors)

    def rewrite(self, document: Document, numbering: NumberingTable) -> CitationIndex:
        """Point references at their targets, number citations and footnotes.

        Citation and footnote anchors are deduplicated against the label
        anchors, so no two elements of the page share an id.
        """
        citations = CitationIndex(entries=self.bibliography)
        used = set(numbering.anchors)
        footnotes = 0
        for node in walk(document.parts):
            if isinstance(node, (Ref, Eqref)):
                if node.name not in numbering:
                    raise UnresolvedReferenceError(node.name, position=node.position)
                node.target = numbering[node.name]
            elif isinstance(node, BibliographyCite):
                node.numbers = [citations.cite(key, node.position) for key in node.keys]
                for key in node.keys:
                    if key not in citations.anchors:
                        citations.anchors[key] = _dedupe_anchor(cite_anchor(key), used)
                node.anchors = [citations.anchors[key] for key in node.keys]
            elif isinstance(node, Footnote):
                footnotes += 1
                node.number = str(footnotes)
                node.anchor = _dedupe_anchor(f"fn-{footnotes}", used)
                node.ref_anchor = _dedupe_anchor(f"fnref-{footnotes}", used)
        return citations


class _Collector:
    def __init__(self) -> None:
        self.counters = {"section": 0, "subsection": 0, "theorem": 0, "equation": 0}
        self.targets: dict[str, LabelTarget] = {}
        self.anchors: set[str] = set()
        self.heading: tuple[Entity, str] | None = None
        self.enclosing: list[tuple[Entity, str]] = []

    def visit(self, nodes: list[Node]) -> None:
        for node in nodes:
            if isinstance(node, Section):
                node.anchor = None
                if node.numbered:
                    self.counters["section"] += 1
                    self.counters["subsection"] = 0
                    node.number = str(self.counters["section"])
                    self.heading = (node, "section")
                self.visit(node.title)

            elif isinstance(node, Subsection):
                node.anchor = None
                if node.numbered:
                    self.counters["subsection"] += 1
                    node.number = f"{self.counters['section']}.{self.counters['subsection']}"
                    self.heading = (node, "subsection")
                self.visit(node.title)

            elif isinstance(node, TheoremLikeBlock):
                node.anchor = None
                self.counters["theorem"] += 1
                node.number = str(self.counters["theorem"])
                self.enclosing.append((node, node.kind))
                self.visit(iter_children(node))
                self.enclosing.pop()

            elif isinstance(node, ListBlock):
                for idx, item in enumerate(node.items, start=1):
                    item.anchor = None
                    if node.ordered:
                        item.number = str(idx)
                        self.enclosing.append((item, "item"))
                        self.visit(item.blocks)
                        self.enclosing.pop()
                    else:
                        self.visit(item.blocks)

            elif isinstance(node, DisplayMath):
                node.anchor = None
                if node.numbered:
                    self.counters["equation"] += 1
                    node.number = str(self.counters["equation"])
                if node.label is not None:
                    self._declare(node.label, node, "equation", position=node.position)

            elif isinstance(node, Label):
                owner = self.enclosing[-1] if self.enclosing else self.heading
                if owner is None:
                    raise OrphanLabelError(node.name, position=node.position)
                entity, kind = owner
                self._declare(node.name, entity, kind, node, node.position)

            else:
                self.visit(iter_children(node))

    def _declare(
        self,
        name: str,
        entity: Entity,
        kind: str,
        label: Label | None = None,
        position: SourcePosition | None = None,
    ) -> None:
        if name in self.targets:
            raise DuplicateLabelError(name, position)

        anchor = _dedupe_anchor(_label_slug(name), self.anchors)
        if entity.anchor is None:
            entity.anchor = anchor
            if label is not None:
                label.standalone = False
        elif label is not None:
            label.standalone = True
        if label is not None:
            label.anchor = anchor

        assert entity.number is not None
        self.targets[name] = LabelTarget(name=name, kind=kind, number=entity.number, anchor=anchor)


def _label_slug(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "-", name).strip("-").lower() or "label"


def _dedupe_anchor(anchor: str, used: set[str]) -> str:
    if anchor not in used:
        used.add(anchor)
        return anchor

    idx = 2
    while True:
        candidate = f"{anchor}-{idx}"
        if candidate not in used:
            used.add(candidate)
            return candidate
        idx += 1
