"""Document tree produced by the parser and annotated by later stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

from texmirror.source import SourcePosition

if TYPE_CHECKING:
    from texmirror.errors import RenderError
    from texmirror.mathsvg.cache import MathAsset
    from texmirror.resolver import LabelTarget

THEOREM_KINDS = ("theorem", "proposition", "definition", "lemma", "remark", "corollary", "example")


@dataclass(slots=True)
class Text:
    text: str


@dataclass(slots=True)
class InlineMath:
    source: str
    position: SourcePosition | None = None
    asset: MathAsset | None = None
    error: RenderError | None = None


@dataclass(slots=True)
class DisplayMath:
    source: str
    label: str | None = None
    numbered: bool = True
    # "equation", "equation*", "$$" or "mathpar"
    form: str = "equation"
    position: SourcePosition | None = None
    number: str | None = None
    anchor: str | None = None
    asset: MathAsset | None = None
    error: RenderError | None = None


@dataclass(slots=True)
class Label:
    name: str
    position: SourcePosition | None = None
    anchor: str | None = None
    # False when the anchor id is carried by the labelled heading or block itself.
    standalone: bool = True


@dataclass(slots=True)
class Ref:
    name: str
    position: SourcePosition | None = None
    target: LabelTarget | None = None

    @property
    def display(self) -> str:
        return self.target.number if self.target else "??"


@dataclass(slots=True)
class Eqref:
    name: str
    position: SourcePosition | None = None
    target: LabelTarget | None = None

    @property
    def display(self) -> str:
        return f"({self.target.number})" if self.target else "(??)"


@dataclass(slots=True)
class Emph:
    children: list[Inline] = field(default_factory=list)


@dataclass(slots=True)
class Bold:
    children: list[Inline] = field(default_factory=list)


@dataclass(slots=True)
class Italic:
    children: list[Inline] = field(default_factory=list)


@dataclass(slots=True)
class BibliographyCite:
    keys: list[str]
    note: list[Inline] | None = None
    position: SourcePosition | None = None
    numbers: list[int] = field(default_factory=list)
    anchors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Qed:
    pass


@dataclass(slots=True)
class Footnote:
    children: list[Inline] = field(default_factory=list)
    position: SourcePosition | None = None
    number: str | None = None
    anchor: str | None = None
    ref_anchor: str | None = None


Inline = (
    Text | InlineMath | DisplayMath | Label | Ref | Eqref | Emph | Bold | Italic | BibliographyCite | Qed | Footnote
)


@dataclass(slots=True)
class Paragraph:
    children: list[Inline] = field(default_factory=list)


@dataclass(slots=True)
class ListItem:
    blocks: list[Block] = field(default_factory=list)
    number: str | None = None
    anchor: str | None = None


@dataclass(slots=True)
class ListBlock:
    ordered: bool
    items: list[ListItem] = field(default_factory=list)


@dataclass(slots=True)
class TheoremLikeBlock:
    kind: str
    note: list[Inline] | None = None
    blocks: list[Block] = field(default_factory=list)
    number: str | None = None
    anchor: str | None = None

    @property
    def heading(self) -> str:
        return self.kind.capitalize()


@dataclass(slots=True)
class ProofBlock:
    blocks: list[Block] = field(default_factory=list)


Block = Paragraph | ListBlock | TheoremLikeBlock | ProofBlock


@dataclass(slots=True)
class Title:
    children: list[Inline] = field(default_factory=list)


@dataclass(slots=True)
class Author:
    children: list[Inline] = field(default_factory=list)


@dataclass(slots=True)
class Maketitle:
    pass


@dataclass(slots=True)
class Abstract:
    blocks: list[Block] = field(default_factory=list)


@dataclass(slots=True)
class Section:
    title: list[Inline] = field(default_factory=list)
    numbered: bool = True
    number: str | None = None
    anchor: str | None = None

    level = 1


@dataclass(slots=True)
class Subsection:
    title: list[Inline] = field(default_factory=list)
    numbered: bool = True
    number: str | None = None
    anchor: str | None = None

    level = 2


@dataclass(slots=True)
class Bibliography:
    position: SourcePosition | None = None


Node = Title | Author | Maketitle | Abstract | Section | Subsection | Bibliography | Block | Inline | ListItem


@dataclass(slots=True)
class Document:
    preamble: str = ""
    parts: list[Node] = field(default_factory=list)

    @property
    def title(self) -> Title | None:
        for part in self.parts:
            if isinstance(part, Title):
                return part
        return None


def iter_children(node: Node) -> list[Node]:
    """Direct children of ``node`` in document order."""
    if isinstance(node, (Paragraph, Emph, Bold, Italic, Footnote, Title, Author)):
        return list(node.children)
    if isinstance(node, (Section, Subsection)):
        return list(node.title)
    if isinstance(node, ListBlock):
        return list(node.items)
    if isinstance(node, (ListItem, ProofBlock, Abstract)):
        return list(node.blocks)
    if isinstance(node, TheoremLikeBlock):
        return [*(node.note or []), *node.blocks]
    if isinstance(node, BibliographyCite):
        return list(node.note or [])
    return []


def walk(nodes: list[Node]) -> Iterator[Node]:
    """Depth-first, pre-order traversal: the order in which nodes appear in the source."""
    for node in nodes:
        yield node
        yield from walk(iter_children(node))


def math_nodes(document: Document) -> list[InlineMath | DisplayMath]:
    return [node for node in walk(document.parts) if isinstance(node, (InlineMath, DisplayMath))]
