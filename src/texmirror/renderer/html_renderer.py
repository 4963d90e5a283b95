"""Render a resolved document tree into a static HTML directory."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from texmirror.bibliography import format_entry
from texmirror.parser.base import (
    Abstract,
    Author,
    Bibliography,
    BibliographyCite,
    Bold,
    DisplayMath,
    Document,
    Emph,
    Eqref,
    Footnote,
    Inline,
    InlineMath,
    Italic,
    Label,
    ListBlock,
    Maketitle,
    Node,
    Paragraph,
    ProofBlock,
    Qed,
    Ref,
    Section,
    Subsection,
    Text,
    TheoremLikeBlock,
    Title,
    math_nodes,
)
from texmirror.resolver import Resolution

LOG = logging.getLogger("texmirror")

INDEX_NAME = "index.html"
STYLE_NAME = "style.css"
MATH_DIR = "img-math"

# TeX points per CSS em at the 10pt body size the formulas are set in.
_PT_PER_EM = 10.0


@dataclass(slots=True)
class EmitResult:
    index_path: Path
    written: list[Path] = field(default_factory=list)
    removed: list[Path] = field(default_factory=list)


class HTMLRenderer:
    """Render the document tree into ``index.html`` plus its assets."""

    def __init__(self, template_path: Path | None = None) -> None:
        if template_path is None:
            template_path = Path(__file__).resolve().parent.parent / "template" / INDEX_NAME

        loader = FileSystemLoader(str(template_path.parent))
        self._env = Environment(loader=loader, autoescape=True, trim_blocks=True, lstrip_blocks=True)
        self._template_name = template_path.name
        self._style_path = template_path.parent / STYLE_NAME

    def render(self, document: Document, resolution: Resolution) -> str:
        parts: list[dict[str, object]] = []
        has_bibliography = False
        for node in document.parts:
            if isinstance(node, Bibliography):
                has_bibliography = True
                parts.append({"kind": "bibliography"})
                continue
            fragment = self._render_part(node, document)
            if fragment:
                parts.append({"kind": "html", "html": fragment})

        references = [
            {"anchor": resolution.citations.anchors[entry.key], "number": number, "text": format_entry(entry)}
            for number, entry in resolution.citations.cited_entries()
        ]
        if references and not has_bibliography:
            parts.append({"kind": "bibliography"})

        footnotes = [
            {
                "anchor": note.anchor,
                "ref_anchor": note.ref_anchor,
                "number": note.number,
                "html": self._render_inlines(note.children),
            }
            for note in resolution.footnotes
        ]

        template = self._env.get_template(self._template_name)
        return template.render(
            page_title=_plain_text(document.title.children) if document.title else "Untitled",
            parts=parts,
            references=references,
            footnotes=footnotes,
        )

    def write(self, output_dir: Path, document: Document, resolution: Resolution) -> EmitResult:
        """Write the page, the style sheet and one SVG per distinct formula.

        Files whose content is unchanged are left untouched, and SVGs no
        longer referenced by the document are removed.
        """
        output_dir = Path(output_dir)
        math_dir = output_dir / MATH_DIR
        math_dir.mkdir(parents=True, exist_ok=True)

        result = EmitResult(index_path=output_dir / INDEX_NAME)
        wanted: dict[str, bytes] = {}
        for node in math_nodes(document):
            if node.asset is not None:
                wanted[node.asset.filename] = node.asset.svg

        for name, svg in sorted(wanted.items()):
            path = math_dir / name
            if _write_if_changed(path, svg):
                result.written.append(path)

        for stale in sorted(math_dir.glob("*.svg")):
            if stale.name not in wanted:
                stale.unlink()
                result.removed.append(stale)

        style = self._style_path.read_bytes()
        if _write_if_changed(output_dir / STYLE_NAME, style):
            result.written.append(output_dir / STYLE_NAME)

        page = self.render(document, resolution).encode("utf-8")
        if _write_if_changed(result.index_path, page):
            result.written.append(result.index_path)

        LOG.info(
            "Wrote %s: %d file(s) updated, %d stale formula(s) removed",
            output_dir,
            len(result.written),
            len(result.removed),
        )
        return result

    # Block level

    def _render_part(self, node: Node, document: Document) -> str:
        if isinstance(node, (Title, Author)):
            return ""

        if isinstance(node, Maketitle):
            title = document.title
            if title is None:
                return ""
            out = f'<h1 class="title">{self._render_inlines(title.children)}</h1>'
            authors = [part for part in document.parts if isinstance(part, Author)]
            for author in authors:
                out += f'\n<div class="author">{self._render_inlines(author.children)}</div>'
            return out

        if isinstance(node, Abstract):
            body = self._render_blocks(node.blocks)
            return f'<div class="abstract">\n<h2>Abstract</h2>\n{body}\n</div>'

        if isinstance(node, (Section, Subsection)):
            tag = f"h{node.level + 1}"
            number = f'<span class="section-number">{node.number}</span> ' if node.number else ""
            return f"<{tag}{_id_attr(node.anchor)}>{number}{self._render_inlines(node.title)}</{tag}>"

        return self._render_block(node)

    def _render_blocks(self, blocks: list) -> str:
        return "\n".join(fragment for fragment in (self._render_block(block) for block in blocks) if fragment)

    def _render_block(self, block: Node) -> str:
        if isinstance(block, Paragraph):
            content = self._render_inlines(block.children)
            return f'<div class="paragraph">{content}</div>' if content.strip() else ""

        if isinstance(block, ListBlock):
            tag = "ol" if block.ordered else "ul"
            items = []
            for item in block.items:
                items.append(f"<li{_id_attr(item.anchor)}>\n{self._render_blocks(item.blocks)}\n</li>")
            return f"<{tag}>\n" + "\n".join(items) + f"\n</{tag}>"

        if isinstance(block, TheoremLikeBlock):
            header = f"{block.heading} {block.number}" if block.number else block.heading
            if block.note:
                header += f' <span class="theorem-note">({self._render_inlines(block.note)})</span>'
            body = self._render_blocks(block.blocks)
            return (
                f'<div{_id_attr(block.anchor)} class="theorem-like {block.kind}">\n'
                f"<h4>{header}.</h4>\n{body}\n</div>"
            )

        if isinstance(block, ProofBlock):
            body = self._render_blocks(block.blocks)
            return f'<div class="proof">\n<h4>Proof.</h4>\n{body}\n</div>'

        return ""

    # Inline level

    def _render_inlines(self, nodes: list[Inline]) -> str:
        return "".join(self._render_inline(node) for node in nodes)

    def _render_inline(self, node: Inline) -> str:
        if isinstance(node, Text):
            return html.escape(node.text, quote=False).replace("\u00a0", "&nbsp;")

        if isinstance(node, InlineMath):
            if node.asset is None:
                return _math_error(node.source)
            geometry = node.asset.geometry
            return (
                f'<img src="{MATH_DIR}/{node.asset.filename}" class="inline-math" '
                f'alt="{html.escape(node.source)}" '
                f'style="height: {_em(geometry.height_pt)}; vertical-align: {_em(-geometry.depth_pt)};">'
            )

        if isinstance(node, DisplayMath):
            return self._render_display_math(node)

        if isinstance(node, Label):
            return f'<span id="{node.anchor}"></span>' if node.standalone and node.anchor else ""

        if isinstance(node, (Ref, Eqref)):
            if node.target is None:
                return html.escape(node.display)
            return f'<a href="#{node.target.anchor}">{html.escape(node.display)}</a>'

        if isinstance(node, Emph):
            return f"<em>{self._render_inlines(node.children)}</em>"
        if isinstance(node, Bold):
            return f"<strong>{self._render_inlines(node.children)}</strong>"
        if isinstance(node, Italic):
            return f"<i>{self._render_inlines(node.children)}</i>"

        if isinstance(node, BibliographyCite):
            links = [
                f'<a href="#{anchor}">{number}</a>' for anchor, number in zip(node.anchors, node.numbers)
            ]
            note = f", {self._render_inlines(node.note)}" if node.note else ""
            return f'<span class="cite">[{", ".join(links)}{note}]</span>'

        if isinstance(node, Qed):
            return '<span class="qed">&#8718;</span>'

        if isinstance(node, Footnote):
            return (
                f'<sup class="footnote-ref" id="{node.ref_anchor}">'
                f'<a href="#{node.anchor}">{node.number}</a></sup>'
            )

        return ""

    def _render_display_math(self, node: DisplayMath) -> str:
        if node.asset is None:
            image = _math_error(node.source)
        else:
            image = f'<img src="{MATH_DIR}/{node.asset.filename}" alt="{html.escape(node.source)}">'

        # The number is emitted on both sides; the left copy is hidden and keeps the formula centred.
        number = f"<span>({node.number})</span>" if node.numbered and node.number else ""
        return f'<div{_id_attr(node.anchor)} class="display-math-row">{number}{image}{number}</div>'


def _id_attr(anchor: str | None) -> str:
    return f' id="{anchor}"' if anchor else ""


def _em(points: float) -> str:
    value = points / _PT_PER_EM
    return f"{value:.4f}em"


def _math_error(source: str) -> str:
    return f'<code class="math-error">{html.escape(source)}</code>'


def _plain_text(nodes: list[Inline]) -> str:
    out: list[str] = []
    for node in nodes:
        if isinstance(node, Text):
            out.append(node.text)
        elif isinstance(node, InlineMath):
            out.append(node.source)
        elif isinstance(node, (Emph, Bold, Italic)):
            out.append(_plain_text(node.children))
    return "".join(out).strip() or "Untitled"


def _write_if_changed(path: Path, data: bytes) -> bool:
    if path.is_file() and path.read_bytes() == data:
        return False
    path.write_bytes(data)
    return True
