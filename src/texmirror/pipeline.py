"""Run every stage from TeX source to the HTML directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from texmirror.config import CompilerConfig
from texmirror.errors import BibParseError, LexError, ParseError, RenderFailures, ResolveError
from texmirror.mathsvg.cache import DirectoryCache, MathCache
from texmirror.mathsvg.renderer import MathRenderer, RenderReport
from texmirror.mathsvg.toolchain import Toolchain
from texmirror.parser.base import Document
from texmirror.parser.bib_parser import BibEntry, BibParser
from texmirror.parser.directives import Preprocessor
from texmirror.parser.tex_parser import TeXParser
from texmirror.renderer.html_renderer import EmitResult, HTMLRenderer
from texmirror.resolver import Resolution, Resolver
from texmirror.source import SourceText

LOG = logging.getLogger("texmirror")


@dataclass(slots=True)
class CompileResult:
    document: Document
    resolution: Resolution
    report: RenderReport
    output: EmitResult


def load_document(document_path: Path, config: CompilerConfig) -> tuple[Document, SourceText]:
    source = SourceText(text=Path(document_path).read_text(encoding="utf-8"), path=Path(document_path))
    parser = TeXParser(preprocessor=Preprocessor(config.ignore_marker))
    try:
        document = parser.parse_text(source.text)
    except (LexError, ParseError) as exc:
        exc.source = source
        raise
    return document, source


def load_bibliography(bibliography_path: Path) -> dict[str, BibEntry]:
    source = SourceText(text=Path(bibliography_path).read_text(encoding="utf-8"), path=Path(bibliography_path))
    try:
        return BibParser().parse_text(source.text)
    except BibParseError as exc:
        exc.source = source
        raise


def compile_document(
    document_path: Path,
    bibliography_path: Path,
    output_dir: Path,
    config: CompilerConfig | None = None,
    *,
    cache: MathCache | None = None,
    toolchain: Toolchain | None = None,
) -> CompileResult:
    """Compile ``document_path`` into ``output_dir``.

    Structural errors (lexing, parsing, bibliography, cross references) are
    raised before anything is written. Formula failures do not stop the
    build: the page is emitted with the failing formulas shown as source,
    then :class:`RenderFailures` is raised listing all of them.
    """
    config = config or CompilerConfig()

    document, source = load_document(document_path, config)
    LOG.info("Parsed %s: %d top-level part(s)", document_path, len(document.parts))

    entries = load_bibliography(bibliography_path)
    LOG.info("Loaded %d bibliography entr(y/ies) from %s", len(entries), bibliography_path)

    try:
        resolution = Resolver(entries).resolve(document)
    except ResolveError as exc:
        exc.source = source
        raise

    if cache is None:
        cache = DirectoryCache(config.cache_dir_for(document_path))
    renderer = MathRenderer(
        cache,
        toolchain or config.toolchain(),
        preamble=document.preamble,
        jobs=config.jobs,
        toolchain_tag=config.toolchain_tag,
    )
    cache.open()
    try:
        report = renderer.materialize(document)
    finally:
        cache.close()

    output = HTMLRenderer().write(output_dir, document, resolution)
    if not report.ok:
        raise RenderFailures(report.failures)
    return CompileResult(document=document, resolution=resolution, report=report, output=output)
