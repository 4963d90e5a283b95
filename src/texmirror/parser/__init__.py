"""Parser package."""

from .base import Document, DisplayMath, InlineMath, Paragraph, Section, Subsection, TheoremLikeBlock
from .bib_parser import BibEntry, BibParser
from .directives import IGNORE_MARKER, FilteredSource, Preprocessor
from .lexer import Lexer, Token, TokenKind, tokenize
from .tex_parser import TeXParser

__all__ = [
    "Document",
    "DisplayMath",
    "InlineMath",
    "Paragraph",
    "Section",
    "Subsection",
    "TheoremLikeBlock",
    "BibEntry",
    "BibParser",
    "IGNORE_MARKER",
    "FilteredSource",
    "Preprocessor",
    "Lexer",
    "Token",
    "TokenKind",
    "tokenize",
    "TeXParser",
]
