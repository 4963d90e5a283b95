"""Restricted-grammar TeX parser producing the document tree."""

from __future__ import annotations

import re
from pathlib import Path

from texmirror.errors import ParseError, ParseErrorKind
from texmirror.source import SourcePosition

from .base import (
    THEOREM_KINDS,
    Abstract,
    Author,
    Bibliography,
    BibliographyCite,
    Block,
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
    ListItem,
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
)
from .directives import FilteredSource, Preprocessor
from .lexer import RAW_ENVIRONMENTS, Token, TokenKind, tokenize

_SECTIONING = ("section", "section*", "subsection", "subsection*")
_FRONT_MATTER = ("title", "author", "date", "maketitle", "bibliography", "bibliographystyle")
_BLOCK_ENVIRONMENTS = ("itemize", "enumerate", "proof", "abstract", *THEOREM_KINDS)
_STYLE_COMMANDS = {"emph": Emph, "textbf": Bold, "textit": Italic}
_CITE_COMMANDS = ("cite", "citep", "citet")

_LABEL_RE = re.compile(r"[A-Za-z0-9:_-]+")
_CITE_KEY_RE = re.compile(r"[A-Za-z0-9:_.+/-]+")
_LEADING_LABEL_RE = re.compile(r"\s*\\label[ \t]*\{([^{}]*)\}")
_DOCUMENTCLASS_RE = re.compile(r"\\documentclass\s*(?:\[[^\]]*\])?\s*\{[^{}]*\}")
_BEGIN_DOCUMENT_RE = re.compile(r"\\begin[ \t]*\{document\}")
_END_DOCUMENT_RE = re.compile(r"\\end[ \t]*\{document\}")
_COMMENT_RE = re.compile(r"(?<!\\)%.*$")
_PREAMBLE_FRONT_MATTER_RE = re.compile(r"\\(?:title|author|date)(?![A-Za-z])[ \t]*(?=\{)")


class TeXParser:
    """Parse a TeX document restricted to the supported constructs."""

    def __init__(self, preprocessor: Preprocessor | None = None) -> None:
        self.preprocessor = preprocessor or Preprocessor()

    def parse(self, input_path: Path) -> Document:
        input_path = Path(input_path)
        return self.parse_text(input_path.read_text(encoding="utf-8"))

    def parse_text(self, raw: str) -> Document:
        filtered = self.preprocessor.filter(raw)
        preamble, front_matter, body = _split_document(filtered)
        parts = _BodyParser(tokenize(front_matter)).parse() if front_matter is not None else []
        parts.extend(_BodyParser(tokenize(body)).parse())
        return Document(preamble=preamble, parts=parts)


def _split_document(filtered: FilteredSource) -> tuple[str, FilteredSource | None, FilteredSource]:
    """Split into the preamble string, the preamble's front matter and the body.

    ``\\title``, ``\\author`` and ``\\date`` in the preamble are parsed like body
    front matter and left out of the preamble string, which is embedded in
    (and fingerprints) every formula.
    """
    text = filtered.text
    begin = _BEGIN_DOCUMENT_RE.search(text)
    if begin is None:
        return "", None, filtered

    end = _END_DOCUMENT_RE.search(text, begin.end())
    if end is None:
        line = text.count("\n", 0, begin.start()) + 1
        column = begin.start() - (text.rfind("\n", 0, begin.start()) + 1) + 1
        raise ParseError(
            ParseErrorKind.UNEXPECTED_ENVIRONMENT,
            SourcePosition(filtered.original_line(line), column),
            "\\begin{document} is never closed",
        )

    head = _blank_comments(text[: begin.start()])
    spans = _front_matter_spans(head)
    kept = "".join(head[start:stop] for start, stop in _gaps(spans, len(head)))
    preamble = _normalize_preamble(_DOCUMENTCLASS_RE.sub("", kept, count=1))
    front_matter = None
    if spans:
        # Blank everything but the front matter so token positions still match the file.
        only = list(re.sub(r"[^\n]", " ", head))
        for start, stop in spans:
            only[start:stop] = head[start:stop]
        front_matter = FilteredSource(text="".join(only), line_map=filtered.line_map)

    # Pad the first body line so token columns still match the file.
    line_start = text.rfind("\n", 0, begin.end()) + 1
    first_line = text.count("\n", 0, begin.end())
    body = " " * (begin.end() - line_start) + text[begin.end() : end.start()]
    return preamble, front_matter, FilteredSource(text=body, line_map=filtered.line_map[first_line:])


def _blank_comments(text: str) -> str:
    return "\n".join(_COMMENT_RE.sub(lambda m: " " * len(m.group(0)), line) for line in text.split("\n"))


def _front_matter_spans(text: str) -> list[tuple[int, int]]:
    spans: list[tuple[int, int]] = []
    for match in _PREAMBLE_FRONT_MATTER_RE.finditer(text):
        if spans and match.start() < spans[-1][1]:
            continue
        spans.append((match.start(), _group_end(text, match.end())))
    return spans


def _group_end(text: str, i: int) -> int:
    """Offset just past the brace group opening at ``i``, or the end of ``text``."""
    depth = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return len(text)


def _gaps(spans: list[tuple[int, int]], length: int) -> list[tuple[int, int]]:
    gaps = []
    start = 0
    for span_start, span_stop in spans:
        gaps.append((start, span_start))
        start = span_stop
    gaps.append((start, length))
    return gaps


def _normalize_preamble(text: str) -> str:
    lines = (_COMMENT_RE.sub("", line).rstrip() for line in text.splitlines())
    return "\n".join(line for line in lines if line.strip())


class _BodyParser:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.index = 0

    def parse(self) -> list[Node]:
        parts = self._blocks(context="document")
        tok = self._peek()
        if tok.kind == TokenKind.END:
            raise self._error(ParseErrorKind.UNEXPECTED_ENVIRONMENT, tok, f"\\end{{{tok.value}}} without a matching \\begin")
        return parts

    # Token stream helpers

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        tok = self.tokens[self.index]
        if tok.kind != TokenKind.EOF:
            self.index += 1
        return tok

    def _skip_blank(self) -> None:
        while self._peek().kind in (TokenKind.SPACE, TokenKind.PARAGRAPH_BREAK):
            self._advance()

    def _skip_space(self) -> None:
        while self._peek().kind == TokenKind.SPACE:
            self._advance()

    def _expect(self, kind: TokenKind, what: str) -> Token:
        tok = self._peek()
        if tok.kind != kind:
            raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, f"expected {what}, found {tok.describe()}")
        return self._advance()

    def _expect_end(self, begin: Token) -> None:
        self._skip_blank()
        tok = self._peek()
        if tok.kind == TokenKind.END and tok.value == begin.value:
            self._advance()
            return
        if tok.kind == TokenKind.END:
            detail = f"\\end{{{tok.value}}} does not match \\begin{{{begin.value}}} at {begin.position}"
        else:
            detail = f"missing \\end{{{begin.value}}} for \\begin{{{begin.value}}} at {begin.position}"
        raise self._error(ParseErrorKind.UNEXPECTED_ENVIRONMENT, tok, detail)

    @staticmethod
    def _error(kind: ParseErrorKind, tok: Token, detail: str = "") -> ParseError:
        return ParseError(kind, tok.position, detail)

    # Block level

    def _blocks(self, *, context: str) -> list[Node]:
        blocks: list[Node] = []
        while True:
            self._skip_blank()
            tok = self._peek()
            if tok.kind in (TokenKind.EOF, TokenKind.END):
                return blocks

            if tok.kind == TokenKind.COMMAND:
                name = tok.value
                if name == "item":
                    if context == "item":
                        return blocks
                    raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, "\\item outside of a list")
                if name in _SECTIONING or name in _FRONT_MATTER:
                    if context != "document":
                        raise self._error(
                            ParseErrorKind.UNEXPECTED_ENVIRONMENT, tok, f"\\{name} is not allowed inside {context}"
                        )
                    part = self._front_matter(tok) if name in _FRONT_MATTER else self._section(tok)
                    if part is not None:
                        blocks.append(part)
                    continue

            if tok.kind == TokenKind.BEGIN and tok.value not in RAW_ENVIRONMENTS:
                blocks.append(self._environment(tok, context))
                continue

            paragraph = self._paragraph()
            if paragraph.children:
                blocks.append(paragraph)

    def _environment(self, begin: Token, context: str) -> Block | Abstract:
        env = begin.value
        if env not in _BLOCK_ENVIRONMENTS:
            raise self._error(ParseErrorKind.UNEXPECTED_ENVIRONMENT, begin, f"unsupported environment {env!r}")
        self._advance()

        if env in ("itemize", "enumerate"):
            return self._list(begin)

        if env == "abstract":
            if context != "document":
                raise self._error(ParseErrorKind.UNEXPECTED_ENVIRONMENT, begin, f"abstract is not allowed inside {context}")
            blocks = self._blocks(context="abstract")
            self._expect_end(begin)
            return Abstract(blocks=blocks)

        if env == "proof":
            blocks = self._blocks(context="proof")
            self._expect_end(begin)
            return ProofBlock(blocks=blocks)

        note = None
        if self._peek().kind == TokenKind.BRACKET_OPEN:
            self._advance()
            note = _strip(self._inlines(closer=TokenKind.BRACKET_CLOSE))
            self._advance()
        blocks = self._blocks(context=env)
        self._expect_end(begin)
        return TheoremLikeBlock(kind=env, note=note, blocks=blocks)

    def _list(self, begin: Token) -> ListBlock:
        block = ListBlock(ordered=begin.value == "enumerate")
        while True:
            self._skip_blank()
            tok = self._peek()
            if tok.kind in (TokenKind.END, TokenKind.EOF):
                break
            if tok.kind != TokenKind.COMMAND or tok.value != "item":
                raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, f"expected \\item, found {tok.describe()}")
            self._advance()
            if self._peek().kind == TokenKind.BRACKET_OPEN:
                raise self._error(
                    ParseErrorKind.UNEXPECTED_TOKEN, self._peek(), "custom \\item labels are not supported"
                )
            block.items.append(ListItem(blocks=self._blocks(context="item")))
        self._expect_end(begin)
        return block

    def _section(self, tok: Token) -> Section | Subsection:
        self._advance()
        title = self._group_argument(tok)
        numbered = not tok.value.endswith("*")
        if tok.value.startswith("subsection"):
            return Subsection(title=title, numbered=numbered)
        return Section(title=title, numbered=numbered)

    def _front_matter(self, tok: Token) -> Node | None:
        self._advance()
        name = tok.value
        if name == "maketitle":
            return Maketitle()
        if name == "title":
            return Title(children=self._group_argument(tok))
        if name == "author":
            return Author(children=self._group_argument(tok))
        self._skip_group(tok)
        if name == "bibliography":
            return Bibliography(position=tok.position)
        return None

    # Inline level

    def _paragraph(self) -> Paragraph:
        return Paragraph(children=_strip(self._inlines(closer=None)))

    def _inlines(self, *, closer: TokenKind | None) -> list[Inline]:
        out: list[Inline] = []
        while True:
            tok = self._peek()
            kind = tok.kind

            if closer is not None and kind == closer:
                break
            if kind == TokenKind.EOF:
                if closer is not None:
                    raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, f"expected {closer.value}")
                break
            if kind == TokenKind.PARAGRAPH_BREAK:
                if closer is not None:
                    raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, "paragraph break inside an argument")
                break
            if kind == TokenKind.GROUP_CLOSE:
                raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, "unmatched }")

            if kind == TokenKind.SPACE:
                self._advance()
                out.append(Text(" "))
            elif kind in (TokenKind.TEXT, TokenKind.BRACKET_OPEN, TokenKind.BRACKET_CLOSE):
                self._advance()
                out.append(Text(tok.value))
            elif kind == TokenKind.GROUP_OPEN:
                self._advance()
                out.extend(self._inlines(closer=TokenKind.GROUP_CLOSE))
                self._advance()
            elif kind == TokenKind.INLINE_MATH:
                self._advance()
                if not tok.value.strip():
                    raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, "empty inline formula")
                out.append(InlineMath(source=tok.value.strip(), position=tok.position))
            elif kind == TokenKind.DOLLAR_DISPLAY_MATH:
                self._advance()
                out.append(self._display_math(tok, "$$", tok.position))
            elif kind == TokenKind.BEGIN:
                if tok.value in RAW_ENVIRONMENTS:
                    out.append(self._equation())
                elif closer is not None:
                    raise self._error(
                        ParseErrorKind.UNEXPECTED_ENVIRONMENT, tok, f"environment {tok.value!r} inside an argument"
                    )
                else:
                    break
            elif kind == TokenKind.END:
                if closer is not None:
                    raise self._error(ParseErrorKind.UNEXPECTED_ENVIRONMENT, tok, f"\\end{{{tok.value}}} inside an argument")
                break
            elif kind == TokenKind.COMMAND:
                if tok.value in _SECTIONING or tok.value in _FRONT_MATTER or tok.value == "item":
                    if closer is not None:
                        raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, f"\\{tok.value} inside an argument")
                    break
                node = self._inline_command(tok)
                if node is not None:
                    out.append(node)
            else:  # pragma: no cover - DISPLAY_MATH is consumed by _equation
                raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, f"unexpected {tok.describe()}")
        return _merge_text(out)

    def _inline_command(self, tok: Token) -> Inline | None:
        name = tok.value
        self._advance()

        if name == "label":
            return Label(name=self._name_argument(tok, _LABEL_RE, "label name"), position=tok.position)
        if name == "ref":
            return Ref(name=self._name_argument(tok, _LABEL_RE, "label name"), position=tok.position)
        if name == "eqref":
            return Eqref(name=self._name_argument(tok, _LABEL_RE, "label name"), position=tok.position)
        if name in _STYLE_COMMANDS:
            return _STYLE_COMMANDS[name](children=self._group_argument(tok))
        if name in _CITE_COMMANDS:
            return self._cite(tok)
        if name == "qed":
            return Qed()
        if name == "footnote":
            return Footnote(children=self._group_argument(tok), position=tok.position)
        if name == "todo":
            self._skip_group(tok)
            return None
        raise self._error(ParseErrorKind.UNKNOWN_CONTROL_SEQUENCE, tok, f"\\{name} is not supported")

    def _cite(self, tok: Token) -> BibliographyCite:
        note = None
        if self._peek().kind == TokenKind.BRACKET_OPEN:
            self._advance()
            note = _strip(self._inlines(closer=TokenKind.BRACKET_CLOSE))
            self._advance()
        raw = self._raw_argument(tok)
        keys = [key.strip() for key in raw.split(",")]
        for key in keys:
            if not _CITE_KEY_RE.fullmatch(key):
                raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, f"invalid citation key {key!r}")
        return BibliographyCite(keys=keys, note=note or None, position=tok.position)

    def _equation(self) -> DisplayMath:
        begin = self._advance()
        body = self._expect(TokenKind.DISPLAY_MATH, f"{begin.value} body")
        self._advance()  # END, emitted by the lexer together with the body
        return self._display_math(body, begin.value, begin.position)

    def _display_math(self, body: Token, form: str, position: SourcePosition) -> DisplayMath:
        source = body.value
        label = None
        match = _LEADING_LABEL_RE.match(source)
        if match is not None:
            label = match.group(1).strip()
            if not _LABEL_RE.fullmatch(label):
                raise self._error(ParseErrorKind.MALFORMED_EQUATION_ENVIRONMENT, body, f"invalid label {label!r}")
            source = source[match.end() :]

        if "\\label" in source:
            raise self._error(
                ParseErrorKind.MALFORMED_EQUATION_ENVIRONMENT, body, "only a single leading \\label is allowed"
            )
        if label is not None and form == "equation*":
            raise self._error(ParseErrorKind.MALFORMED_EQUATION_ENVIRONMENT, body, "equation* cannot be labelled")
        if not source.strip():
            raise self._error(ParseErrorKind.MALFORMED_EQUATION_ENVIRONMENT, body, f"empty {form} formula")

        # equation is always numbered; $$ and mathpar only when they carry a label
        numbered = form == "equation" or (form != "equation*" and label is not None)
        return DisplayMath(source=source.strip(), label=label, numbered=numbered, form=form, position=position)

    # Arguments

    def _open_group(self, command: Token) -> None:
        self._skip_space()
        tok = self._peek()
        if tok.kind != TokenKind.GROUP_OPEN:
            raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, f"\\{command.value} expects an argument in braces")
        self._advance()

    def _group_argument(self, command: Token) -> list[Inline]:
        self._open_group(command)
        children = self._inlines(closer=TokenKind.GROUP_CLOSE)
        self._advance()
        return _strip(children)

    def _raw_argument(self, command: Token) -> str:
        self._open_group(command)
        parts: list[str] = []
        while self._peek().kind != TokenKind.GROUP_CLOSE:
            tok = self._advance()
            if tok.kind not in (TokenKind.TEXT, TokenKind.SPACE):
                raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, f"unexpected {tok.describe()} in \\{command.value}")
            parts.append(tok.value)
        self._advance()
        return "".join(parts).strip()

    def _name_argument(self, command: Token, pattern: re.Pattern[str], what: str) -> str:
        value = self._raw_argument(command)
        if not pattern.fullmatch(value):
            raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, command, f"invalid {what} {value!r}")
        return value

    def _skip_group(self, command: Token) -> None:
        self._open_group(command)
        depth = 1
        while depth:
            tok = self._advance()
            if tok.kind == TokenKind.GROUP_OPEN:
                depth += 1
            elif tok.kind == TokenKind.GROUP_CLOSE:
                depth -= 1
            elif tok.kind == TokenKind.EOF:  # pragma: no cover - the lexer rejects unbalanced groups
                raise self._error(ParseErrorKind.UNEXPECTED_TOKEN, tok, f"unterminated argument of \\{command.value}")


def _merge_text(nodes: list[Inline]) -> list[Inline]:
    merged: list[Inline] = []
    for node in nodes:
        if isinstance(node, Text) and merged and isinstance(merged[-1], Text):
            merged[-1] = Text(merged[-1].text + node.text)
        else:
            merged.append(node)
    for idx, node in enumerate(merged):
        if isinstance(node, Text):
            merged[idx] = Text(re.sub(r"  +", " ", node.text))
    return merged


def _strip(nodes: list[Inline]) -> list[Inline]:
    nodes = list(nodes)
    if nodes and isinstance(nodes[0], Text):
        nodes[0] = Text(nodes[0].text.lstrip(" "))
    if nodes and isinstance(nodes[-1], Text):
        nodes[-1] = Text(nodes[-1].text.rstrip(" "))
    return [node for node in nodes if not (isinstance(node, Text) and not node.text)]
