"""Tokenizer for the supported LaTeX subset."""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass
from enum import Enum

from texmirror.errors import LexError, LexErrorKind
from texmirror.parser.directives import FilteredSource
from texmirror.source import SourcePosition

RAW_ENVIRONMENTS = ("equation", "equation*", "mathpar")

_ESCAPABLE = set("%$&#_{}")
_SPECIAL = set(" \t\n\\{}[]$%~")
_ENV_NAME_RE = re.compile(r"[A-Za-z]+\*?")


class TokenKind(str, Enum):
    COMMAND = "command"
    BEGIN = "begin"
    END = "end"
    GROUP_OPEN = "{"
    GROUP_CLOSE = "}"
    BRACKET_OPEN = "["
    BRACKET_CLOSE = "]"
    INLINE_MATH = "inline math"
    DISPLAY_MATH = "display math"
    DOLLAR_DISPLAY_MATH = "$$ display math"
    TEXT = "text"
    SPACE = "space"
    PARAGRAPH_BREAK = "paragraph break"
    EOF = "end of input"


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    value: str
    position: SourcePosition

    def describe(self) -> str:
        if self.kind == TokenKind.COMMAND:
            return f"\\{self.value}"
        if self.kind in (TokenKind.BEGIN, TokenKind.END):
            return f"\\{self.kind.value}{{{self.value}}}"
        if self.kind == TokenKind.TEXT:
            return repr(self.value)
        return self.kind.value


class Lexer:
    """Turn filtered source text into a flat token list.

    Math is not tokenized: inline ``$...$``, ``$$...$$`` and the bodies of
    ``equation`` and ``mathpar`` environments are carried verbatim as a
    single token each.
    """

    def __init__(self, source: FilteredSource | str) -> None:
        if isinstance(source, str):
            source = FilteredSource(text=source, line_map=[])
        self.source = source
        self.text = source.text
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", self.text)]

    def position(self, offset: int) -> SourcePosition:
        line_idx = bisect_right(self._line_starts, offset) - 1
        column = offset - self._line_starts[line_idx] + 1
        return SourcePosition(line=self.source.original_line(line_idx + 1), column=column)

    def tokenize(self) -> list[Token]:
        text = self.text
        tokens: list[Token] = []
        open_groups: list[int] = []
        i = 0
        n = len(text)

        while i < n:
            ch = text[i]

            if ch in " \t\n%":
                token, i = self._whitespace(i, at_line_start=i == 0 or text[i - 1] == "\n")
                if token is not None:
                    tokens.append(token)
                continue

            if ch == "\\":
                i = self._control(i, tokens)
                continue

            if ch == "{":
                open_groups.append(i)
                tokens.append(Token(TokenKind.GROUP_OPEN, ch, self.position(i)))
                i += 1
                continue

            if ch == "}":
                if open_groups:
                    open_groups.pop()
                tokens.append(Token(TokenKind.GROUP_CLOSE, ch, self.position(i)))
                i += 1
                continue

            if ch == "[":
                tokens.append(Token(TokenKind.BRACKET_OPEN, ch, self.position(i)))
                i += 1
                continue

            if ch == "]":
                tokens.append(Token(TokenKind.BRACKET_CLOSE, ch, self.position(i)))
                i += 1
                continue

            if text.startswith("$$", i):
                end = self._find_display_end(i + 2)
                if end == -1:
                    raise LexError(LexErrorKind.UNTERMINATED_MATH, self.position(i))
                tokens.append(Token(TokenKind.DOLLAR_DISPLAY_MATH, text[i + 2 : end], self.position(i)))
                i = end + 2
                continue

            if ch == "$":
                end = self._find_math_end(i + 1)
                if end == -1:
                    raise LexError(LexErrorKind.UNTERMINATED_MATH, self.position(i))
                tokens.append(Token(TokenKind.INLINE_MATH, text[i + 1 : end], self.position(i)))
                i = end + 1
                continue

            if ch == "~":
                tokens.append(Token(TokenKind.TEXT, "\u00a0", self.position(i)))
                i += 1
                continue

            start = i
            while i < n and text[i] not in _SPECIAL:
                i += 1
            tokens.append(Token(TokenKind.TEXT, text[start:i], self.position(start)))

        if open_groups:
            raise LexError(LexErrorKind.UNTERMINATED_GROUP, self.position(open_groups[-1]))

        tokens.append(Token(TokenKind.EOF, "", self.position(n)))
        return tokens

    def _whitespace(self, i: int, *, at_line_start: bool) -> tuple[Token | None, int]:
        """Consume a run of blanks and comments.

        A comment swallows its line ending; a newline that ends an otherwise
        empty line starts a new paragraph.
        """
        text = self.text
        n = len(text)
        start = i
        line_blank = at_line_start
        paragraph = False
        space = False

        while i < n and text[i] in " \t\n%":
            ch = text[i]
            if ch == "%":
                end = text.find("\n", i)
                i = n if end == -1 else end + 1
                line_blank = True
                continue
            if ch == "\n":
                if line_blank:
                    paragraph = True
                line_blank = True
            space = True
            i += 1

        if paragraph:
            return Token(TokenKind.PARAGRAPH_BREAK, "", self.position(start)), i
        if space:
            return Token(TokenKind.SPACE, " ", self.position(start)), i
        return None, i

    def _control(self, i: int, tokens: list[Token]) -> int:
        text = self.text
        n = len(text)
        position = self.position(i)
        j = i + 1

        if j < n and not text[j].isalpha():
            if text[j] in _ESCAPABLE:
                tokens.append(Token(TokenKind.TEXT, text[j], position))
            else:
                tokens.append(Token(TokenKind.COMMAND, text[j], position))
            return j + 1

        while j < n and text[j].isalpha():
            j += 1
        if j < n and text[j] == "*":
            j += 1
        name = text[i + 1 : j]

        if name in ("begin", "end"):
            env_token = self._environment(name, j, position)
            if env_token is not None:
                token, j = env_token
                tokens.append(token)
                if token.kind == TokenKind.BEGIN and token.value in RAW_ENVIRONMENTS:
                    return self._raw_environment(token, j, tokens)
                return j

        while j < n and text[j] in " \t":
            j += 1
        tokens.append(Token(TokenKind.COMMAND, name, position))
        return j

    def _environment(self, name: str, j: int, position: SourcePosition) -> tuple[Token, int] | None:
        text = self.text
        k = j
        while k < len(text) and text[k] in " \t":
            k += 1
        if k >= len(text) or text[k] != "{":
            return None
        close = text.find("}", k)
        if close == -1:
            raise LexError(LexErrorKind.UNTERMINATED_GROUP, self.position(k))
        env = text[k + 1 : close].strip()
        if not _ENV_NAME_RE.fullmatch(env):
            return None
        kind = TokenKind.BEGIN if name == "begin" else TokenKind.END
        return Token(kind, env, position), close + 1

    def _raw_environment(self, begin: Token, j: int, tokens: list[Token]) -> int:
        end_re = re.compile(rf"\\end[ \t]*\{{{re.escape(begin.value)}\}}")
        match = end_re.search(self.text, j)
        if match is None:
            raise LexError(LexErrorKind.UNTERMINATED_MATH, begin.position)
        tokens.append(Token(TokenKind.DISPLAY_MATH, self.text[j : match.start()], self.position(j)))
        tokens.append(Token(TokenKind.END, begin.value, self.position(match.start())))
        return match.end()

    def _find_math_end(self, i: int) -> int:
        text = self.text
        while i < len(text):
            if text[i] == "\\":
                i += 2
                continue
            if text[i] == "$":
                return i
            i += 1
        return -1

    def _find_display_end(self, i: int) -> int:
        text = self.text
        while i < len(text):
            if text[i] == "\\":
                i += 2
                continue
            if text.startswith("$$", i):
                return i
            i += 1
        return -1


def tokenize(source: FilteredSource | str) -> list[Token]:
    return Lexer(source).tokenize()
