# lexer.py
"""
Turn build-file text into indented lines of classified tokens.

Each physical line becomes a `Line(level, tokens)` where `level` is the
number of leading whitespace characters. The parser uses the level to decide
which lines belong to a job's command body.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List


class TokenType(Enum):
    LITERAL = "literal"
    COLON = ":"
    EQUAL = "="


SEPARATORS = {
    ":": TokenType.COLON,
    "=": TokenType.EQUAL,
}


@dataclass(frozen=True)
class Token:
    """A lexeme with its classification and 1-based source position."""
    text: str
    type: TokenType = TokenType.LITERAL
    line: int = 0
    col: int = 0

    @property
    def end_col(self) -> int:
        return self.col + len(self.text)

    def __str__(self) -> str:
        return f"{self.line}:{self.col}"


@dataclass(frozen=True)
class Line:
    level: int
    tokens: List[Token] = field(default_factory=list)

    def __iter__(self) -> Iterator:
        # allows `for level, tokens in lines`
        yield self.level
        yield self.tokens


@dataclass
class LexError(Exception):
    message: str
    line: int
    col: int

    def __str__(self) -> str:
        return f"{self.line}:{self.col}: [ERROR] {self.message}"


def _logical_lines(text: str) -> Iterator[tuple[int, str]]:
    """Yield (lineno, text) pairs with backslash continuations joined."""
    pending: str | None = None
    start = 0
    for lineno, raw in enumerate(text.splitlines(), start=1):
        if pending is None:
            start = lineno
            pending = ""
        if raw.endswith("\\"):
            pending += raw[:-1] + " "
            continue
        yield start, pending + raw
        pending = None

    if pending is not None:
        yield start, pending


def lex_line(text: str, lineno: int = 1) -> Line:
    level = len(text) - len(text.lstrip(" \t"))
    tokens: List[Token] = []

    buf = ""
    buf_col = 0
    quote: str | None = None
    quote_col = 0

    def flush() -> None:
        nonlocal buf
        if buf:
            tokens.append(Token(buf, TokenType.LITERAL, lineno, buf_col))
            buf = ""

    i = level
    while i < len(text):
        ch = text[i]
        col = i + 1

        if quote is not None:
            buf += ch
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            if not buf:
                buf_col = col
            buf += ch
            quote = ch
            quote_col = col
        elif ch.isspace():
            flush()
        elif ch == "#" and not buf:
            break
        elif ch in SEPARATORS:
            flush()
            tokens.append(Token(ch, SEPARATORS[ch], lineno, col))
        else:
            if not buf:
                buf_col = col
            buf += ch
        i += 1

    if quote is not None:
        raise LexError(f"Unterminated {quote} quote", lineno, quote_col)
    flush()

    return Line(level, tokens)


def lex(text: str) -> List[Line]:
    """
    Lex a whole build file.

    Blank and comment-only lines are dropped so they never end a job body.
    """
    lines: List[Line] = []
    for lineno, logical in _logical_lines(text):
        line = lex_line(logical, lineno)
        if line.tokens:
            lines.append(line)
    return lines
