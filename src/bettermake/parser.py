# parser.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Sequence

from .ast import Ast, Decl, Expr, If, Item, JobItem, Operation, adjacent_run
from .lexer import Line, Token, TokenType
from .model import Jobs

IFS = ("ifeq", "ifneq")


class ErrorType(Enum):
    NO_CLOSING_ENDIF = "No closing endif"
    UNEXPECTED_TOKEN = "Unexpected token"
    JOB_WITHOUT_TARGET = "Job without a target"
    EXPECTED_ONLY_ONE_TOKEN_ON_THE_LEFT_SIDE = "Expected only one token on the left side"
    MISSING_OPERAND = "Missing operand"


@dataclass
class ParseError(Exception):
    """
    Structural error in a build file. Always fatal: the first one aborts
    the whole parse.
    """
    kind: ErrorType
    token: Optional[Token] = None
    note: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        where = []
        if self.path:
            where.append(self.path)
        if self.token is not None:
            where.append(str(self.token))
        prefix = ":".join(where) + ": " if where else ""
        msg = f"{prefix}[ERROR] {self.kind.value}"
        if self.note:
            msg += f"\n\tNOTE: {self.note}"
        return msg


class _Lines:
    """Peekable iterator over lexed lines."""

    def __init__(self, lines: Sequence[Line]):
        self._it: Iterator[Line] = iter(lines)
        self._peeked: Optional[Line] = None

    def peek(self) -> Optional[Line]:
        if self._peeked is None:
            self._peeked = next(self._it, None)
        return self._peeked

    def next(self) -> Optional[Line]:
        line = self.peek()
        self._peeked = None
        return line


def _find(tokens: List[Token], typ: TokenType) -> Optional[int]:
    for idx, tok in enumerate(tokens):
        if tok.type is typ:
            return idx
    return None


def _has_word(tokens: List[Token], word: str) -> bool:
    return any(t.text == word for t in tokens)


class Parser:
    """
    Builds an Ast from lexed lines, one line at a time.

    Recognized forms, decided by each line's first token:
      ifeq a b / ifneq a b ... [else ...] endif
      NAME = value...   NAME += value   NAME -= value
      target: dependencies...   (followed by indented command lines)
    """

    def __init__(self, lines: Sequence[Line], path: Optional[str] = None):
        self.ast = Ast()
        self.lines = _Lines(lines)
        self.path = path

    def _error(self, kind: ErrorType, token: Optional[Token], note: Optional[str] = None) -> ParseError:
        return ParseError(kind=kind, token=token, note=note, path=self.path)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def _operand(self, tokens: List[Token], idx: int, near: Token, what: str) -> Token:
        if idx < 0 or idx >= len(tokens):
            raise self._error(ErrorType.MISSING_OPERAND, near, f"Expected {what} side of expression")
        return tokens[idx]

    def parse_eq(self, first: Token, tokens: List[Token], eq_idx: int) -> Item:
        """
        Parse an assignment line around its `=` token at `eq_idx`.

        A bare `-` reads its right operand two tokens past `=`; this offset is
        kept for compatibility with existing build files.
        """
        eq = tokens[eq_idx]
        marker = tokens[eq_idx - 1] if eq_idx > 0 else None

        if marker is not None:
            for op, ch in ((Operation.PLUS_EQUAL, "+"), (Operation.MINUS_EQUAL, "-")):
                if marker.text == ch:
                    offset = 1 if op is Operation.PLUS_EQUAL else 2
                    right = self._operand(tokens, eq_idx + offset, eq, "right")
                    left = self._operand(tokens, eq_idx - 2, marker, "left")
                    return Expr(left, op, right, adjacent_run(tokens, eq_idx + offset))
                if marker.text.endswith(ch):
                    right = self._operand(tokens, eq_idx + 1, eq, "right")
                    return Expr(marker, op, right, adjacent_run(tokens, eq_idx + 1))

        return Decl(first, tokens[eq_idx + 1:])

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------

    def _parse_if(self, tokens: List[Token]) -> If:
        first = tokens[0]
        body: List[Item] = []
        else_body: List[Item] = []
        in_else = False
        endif = False

        while True:
            line = self.lines.next()
            if line is None:
                break
            inner = line.tokens
            if _has_word(inner, "else"):
                in_else = True
                continue
            if _has_word(inner, "endif"):
                endif = True
                break

            eq_idx = _find(inner, TokenType.EQUAL)
            if eq_idx is None or eq_idx == 0:
                continue
            item = self.parse_eq(inner[eq_idx - 1], inner, eq_idx)
            (else_body if in_else else body).append(item)

        if not endif:
            raise self._error(ErrorType.NO_CLOSING_ENDIF, first)

        if len(tokens) < 3:
            raise self._error(
                ErrorType.MISSING_OPERAND,
                first,
                f"'{first.text}' needs two operands to compare",
            )

        return If(
            negate=first.text == "ifneq",
            left=tokens[1],
            right=tokens[2],
            then_body=body,
            else_body=else_body,
        )

    def _parse_job(self, tokens: List[Token], colon_idx: int) -> JobItem:
        if colon_idx > 1:
            raise self._error(ErrorType.EXPECTED_ONLY_ONE_TOKEN_ON_THE_LEFT_SIDE, tokens[0])

        body: List[List[Token]] = []
        while True:
            line = self.lines.peek()
            if line is None or line.level == 0:
                break
            body.append(list(line.tokens))
            self.lines.next()

        return JobItem(target=tokens[0], dependencies=tokens[colon_idx + 1:], body=body)

    def parse_line(self, line: Line) -> None:
        tokens = line.tokens
        if not tokens:
            return
        first = tokens[0]
        if first.text == "endif":
            return

        eq_idx = _find(tokens, TokenType.EQUAL)
        colon_idx = _find(tokens, TokenType.COLON)

        if first.type is TokenType.LITERAL:
            if first.text in IFS:
                self.ast.items.append(self._parse_if(tokens))
            elif eq_idx is not None:
                self.ast.items.append(self.parse_eq(first, tokens, eq_idx))
            elif colon_idx is not None:
                self.ast.items.append(self._parse_job(tokens, colon_idx))
            else:
                raise self._error(ErrorType.UNEXPECTED_TOKEN, first)
        elif first.type is TokenType.COLON:
            raise self._error(
                ErrorType.JOB_WITHOUT_TARGET,
                first,
                "Jobs without targets are not allowed here!",
            )
        else:
            raise self._error(ErrorType.UNEXPECTED_TOKEN, first)

    def build_ast(self) -> Ast:
        while True:
            line = self.lines.next()
            if line is None:
                return self.ast
            self.parse_line(line)

    def parse(self) -> Jobs:
        return self.build_ast().expand()


def build_ast(lines: Sequence[Line], path: Optional[str] = None) -> Ast:
    return Parser(lines, path=path).build_ast()


def parse(lines: Sequence[Line], path: Optional[str] = None) -> Jobs:
    return Parser(lines, path=path).parse()
