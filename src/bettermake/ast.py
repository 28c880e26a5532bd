# ast.py
"""
Syntax tree produced by the parser, and the expansion pass that turns it
into concrete jobs.

Expansion rules:
  - variable items (Decl / Expr / If) are applied in source order
  - jobs are expanded afterwards, against the final variables
  - `$NAME`, `${NAME}` and `$(NAME)` reference variables, `$$` is a literal `$`
  - inside a job `$t` is the target and `$d` the dependency list
  - names the build file never sets fall back to the process environment
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from .lexer import Token
from .model import Job, Jobs

REF = re.compile(r"\$(?:(\$)|\{(\w+)\}|\((\w+)\)|(\w+))")

UNDEFINED_VARIABLE = "UndefinedVariable"
EMPTY_TARGET = "EmptyTarget"
MULTIPLE_TARGETS = "MultipleTargets"


class Operation(Enum):
    PLUS_EQUAL = "+="
    MINUS_EQUAL = "-="


@dataclass
class Decl:
    """`NAME = value...`"""
    name: Token
    value: List[Token] = field(default_factory=list)


@dataclass
class Expr:
    """`NAME += value` / `NAME -= value`"""
    left: Token
    op: Operation
    right: Token
    # `right` plus any tokens that touched it in the source (`-DX=1`)
    right_run: List[Token] = field(default_factory=list)

    def value_tokens(self) -> List[Token]:
        return self.right_run or [self.right]

    @property
    def name(self) -> str:
        marker = self.op.value[0]
        text = self.left.text
        return text[:-1] if text.endswith(marker) else text


@dataclass
class JobItem:
    """A job rule as written: raw target, dependency and command tokens."""
    target: Token
    dependencies: List[Token] = field(default_factory=list)
    body: List[List[Token]] = field(default_factory=list)


@dataclass
class If:
    """`ifeq`/`ifneq` block. Bodies only ever hold Decl and Expr items."""
    negate: bool
    left: Token
    right: Token
    then_body: List["Item"] = field(default_factory=list)
    else_body: List["Item"] = field(default_factory=list)


Item = Union[Decl, Expr, JobItem, If]


@dataclass
class AstError(Exception):
    kind: str
    message: str
    token: Optional[Token] = None

    def __str__(self) -> str:
        where = f"{self.token}: " if self.token is not None else ""
        return f"{where}[ERROR] {self.kind}: {self.message}"


def _adjacent(prev: Token, tok: Token) -> bool:
    return tok.line == prev.line and tok.col == prev.end_col


def group_adjacent(tokens: List[Token]) -> List[List[Token]]:
    """
    Group tokens that touched in the source.

    The lexer splits `:` and `=` out of words, so `-DX=1` arrives as three
    tokens; grouping restores it as one word.
    """
    groups: List[List[Token]] = []
    for tok in tokens:
        if groups and _adjacent(groups[-1][-1], tok):
            groups[-1].append(tok)
        else:
            groups.append([tok])
    return groups


def adjacent_run(tokens: List[Token], start: int) -> List[Token]:
    """Tokens from `start` onwards that touch each other in the source."""
    run = [tokens[start]]
    for tok in tokens[start + 1:]:
        if not _adjacent(run[-1], tok):
            break
        run.append(tok)
    return run


@dataclass
class Ast:
    items: List[Item] = field(default_factory=list)
    variables: Dict[str, List[str]] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Variable lookup and substitution
    # ------------------------------------------------------------------

    def _current(self, name: str) -> Optional[List[str]]:
        if name in self.variables:
            return self.variables[name]
        if name in os.environ:
            return [os.environ[name]]
        return None

    def _lookup(self, name: str, token: Token, local: Dict[str, List[str]]) -> List[str]:
        if name in local:
            return local[name]
        value = self._current(name)
        if value is None:
            raise AstError(UNDEFINED_VARIABLE, f"Variable '{name}' is not defined", token)
        return value

    def _expand_token(self, token: Token, local: Dict[str, List[str]]) -> List[str]:
        m = REF.fullmatch(token.text)
        if m and not m.group(1):
            name = m.group(2) or m.group(3) or m.group(4)
            return list(self._lookup(name, token, local))

        def sub(m: re.Match) -> str:
            if m.group(1):
                return "$"
            name = m.group(2) or m.group(3) or m.group(4)
            return " ".join(self._lookup(name, token, local))

        return [REF.sub(sub, token.text)]

    def expand_words(self, tokens: List[Token], local: Optional[Dict[str, List[str]]] = None) -> List[str]:
        local = local or {}
        words: List[str] = []
        for group in group_adjacent(tokens):
            if len(group) == 1:
                words.extend(self._expand_token(group[0], local))
            else:
                words.append("".join(" ".join(self._expand_token(t, local)) for t in group))
        return words

    def expand_text(self, token: Token) -> str:
        return " ".join(self._expand_token(token, {}))

    # ------------------------------------------------------------------
    # Item evaluation
    # ------------------------------------------------------------------

    def _apply(self, item: Item) -> None:
        if isinstance(item, Decl):
            self.variables[item.name.text] = self.expand_words(item.value)
        elif isinstance(item, Expr):
            words = self.expand_words(item.value_tokens())
            current = self._current(item.name)
            if item.op is Operation.PLUS_EQUAL:
                self.variables[item.name] = list(current or []) + words
            else:
                if current is None:
                    raise AstError(
                        UNDEFINED_VARIABLE,
                        f"Cannot remove from undefined variable '{item.name}'",
                        item.left,
                    )
                self.variables[item.name] = [w for w in current if w not in words]
        elif isinstance(item, If):
            equal = self.expand_text(item.left) == self.expand_text(item.right)
            branch = item.then_body if equal != item.negate else item.else_body
            for inner in branch:
                self._apply(inner)
        elif isinstance(item, JobItem):
            pass
        else:
            raise TypeError(f"Unknown AST item: {item!r}")

    def _expand_job(self, item: JobItem) -> Job:
        targets = self.expand_words([item.target])
        if not targets or not targets[0]:
            raise AstError(EMPTY_TARGET, "Job target expands to nothing", item.target)
        if len(targets) > 1:
            raise AstError(
                MULTIPLE_TARGETS,
                f"Job target expands to several words: {targets}",
                item.target,
            )
        target = targets[0]

        dependencies = self.expand_words(item.dependencies, {"t": [target]})
        local = {"t": [target], "d": dependencies}
        body = [self.expand_words(line, local) for line in item.body]

        return Job(target=target, dependencies=dependencies, body=body)

    def expand(self) -> Jobs:
        """Evaluate variables, then turn every job item into a concrete Job."""
        self.variables = {}
        for item in self.items:
            self._apply(item)
        return [self._expand_job(item) for item in self.items if isinstance(item, JobItem)]
