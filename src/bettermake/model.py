# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class Job:
    """
    A fully expanded build rule: target + dependencies + command lines.

    Dependencies name either another job (by target) or a plain file path.
    Each body line is a list of words, ready to be joined into one shell command.
    """
    target: str
    dependencies: List[str] = field(default_factory=list)
    body: List[List[str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.target:
            raise ValueError("Job target must be non-empty")

    def commands(self) -> List[str]:
        return [render_command(line) for line in self.body]


# The first job is the default goal.
Jobs = List[Job]


def render_command(words: List[str]) -> str:
    return " ".join(words)
