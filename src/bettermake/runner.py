# runner.py
from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from .lexer import lex
from .model import Job, Jobs
from .parser import Parser
from .ui.console import get_console

# Every command line runs through the platform shell as a single argument.
SHELL = ("cmd", "/C") if os.name == "nt" else ("sh", "-c")


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

@dataclass
class BuildError(Exception):
    """
    Structured build error with enough context for clean CLI output.

    kind is one of: MissingDependency, SpawnFailed, UnknownTarget, DependencyCycle
    """
    kind: str
    target: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.target:
            lines.append(f"target={self.target}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class CommandFailed(Exception):
    target: str
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.target}] command failed (exit={self.exit_code}): {self.command}"


# ----------------------------------------------------------------------
# Filesystem
# ----------------------------------------------------------------------

def path_exists(path: str) -> bool:
    return os.path.exists(path)


def get_last_modification_time(path: str) -> int:
    """Modification time in nanoseconds. Raises BuildError if `path` is missing."""
    try:
        return os.stat(path).st_mtime_ns
    except FileNotFoundError as e:
        get_console().print_missing_file(path)
        raise BuildError(
            kind="MissingDependency",
            target=None,
            message=f"No job builds '{path}' and the file does not exist",
            details={"path": path},
        ) from e


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------

class Executor:
    """
    Walks the job list depth-first from a goal, rebuilding what is stale.

    Dependencies are re-evaluated on every path that reaches them. Without
    `detect_cycles` a dependency cycle recurses until RecursionError.
    """

    def __init__(self, jobs: Iterable[Job], *, detect_cycles: bool = False):
        self.jobs: Jobs = list(jobs)
        self.detect_cycles = detect_cycles
        self._building: List[str] = []

    def find_job(self, target: str) -> Optional[Job]:
        for job in self.jobs:
            if job.target == target:
                return job
        return None

    def needs_rebuild(self, job: Job) -> bool:
        """
        Build job dependencies first, then decide whether `job` is stale.

        Only file dependencies are compared by timestamp. A job dependency
        makes `job` stale only if its own body actually ran.
        """
        times: List[int] = []
        dependency_rebuilt = False

        for dep in job.dependencies:
            dep_job = self.find_job(dep)
            if dep_job is not None:
                if self.execute_job_if_needed(dep_job):
                    dependency_rebuilt = True
            else:
                times.append(get_last_modification_time(dep))

        if not path_exists(job.target):
            return True

        target_time = get_last_modification_time(job.target)
        return dependency_rebuilt or any(t > target_time for t in times)

    def run_command(self, job: Job, command: str) -> None:
        console = get_console()
        console.print_command(command)

        try:
            proc = subprocess.run(
                [*SHELL, command],
                text=True,
                errors="replace",
                capture_output=True,
            )
        except OSError as e:
            raise BuildError(
                kind="SpawnFailed",
                target=job.target,
                message=str(e),
                details={"command": command, "shell": SHELL[0]},
            ) from e

        # Negative codes mean the child was killed by a signal; not fatal.
        if proc.returncode > 0:
            raise CommandFailed(
                target=job.target,
                command=command,
                exit_code=proc.returncode,
                stdout=proc.stdout or "",
                stderr=proc.stderr or "",
            )

        console.relay_stdout(proc.stdout)

    def _enter(self, job: Job) -> None:
        if job.target in self._building:
            chain = self._building[self._building.index(job.target):] + [job.target]
            raise BuildError(
                kind="DependencyCycle",
                target=job.target,
                message="Dependency cycle detected",
                details={"cycle": " -> ".join(chain)},
            )
        self._building.append(job.target)

    def execute_job_if_needed(self, job: Job) -> bool:
        """Run `job`'s commands if it needs rebuilding. Returns whether it ran."""
        if self.detect_cycles:
            self._enter(job)
        try:
            if not self.needs_rebuild(job):
                get_console().print_nothing_to_do(job.target)
                return False

            for command in job.commands():
                self.run_command(job, command)
            return True
        finally:
            if self.detect_cycles:
                self._building.pop()

    def execute(self, target: str | None = None) -> None:
        """Build `target`, or the first job when no target is given."""
        if target is not None:
            job = self.find_job(target)
            if job is None:
                raise BuildError(
                    kind="UnknownTarget",
                    target=target,
                    message=f"No job builds '{target}'",
                    details={"known_targets": [j.target for j in self.jobs]},
                )
        elif not self.jobs:
            get_console().print_debug("No jobs defined, nothing to build")
            return
        else:
            job = self.jobs[0]

        self.execute_job_if_needed(job)


def execute(jobs: Iterable[Job], target: str | None = None, *, detect_cycles: bool = False) -> None:
    Executor(jobs, detect_cycles=detect_cycles).execute(target)


# ----------------------------------------------------------------------
# Build file loading
# ----------------------------------------------------------------------

def load_buildfile(path: str | Path) -> Jobs:
    """
    Read, lex, parse and expand a build file.

    Raises:
      FileNotFoundError, LexError, ParseError, AstError
    """
    bf_path = Path(path).expanduser()
    if not bf_path.exists():
        raise FileNotFoundError(f"Build file not found: {bf_path}")

    text = bf_path.read_text(encoding="utf-8")
    return Parser(lex(text), path=str(bf_path)).parse()
