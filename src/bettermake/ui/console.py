"""Console output formatting utilities for bettermake."""

from __future__ import annotations

import sys
from typing import Optional

from ..model import Jobs


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, don't echo commands or "nothing to do" notices
        """
        self.debug = debug
        self.quiet = quiet

    def print_command(self, command: str) -> None:
        """Echo a rendered command line before it runs."""
        if not self.quiet:
            print(command, flush=True)

    def print_nothing_to_do(self, target: str) -> None:
        if not self.quiet:
            print(f'Nothing to do for "{target}"')

    def relay_stdout(self, text: str) -> None:
        """Relay a finished command's stdout."""
        if text:
            sys.stdout.write(text)
            sys.stdout.flush()

    def relay_stderr(self, text: str) -> None:
        if text:
            sys.stderr.write(text)
            sys.stderr.flush()

    def print_abnormal_exit(self, exit_code: int) -> None:
        print(f"Process exited abnormally with code {exit_code}", file=sys.stderr)

    def print_missing_file(self, path: str) -> None:
        print(
            f'[ERROR] Failed to get last modification time of "{path}", apparently it does not exist',
            file=sys.stderr,
        )

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_job_list(self, jobs: Jobs) -> None:
        """Print expanded jobs, default goal first."""
        for idx, job in enumerate(jobs):
            marker = " (default)" if idx == 0 else ""
            deps = " ".join(job.dependencies)
            print(f"{job.target}:{' ' + deps if deps else ''}{marker}")
            for command in job.commands():
                print(f"    {command}")

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
