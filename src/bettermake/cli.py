# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from bettermake.ast import AstError
from bettermake.lexer import LexError
from bettermake.parser import ParseError
from bettermake.runner import BuildError, CommandFailed, Executor, load_buildfile
from bettermake.ui.console import Console, get_console, set_console

DEFAULT_BUILDFILE = "Bmfile"


def find_buildfiles() -> list[Path]:
    """
    Find candidate build files in the current directory.

    Returns:
        [Bmfile] if present, otherwise every *.bm file
    """
    current_dir = Path(".")

    default = current_dir / DEFAULT_BUILDFILE
    if default.is_file():
        return [default]

    return sorted(p for p in current_dir.glob("*.bm") if p.is_file())


def discover_buildfile(file_arg: str | None) -> Path:
    """
    Discover the build file from argument or default.

    Raises:
        SystemExit: If no build file can be found or several candidates exist
    """
    console = get_console()

    if file_arg:
        path = Path(file_arg)
        if not path.exists():
            console.print_error(
                "Build file not found",
                f"Could not find build file: {file_arg}",
                suggestion="Specify a different path:\n  bettermake build --file path/to/Bmfile",
            )
            sys.exit(1)
        return path

    candidates = find_buildfiles()

    if len(candidates) == 0:
        console.print_error(
            "No build file found",
            "Could not find any build file.",
            details=[
                "Looked for:",
                f"  {DEFAULT_BUILDFILE}",
                "  *.bm",
            ],
            suggestion=f"Create a {DEFAULT_BUILDFILE} or specify one explicitly:\n  bettermake build --file my.bm",
        )
        sys.exit(1)

    if len(candidates) > 1:
        file_list = "\n".join(f"  {f}" for f in candidates)
        console.print_error(
            "Multiple build files found",
            "Found multiple build files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a build file explicitly:\n  bettermake build --file {candidates[0]}",
        )
        sys.exit(1)

    return candidates[0]


def _source_context(path: Path, line: int, col: int) -> list[str]:
    try:
        text = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return []
    if not 1 <= line <= len(text):
        return []
    return [text[line - 1], " " * max(col - 1, 0) + "^"]


def _load(path: Path):
    """Load jobs, turning read and syntax errors into a diagnostic and exit code 1."""
    console = get_console()
    try:
        return load_buildfile(path)
    except ParseError as e:
        details = _source_context(path, e.token.line, e.token.col) if e.token else []
        console.print_error("Invalid build file", str(e), details=details)
    except LexError as e:
        console.print_error(
            "Invalid build file",
            f"{path}:{e}",
            details=_source_context(path, e.line, e.col),
        )
    except AstError as e:
        details = _source_context(path, e.token.line, e.token.col) if e.token else []
        console.print_error("Could not expand build file", f"{path}:{e}", details=details)
    except (OSError, UnicodeDecodeError) as e:
        console.print_error("Could not read build file", f"{path}: {e}")
    sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    envvar="BETTERMAKE_DEBUG",
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--quiet", "-q", is_flag=True, default=False, help="Don't echo commands or notices")
@click.pass_context
def cli(ctx, debug, quiet):
    """bettermake: rebuild only what is out of date."""
    console = Console(debug=debug, quiet=quiet)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("target", required=False)
@click.option(
    "--file",
    "-f",
    "file_",
    default=None,
    envvar="BETTERMAKE_FILE",
    help=f"Build file path (defaults to {DEFAULT_BUILDFILE} if present)",
)
@click.option(
    "--detect-cycles/--no-detect-cycles",
    default=False,
    show_default=True,
    help="Report dependency cycles instead of recursing forever",
)
def build(target, file_, detect_cycles):
    """Build TARGET (default: the first job in the build file)."""
    console = get_console()

    path = discover_buildfile(file_)
    console.print_debug(f"Using build file {path}")
    jobs = _load(path)
    console.print_debug(f"Loaded {len(jobs)} job(s)")

    try:
        Executor(jobs, detect_cycles=detect_cycles).execute(target)
    except CommandFailed as e:
        console.relay_stderr(e.stderr)
        console.print_abnormal_exit(e.exit_code)
        console.print_debug(str(e))
        sys.exit(1)
    except BuildError as e:
        console.print_error("Build failed", e.message, details=[f"{k}: {v}" for k, v in e.details.items()])
        sys.exit(1)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option(
    "--file",
    "-f",
    "file_",
    default=None,
    envvar="BETTERMAKE_FILE",
    help=f"Build file path (defaults to {DEFAULT_BUILDFILE} if present)",
)
def jobs(file_):
    """List the jobs of the build file without running anything."""
    path = discover_buildfile(file_)
    get_console().print_job_list(_load(path))


if __name__ == "__main__":
    cli()
