from __future__ import annotations

import os
import sys
import time
from pathlib import Path

import pytest

from bettermake.ui.console import Console, set_console

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="commands use POSIX sh")


@pytest.fixture(autouse=True)
def fresh_console():
    set_console(Console())
    yield
    set_console(Console())


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch) -> Path:
    """Run the test from inside a scratch directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write(path: Path, text: str = "", age: float | None = None) -> Path:
    """Create `path`; with `age`, backdate its mtime by that many seconds."""
    path.write_text(text)
    if age is not None:
        set_age(path, age)
    return path


def set_age(path: Path, age: float) -> None:
    t = time.time() - age
    os.utime(path, (t, t))
