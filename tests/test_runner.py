import os
import subprocess

import pytest

from bettermake import runner
from bettermake.model import Job
from bettermake.runner import BuildError, CommandFailed, Executor, execute, load_buildfile

from conftest import posix_only, write


@pytest.fixture
def spawn_count(monkeypatch):
    calls = []
    real_run = subprocess.run

    def counting_run(*args, **kwargs):
        calls.append(args[0])
        return real_run(*args, **kwargs)

    monkeypatch.setattr(runner.subprocess, "run", counting_run)
    return calls


# ----------------------------------------------------------------------
# Rebuild decision
# ----------------------------------------------------------------------

def test_missing_target_always_rebuilds(workdir):
    write(workdir / "in.c", age=1000)
    job = Job("out", ["in.c"])
    assert Executor([job]).needs_rebuild(job) is True


def test_target_newer_than_every_dependency_is_up_to_date(workdir):
    write(workdir / "a", age=300)
    write(workdir / "b", age=200)
    write(workdir / "out", age=100)
    job = Job("out", ["a", "b"])
    assert Executor([job]).needs_rebuild(job) is False


def test_newer_dependency_triggers_rebuild(workdir):
    write(workdir / "a", age=300)
    write(workdir / "b", age=50)
    write(workdir / "out", age=100)
    job = Job("out", ["a", "b"])
    assert Executor([job]).needs_rebuild(job) is True


def test_equal_timestamps_are_up_to_date(workdir):
    write(workdir / "a")
    write(workdir / "out")
    stamp = os.stat(workdir / "out").st_mtime_ns
    os.utime(workdir / "a", ns=(stamp, stamp))
    job = Job("out", ["a"])
    assert Executor([job]).needs_rebuild(job) is False


def test_missing_dependency_file(workdir, capsys):
    job = Job("out", ["nope.c"])
    with pytest.raises(BuildError) as exc:
        Executor([job]).needs_rebuild(job)
    assert exc.value.kind == "MissingDependency"
    assert exc.value.details["path"] == "nope.c"
    assert 'Failed to get last modification time of "nope.c"' in capsys.readouterr().err


@posix_only
def test_up_to_date_job_dependency_does_not_force_rebuild(workdir, spawn_count):
    # b is newer than c, but only a rebuilt job dependency makes c stale
    write(workdir / "a", age=300)
    write(workdir / "c", age=200)
    write(workdir / "b", age=100)
    jobs = [Job("c", ["b"], [["touch", "c"]]), Job("b", ["a"], [["touch", "b"]])]

    assert Executor(jobs).needs_rebuild(jobs[0]) is False
    assert spawn_count == []


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------

@posix_only
def test_builds_missing_output(workdir, capsys):
    write(workdir / "in.c", "int main;\n", age=100)
    execute([Job("out", ["in.c"], [["cp", "in.c", "out"]])])

    assert (workdir / "out").read_text() == "int main;\n"
    assert capsys.readouterr().out.splitlines()[0] == "cp in.c out"


@posix_only
def test_chained_jobs_rebuild_in_dependency_order(workdir):
    write(workdir / "a", age=100)
    write(workdir / "b", age=200)
    write(workdir / "c", age=300)
    jobs = [
        Job("c", ["b"], [["touch", "c"], ["echo", "c", ">>", "log"]]),
        Job("b", ["a"], [["touch", "b"], ["echo", "b", ">>", "log"]]),
    ]

    execute(jobs)

    assert (workdir / "log").read_text().split() == ["b", "c"]


@posix_only
def test_second_run_does_nothing(workdir, capsys, spawn_count):
    write(workdir / "in.c", age=100)
    jobs = [Job("out", ["in.c"], [["cp", "in.c", "out"]])]

    execute(jobs)
    assert len(spawn_count) == 1
    assert spawn_count[0] == ["sh", "-c", "cp in.c out"]
    capsys.readouterr()

    execute(jobs)
    assert len(spawn_count) == 1
    assert capsys.readouterr().out == 'Nothing to do for "out"\n'


@posix_only
def test_failing_command_stops_the_job(workdir):
    job = Job("out", [], [["echo", "oops", ">&2", ";", "exit", "2"], ["touch", "never"]])

    with pytest.raises(CommandFailed) as exc:
        execute([job])

    assert exc.value.exit_code == 2
    assert exc.value.stderr == "oops\n"
    assert exc.value.command == "echo oops >&2 ; exit 2"
    assert not (workdir / "never").exists()


@posix_only
def test_failure_does_not_continue_to_dependents(workdir):
    jobs = [
        Job("top", ["dep"], [["touch", "top"]]),
        Job("dep", [], [["false"]]),
    ]
    with pytest.raises(CommandFailed):
        execute(jobs)
    assert not (workdir / "top").exists()


@posix_only
def test_stdout_is_relayed(workdir, capsys):
    execute([Job("out", [], [["echo", "hello"]])])
    assert capsys.readouterr().out == "echo hello\nhello\n"


@posix_only
def test_signal_termination_is_not_fatal(workdir):
    execute([Job("out", [], [["kill", "-9", "$$"], ["touch", "after"]])])
    assert (workdir / "after").exists()


def test_spawn_failure(workdir, monkeypatch):
    monkeypatch.setattr(runner, "SHELL", ("/nonexistent/shell", "-c"))
    with pytest.raises(BuildError) as exc:
        execute([Job("out", [], [["true"]])])
    assert exc.value.kind == "SpawnFailed"


@posix_only
def test_shared_dependency_is_evaluated_on_every_path(workdir, capsys):
    jobs = [
        Job("top", ["left", "right"], [["touch", "top"]]),
        Job("left", ["shared"], [["touch", "left"]]),
        Job("right", ["shared"], [["touch", "right"]]),
        Job("shared", [], [["touch", "shared"]]),
    ]
    execute(jobs)

    out = capsys.readouterr().out.splitlines()
    assert out.count("touch shared") == 1
    assert out.count('Nothing to do for "shared"') == 1
    assert out[-1] == "touch top"


@posix_only
def test_named_target(workdir):
    jobs = [Job("a", [], [["touch", "a"]]), Job("b", [], [["touch", "b"]])]
    execute(jobs, "b")
    assert (workdir / "b").exists()
    assert not (workdir / "a").exists()


def test_unknown_target():
    with pytest.raises(BuildError) as exc:
        execute([Job("a")], "zzz")
    assert exc.value.kind == "UnknownTarget"
    assert exc.value.details["known_targets"] == ["a"]


def test_empty_job_list_does_nothing(spawn_count, capsys):
    execute([])
    assert spawn_count == []
    assert capsys.readouterr().out == ""


def test_cycle_detection(workdir):
    jobs = [Job("a", ["b"]), Job("b", ["a"])]
    with pytest.raises(BuildError) as exc:
        execute(jobs, detect_cycles=True)
    assert exc.value.kind == "DependencyCycle"
    assert exc.value.details["cycle"] == "a -> b -> a"


def test_cycle_without_detection_recurses(workdir):
    jobs = [Job("a", ["b"]), Job("b", ["a"])]
    with pytest.raises(RecursionError):
        execute(jobs)


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------

def test_load_buildfile(workdir):
    write(workdir / "Bmfile", "CC = cc\nout: in.c\n    $CC -o $t in.c\n")
    (job,) = load_buildfile(workdir / "Bmfile")
    assert job.commands() == ["cc -o out in.c"]


def test_load_missing_buildfile(workdir):
    with pytest.raises(FileNotFoundError):
        load_buildfile(workdir / "Bmfile")
