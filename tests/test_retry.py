from __future__ import annotations

from bundleci.dsl import sh
from bundleci.model import ExitCode, RetryPolicy
from bundleci.retry import retry_call
from bundleci.runner import run_pipeline
from bundleci.ui.console import Console

from conftest import py_cmd


class Scripted:
    """Returns the queued exit codes in order, counting calls."""

    def __init__(self, *codes: int):
        self.codes = list(codes)
        self.calls = 0

    def __call__(self) -> int:
        self.calls += 1
        return self.codes.pop(0)


def test_fail_once_then_succeed_makes_two_calls(capsys) -> None:
    invoke = Scripted(1, 0)
    sleeps: list[float] = []

    code, attempts = retry_call(invoke, RetryPolicy(max_attempts=2, backoff=5), console=Console(), sleep=sleeps.append)

    assert (code, attempts) == (0, 2)
    assert invoke.calls == 2
    assert sleeps == [5]
    assert "Attempt 1 failed. Retrying..." in capsys.readouterr().out


def test_always_failing_stops_after_max_attempts(capsys) -> None:
    invoke = Scripted(3, 7, 9)
    sleeps: list[float] = []

    code, attempts = retry_call(invoke, RetryPolicy(max_attempts=2, backoff=5), console=Console(), sleep=sleeps.append)

    assert invoke.calls == 2
    assert (code, attempts) == (7, 2)
    assert sleeps == [5]
    out = capsys.readouterr().out
    assert out.index("Attempt 1 failed. Retrying...") < out.index("Attempt 2 failed. Retrying...")
    assert out.index("Attempt 2 failed. Retrying...") < out.index("Action failed after 2 attempts.")


def test_first_success_does_not_sleep() -> None:
    invoke = Scripted(0)
    sleeps: list[float] = []
    assert retry_call(invoke, RetryPolicy(), console=Console(), sleep=sleeps.append) == (0, 1)
    assert sleeps == []


COUNT_AND_PASS_ON_SECOND = (
    "import pathlib, sys\n"
    "p = pathlib.Path('count.txt')\n"
    "n = len(p.read_text()) + 1 if p.exists() else 1\n"
    "p.write_text('x' * n)\n"
    "sys.exit(0 if n >= 2 else 1)\n"
)

COUNT_AND_FAIL = (
    "import pathlib, sys\n"
    "p = pathlib.Path('count.txt')\n"
    "n = len(p.read_text()) + 1 if p.exists() else 1\n"
    "p.write_text('x' * n)\n"
    "sys.exit(1)\n"
)


def _packaging_step(cmd: str):
    return sh("Make Unsigned App", cmd, retry=RetryPolicy(max_attempts=2, backoff=0), exit_code=ExitCode.PACKAGING)


def test_flaky_packaging_command_succeeds_on_second_invocation(make_ctx, fake_repo) -> None:
    ctx = make_ctx()
    result = run_pipeline([_packaging_step(py_cmd(COUNT_AND_PASS_ON_SECOND))], ctx)

    assert result.ok
    assert result.statuses == {"Make Unsigned App": "ok"}
    assert (fake_repo / "count.txt").read_text() == "xx"


def test_broken_packaging_command_fails_after_exactly_two_invocations(make_ctx, fake_repo) -> None:
    ctx = make_ctx()
    result = run_pipeline([_packaging_step(py_cmd(COUNT_AND_FAIL))], ctx)

    assert result.exit_code == ExitCode.PACKAGING
    assert result.failed_step == "Make Unsigned App"
    assert (fake_repo / "count.txt").read_text() == "xx"
