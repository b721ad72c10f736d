from __future__ import annotations

import subprocess
import sys

import pytest

from bundleci.errors import CIError
from bundleci.dsl import action
from bundleci.model import ExitCode, PipelineInput
from bundleci.runner import run_pipeline
from bundleci.step_workflows import smoke
from bundleci.step_workflows.smoke import ChildProcessProbe, ProcessTableProbe, quick_launch_test
from bundleci.ui.console import Console

from conftest import py_cmd

STAYS_UP = [sys.executable, "-c", "import time; time.sleep(10)"]
EXITS_AT_ONCE = [sys.executable, "-c", "pass"]


def test_app_that_stays_resident_passes_and_is_stopped(capsys) -> None:
    probe = ChildProcessProbe(STAYS_UP)

    assert quick_launch_test(probe, delay=0.5, console=Console()) is True
    assert probe.proc is not None and probe.proc.poll() is not None
    assert "App appears to be running." in capsys.readouterr().out


def test_app_that_exits_immediately_fails(capsys) -> None:
    probe = ChildProcessProbe(EXITS_AT_ONCE)

    assert quick_launch_test(probe, delay=0.5, console=Console()) is False
    assert "App appears to be running." not in capsys.readouterr().out


def test_run_step_raises_when_app_does_not_stay_open(make_ctx) -> None:
    ctx = make_ctx(PipelineInput(), launch_command=py_cmd("raise SystemExit(3)"), smoke_delay=0.5)
    with pytest.raises(CIError) as exc_info:
        smoke.run_step(ctx)
    assert exc_info.value.kind == "smoke_test_failed"


def test_run_step_passes_for_resident_app(make_ctx, fake_repo) -> None:
    ctx = make_ctx(PipelineInput())
    smoke.run_step(ctx)
    assert (fake_repo / "smoke-ran").exists()


@pytest.mark.skipif(sys.platform == "darwin", reason="macOS launches through open -g")
def test_no_launcher_off_macos(make_ctx) -> None:
    ctx = make_ctx(PipelineInput(), launch_command=None)
    with pytest.raises(CIError) as exc_info:
        smoke.make_probe(ctx)
    assert exc_info.value.kind == "no_launcher"


def test_process_table_probe_uses_open_pgrep_pkill(monkeypatch, tmp_path) -> None:
    calls: list[list[str]] = []

    def fake_run(argv, **kwargs):
        calls.append(list(argv))
        return subprocess.CompletedProcess(argv, 0)

    monkeypatch.setattr(smoke.subprocess, "run", fake_run)
    app = tmp_path / "Goose.app"
    probe = ProcessTableProbe(app, "Goose.app/Contents/MacOS/Goose")

    assert quick_launch_test(probe, delay=0, console=Console(), sleep=lambda _: None) is True
    assert calls == [
        ["open", "-g", str(app)],
        ["pgrep", "-f", "Goose.app/Contents/MacOS/Goose"],
        ["pkill", "-f", "Goose.app/Contents/MacOS/Goose"],
    ]


def test_process_table_probe_reports_missing_process(monkeypatch, tmp_path) -> None:
    def fake_run(argv, **kwargs):
        return subprocess.CompletedProcess(argv, 1 if argv[0] == "pgrep" else 0)

    monkeypatch.setattr(smoke.subprocess, "run", fake_run)
    probe = ProcessTableProbe(tmp_path / "Goose.app", "Goose.app/Contents/MacOS/Goose")
    assert quick_launch_test(probe, delay=0, console=Console(), sleep=lambda _: None) is False


def test_empty_launch_command_rejected() -> None:
    with pytest.raises(ValueError):
        ChildProcessProbe([])


def test_dead_app_message_is_printed_once(make_ctx, capsys) -> None:
    ctx = make_ctx(PipelineInput(), launch_command=py_cmd("pass"), smoke_delay=0.5)
    result = run_pipeline([action(smoke.STEP_NAME, smoke.run_step, exit_code=ExitCode.SMOKE_TEST)], ctx)

    assert result.exit_code == ExitCode.SMOKE_TEST
    captured = capsys.readouterr()
    assert (captured.out + captured.err).count(smoke.DID_NOT_STAY_OPEN) == 1
    assert f"Error: {smoke.DID_NOT_STAY_OPEN}" in captured.err


def test_unlaunchable_command_raises_launch_failed(tmp_path) -> None:
    probe = ChildProcessProbe([str(tmp_path / "no-such-goose")])
    with pytest.raises(CIError) as exc_info:
        probe.launch()
    assert exc_info.value.kind == "launch_failed"


def test_open_failure_raises_launch_failed(monkeypatch, tmp_path) -> None:
    def fake_run(argv, **kwargs):
        raise subprocess.CalledProcessError(1, argv)

    monkeypatch.setattr(smoke.subprocess, "run", fake_run)
    probe = ProcessTableProbe(tmp_path / "Goose.app", "Goose.app/Contents/MacOS/Goose")
    with pytest.raises(CIError) as exc_info:
        probe.launch()
    assert exc_info.value.kind == "launch_failed"
