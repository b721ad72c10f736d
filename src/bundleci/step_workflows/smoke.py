# step_workflows/smoke.py
# Quick launch test: start the bundled app in the background, wait a fixed
# delay, and check it is still running. Liveness only, not correctness.
from __future__ import annotations

import shlex
import shutil
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional

from ..errors import CIError
from ..model import RunContext
from ..ui.console import Console, get_console

STEP_NAME = "Quick launch test (macOS)"

STILL_RUNNING = "App appears to be running."
DID_NOT_STAY_OPEN = "App did not stay open. Possible crash or startup error."


class ProcessTableProbe:
    """macOS: `open -g` the bundle, then find it in the process table by pattern."""

    def __init__(self, app_path: Path, pattern: str):
        self.app_path = app_path
        self.pattern = pattern

    def launch(self) -> None:
        # -g: do not bring the app to the foreground
        try:
            subprocess.run(["open", "-g", str(self.app_path)], check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise CIError(
                kind="launch_failed",
                step=STEP_NAME,
                message=f"could not open {self.app_path}: {e}",
            ) from e

    def is_running(self) -> bool:
        proc = subprocess.run(
            ["pgrep", "-f", self.pattern],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return proc.returncode == 0

    def stop(self) -> None:
        subprocess.run(["pkill", "-f", self.pattern], check=False)


class ChildProcessProbe:
    """Any platform: spawn a launch command directly and watch that child."""

    def __init__(self, argv: List[str], cwd: Optional[Path] = None, stop_timeout: float = 5.0):
        if not argv:
            raise ValueError("launch command is empty")
        self.argv = argv
        self.cwd = cwd
        self.stop_timeout = stop_timeout
        self.proc: Optional[subprocess.Popen] = None

    def launch(self) -> None:
        try:
            self.proc = subprocess.Popen(
                self.argv,
                cwd=str(self.cwd) if self.cwd else None,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise CIError(
                kind="launch_failed",
                step=STEP_NAME,
                message=f"could not start {self.argv[0]}: {e}",
                details={"hint": "check BUNDLECI_LAUNCH_COMMAND"},
            ) from e

    def is_running(self) -> bool:
        # poll() reaps an exited child, so a crashed app never looks alive
        return self.proc is not None and self.proc.poll() is None

    def stop(self) -> None:
        if self.proc is None or self.proc.poll() is not None:
            return
        self.proc.terminate()
        try:
            self.proc.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            self.proc.kill()
            self.proc.wait()


def strip_quarantine(app_path: Path, console: Optional[Console] = None) -> bool:
    """`xattr -cr` the bundle. Returns False when xattr is not available."""
    console = console or get_console()
    if shutil.which("xattr") is None:
        console.print_debug("xattr not available; skipping quarantine stripping")
        return False
    try:
        subprocess.run(["xattr", "-cr", str(app_path)], check=True)
    except subprocess.CalledProcessError as e:
        raise CIError(
            kind="xattr_failed",
            step=STEP_NAME,
            message=f"could not clear extended attributes on {app_path}",
            details={"exit_code": e.returncode},
        ) from e
    return True


def quick_launch_test(
    probe,
    *,
    delay: float,
    console: Optional[Console] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Launch, wait `delay`, probe once. Cleans up the app when it is alive.

    A dead app is reported by the caller, not here.
    """
    console = console or get_console()
    probe.launch()
    sleep(delay)

    if not probe.is_running():
        return False

    console.print_info(STILL_RUNNING)
    probe.stop()
    return True


def make_probe(ctx: RunContext):
    s = ctx.settings
    if s.launch_command:
        return ChildProcessProbe(shlex.split(s.launch_command), cwd=ctx.repo_root)
    if sys.platform == "darwin":
        app = ctx.path(s.app_path)
        if not app.exists():
            raise CIError(
                kind="app_missing",
                step=STEP_NAME,
                message=f"application bundle not found: {app}",
            )
        return ProcessTableProbe(app, s.process_pattern)
    raise CIError(
        kind="no_launcher",
        step=STEP_NAME,
        message=f"no way to launch the app on {sys.platform}",
        details={"hint": "set BUNDLECI_LAUNCH_COMMAND to the app's executable"},
    )


def run_step(ctx: RunContext) -> None:
    app = ctx.path(ctx.settings.app_path)
    if app.exists():
        strip_quarantine(app, ctx.console)

    probe = make_probe(ctx)
    ctx.console.print_info(f"Opening {app.name}...")
    if not quick_launch_test(probe, delay=ctx.settings.smoke_delay, console=ctx.console):
        raise CIError(kind="smoke_test_failed", step=STEP_NAME, message=DID_NOT_STAY_OPEN)
