# runner.py
from __future__ import annotations

import os
import subprocess
import traceback
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .errors import TOOL_HINTS, CIError, RetryExhausted, StepFailure
from .model import ExitCode, PipelineInput, RunContext, RunResult, Step
from .retry import retry_call


# ----------------------------------------------------------------------
# Preflight
# ----------------------------------------------------------------------

def _check_tool_available(step: Step, tool: str) -> None:
    """Check if a required tool is available, raise helpful error if not."""
    try:
        subprocess.run(
            [tool, "--version"],
            capture_output=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        hint = TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
        raise CIError(
            kind="tool_unavailable",
            step=step.name,
            message=f"{tool} is not available",
            details={"hint": hint, "tool": tool},
        )


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def step_env(step: Step, ctx: RunContext) -> Dict[str, str]:
    """os.environ + step.env + the step's secrets, nothing else."""
    env = os.environ.copy()
    env.update(step.env or {})
    env.update(ctx.secrets.env_for(step.secrets))
    return env


def _step_cwd(step: Step, repo_root: Path) -> Path:
    cwd = (repo_root / (step.cwd or ".")).resolve()
    if not cwd.exists():
        raise CIError(
            kind="cwd_missing",
            step=step.name,
            message=f"working directory not found: {cwd}",
        )
    return cwd


def run_shell(cmd: str, *, cwd: Path, env: Dict[str, str]) -> int:
    # output streams to the terminal; the last step's output is the failure signal
    proc = subprocess.run(
        cmd,
        shell=True,
        cwd=str(cwd),
        env=env,
    )
    return proc.returncode


def _run_shell_step(step: Step, ctx: RunContext) -> None:
    cwd = _step_cwd(step, ctx.repo_root)
    env = step_env(step, ctx)
    cmd = str(step.run)

    if step.retry is None:
        code = run_shell(cmd, cwd=cwd, env=env)
        if code != 0:
            raise StepFailure(step=step.name, cmd=cmd, exit_code=code)
        return

    code, attempts = retry_call(
        lambda: run_shell(cmd, cwd=cwd, env=env),
        step.retry,
        console=ctx.console,
    )
    if code != 0:
        raise RetryExhausted(step=step.name, cmd=cmd, attempts=attempts, last_exit_code=code)


def run_step(step: Step, ctx: RunContext) -> None:
    """Run one step. Raises StepFailure / RetryExhausted / CIError on failure."""
    for tool in step.requires:
        _check_tool_available(step, tool)

    if step.is_shell:
        _run_shell_step(step, ctx)
    else:
        step.run(ctx)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def plan(steps: Sequence[Step], inputs: PipelineInput) -> List[tuple[Step, bool]]:
    """Evaluate every guard up front: [(step, runs), ...]."""
    return [(s, s.applies_to(inputs)) for s in steps]


def run_pipeline(steps: Sequence[Step], ctx: RunContext) -> RunResult:
    """
    Run the steps in order. Halts at the first step whose guard holds and
    whose body fails; that step's exit code becomes the run's exit code.
    """
    names = [s.name for s in steps]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate step names found: {dupes}")

    console = ctx.console
    result = RunResult()

    for step in steps:
        if not step.applies_to(ctx.inputs):
            console.print_step_skipped(step.name, step.skip_reason)
            result.statuses[step.name] = "skipped"
            continue

        console.print_step(step.name)
        reason: Optional[str] = None
        hint: Optional[str] = None
        try:
            run_step(step, ctx)
        except CIError as e:
            # message first: it is the line shown outside debug mode
            reason = f"{e.message}\n{e}"
            hint = e.details.get("hint")
        except (StepFailure, RetryExhausted) as e:
            reason = str(e)
        except Exception as e:
            # anything else still fails this step with this step's exit code
            reason = f"{type(e).__name__}: {e}"
            console.print_debug(traceback.format_exc())

        if reason is not None:
            result.statuses[step.name] = "failed"
            result.exit_code = int(step.exit_code)
            result.failed_step = step.name
            console.print_failure(step.name, reason, exit_code=result.exit_code, hint=hint)
            return result

        result.statuses[step.name] = "ok"

    result.exit_code = ExitCode.OK
    return result
