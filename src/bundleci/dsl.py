# src/bundleci/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .model import Action, ExitCode, Guard, PipelineInput, RetryPolicy, Step


# ---------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------

def signing(inputs: PipelineInput) -> bool:
    return inputs.signing


def not_signing(inputs: PipelineInput) -> bool:
    return not inputs.signing


def has_version(inputs: PipelineInput) -> bool:
    return inputs.version != ""


def quick_test(inputs: PipelineInput) -> bool:
    return inputs.quick_test


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    secrets: Iterable[str] = (),
    when: Optional[Guard] = None,
    skip_reason: str | None = None,
    retry: Optional[RetryPolicy] = None,
    requires: Iterable[str] = (),
    exit_code: int = ExitCode.USAGE,
) -> Step:
    """Create a shell step."""
    step = Step(
        name=name,
        run=cmd,
        cwd=cwd,
        env={k: str(v) for k, v in (env or {}).items()},
        secrets=tuple(secrets),
        when=when,
        retry=retry,
        requires=tuple(requires),
        exit_code=exit_code,
    )
    if skip_reason:
        step = replace(step, skip_reason=skip_reason)
    return step


def action(
    name: str,
    fn: Action,
    *,
    when: Optional[Guard] = None,
    skip_reason: str | None = None,
    exit_code: int = ExitCode.USAGE,
) -> Step:
    """Create an in-process step; `fn(ctx)` raises to fail the step."""
    step = Step(name=name, run=fn, when=when, exit_code=exit_code)
    if skip_reason:
        step = replace(step, skip_reason=skip_reason)
    return step


# ---------------------------------------------------------------------
# Pipeline helper
# ---------------------------------------------------------------------

def pipeline(*steps: Step) -> List[Step]:
    """
    Pipeline definition helper:

        def steps():
            return pipeline(
                sh("Build", "cargo build --release", exit_code=ExitCode.BUILD),
                action("Publish", publish_artifact, exit_code=ExitCode.PUBLISH),
            )
    """
    if not steps:
        raise ValueError("pipeline() must have at least one step")
    return list(steps)
