# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Mapping, Optional, Tuple, Union

if TYPE_CHECKING:
    from .config import BundleSettings
    from .ui.console import Console


class ExitCode(IntEnum):
    """Process exit status, one per failure category."""
    OK = 0
    USAGE = 1
    # 2 is left to click for command-line usage errors
    MISSING_SECRET = 3
    VERSION_UPDATE = 4
    BUILD = 5
    COPY = 6
    SIGNING = 7
    DEPENDENCIES = 8
    PACKAGING = 9
    PUBLISH = 10
    SMOKE_TEST = 11


# Checked in this order; the first empty one is reported.
REQUIRED_SECRETS: Tuple[str, ...] = (
    "CERTIFICATE_OSX_APPLICATION",
    "CERTIFICATE_PASSWORD",
    "APPLE_ID",
    "APPLE_ID_PASSWORD",
    "APPLE_TEAM_ID",
)


@dataclass(frozen=True)
class PipelineInput:
    """Invocation parameters for one run. Never mutated."""
    version: str = ""
    signing: bool = False
    quick_test: bool = True


@dataclass(frozen=True)
class SecretBundle:
    """Named signing credentials. Values are opaque and never printed."""
    values: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> SecretBundle:
        return cls({name: environ.get(name, "") for name in REQUIRED_SECRETS})

    def get(self, name: str) -> str:
        return self.values.get(name, "") or ""

    def missing(self) -> list[str]:
        return [name for name in REQUIRED_SECRETS if not self.get(name)]

    def env_for(self, names: Tuple[str, ...]) -> Dict[str, str]:
        return {name: self.get(name) for name in names}

    def __repr__(self) -> str:
        present = [name for name in REQUIRED_SECRETS if self.get(name)]
        return f"SecretBundle(present={present})"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: fixed attempt count, static backoff in seconds."""
    max_attempts: int = 2
    backoff: float = 5.0


Guard = Callable[[PipelineInput], bool]
Action = Callable[["RunContext"], None]


@dataclass(frozen=True)
class Step:
    """A single step of the pipeline: a shell command or an in-process action."""
    name: str
    run: Union[str, Action]
    cwd: str | None = None
    env: Dict[str, str] = field(default_factory=dict)

    # secret names injected into the environment of this step only
    secrets: Tuple[str, ...] = ()
    when: Optional[Guard] = None
    skip_reason: str = "guard not met"
    retry: Optional[RetryPolicy] = None
    requires: Tuple[str, ...] = ()
    exit_code: int = ExitCode.USAGE

    @property
    def is_shell(self) -> bool:
        return isinstance(self.run, str)

    def applies_to(self, inputs: PipelineInput) -> bool:
        return self.when is None or bool(self.when(inputs))


@dataclass
class RunContext:
    """Everything a step may read. Built once per run and passed to each action."""
    inputs: PipelineInput
    secrets: SecretBundle
    settings: "BundleSettings"
    repo_root: Path
    console: "Console"

    def path(self, rel: str | Path) -> Path:
        return (self.repo_root / rel).resolve()


@dataclass
class RunResult:
    """Terminal outcome of one run."""
    exit_code: int = ExitCode.OK
    failed_step: str | None = None
    statuses: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.exit_code == ExitCode.OK
