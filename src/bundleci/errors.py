# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured pipeline error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(Exception):
    step: str
    cmd: str
    exit_code: int

    def __str__(self) -> str:
        return f"step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


@dataclass
class RetryExhausted(Exception):
    step: str
    cmd: str
    attempts: int
    last_exit_code: int

    def __str__(self) -> str:
        return (
            f"step '{self.step}' failed after {self.attempts} attempts "
            f"(last exit={self.last_exit_code}): {self.cmd}"
        )


TOOL_HINTS = {
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "cargo": "Install the Rust toolchain (rustup) or fix PATH.",
    "xattr": "xattr ships with macOS; quarantine stripping is skipped elsewhere.",
    "pgrep": "Install procps (pgrep/pkill) or fix PATH.",
}
