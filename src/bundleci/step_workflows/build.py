# step_workflows/build.py
from __future__ import annotations

import shutil
from pathlib import Path

from ..errors import CIError
from ..model import RunContext

COPY_STEP_NAME = "Copy binary into Electron folder"


def copy_binary(src: Path, dest: Path) -> Path:
    """Copy the freshly built server binary where the desktop bundle expects it."""
    if not src.is_file():
        raise CIError(
            kind="binary_missing",
            step=COPY_STEP_NAME,
            message=f"built binary not found: {src}",
            details={"hint": "the build step did not produce the expected output"},
        )
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        shutil.copy2(src, dest)
    except OSError as e:
        raise CIError(
            kind="copy_failed",
            step=COPY_STEP_NAME,
            message=f"could not copy {src} -> {dest}: {e}",
        ) from e
    return dest


def run_step(ctx: RunContext) -> None:
    dest = copy_binary(ctx.path(ctx.settings.binary_path), ctx.path(ctx.settings.binary_dest))
    ctx.console.print_info(f"Copied binary to {dest}")
