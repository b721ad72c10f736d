# step_workflows/credentials.py
from __future__ import annotations

from ..errors import CIError
from ..model import RunContext, SecretBundle
from ..ui.console import Console, get_console

STEP_NAME = "Validate Signing Secrets"


def validate_secrets(secrets: SecretBundle, console: Console | None = None) -> None:
    """
    Fail on the first empty credential, in REQUIRED_SECRETS order.
    Values are checked for presence only, never for shape.
    """
    console = console or get_console()
    missing = secrets.missing()
    if missing:
        name = missing[0]
        raise CIError(
            kind="missing_secret",
            step=STEP_NAME,
            message=f"{name} secret is required for signing.",
            details={"secret": name},
        )
    console.print_info("All required signing secrets are present.")


def run_step(ctx: RunContext) -> None:
    validate_secrets(ctx.secrets, ctx.console)
