# cli.py
from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from bundleci.config import BundleSettings
from bundleci.desktop import desktop_pipeline
from bundleci.errors import CIError
from bundleci.model import ExitCode, PipelineInput, RunContext, SecretBundle
from bundleci.runner import plan as plan_steps
from bundleci.runner import run_pipeline
from bundleci.step_workflows.credentials import STEP_NAME as SECRETS_STEP, validate_secrets
from bundleci.ui.console import Console, get_console, set_console


def input_options(f):
    """--version / --signing / --quick-test, shared by run and plan."""
    f = click.option(
        "--quick-test/--no-quick-test",
        default=True,
        show_default=True,
        envvar="BUNDLECI_QUICK_TEST",
        help="Launch the built app and check it stays open",
    )(f)
    f = click.option(
        "--signing/--no-signing",
        default=False,
        show_default=True,
        envvar="BUNDLECI_SIGNING",
        help="Sign and notarize the app (requires the signing secrets in the environment)",
    )(f)
    f = click.option(
        "--version",
        "version",
        default="",
        envvar="BUNDLECI_VERSION",
        help="Version to set in Cargo.toml and package.json before building",
    )(f)
    return f


def _load_settings(console: Console, **overrides) -> BundleSettings:
    try:
        return BundleSettings.from_env().with_overrides(**overrides)
    except ValueError as e:
        console.print_error(
            "Invalid configuration",
            str(e),
            suggestion="Check the BUNDLECI_* environment variables.",
        )
        sys.exit(ExitCode.USAGE)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """Build, sign, package and smoke-test the desktop bundle."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@input_options
@click.option(
    "--repo-root",
    default=".",
    show_default=True,
    type=click.Path(exists=True, file_okay=False),
    help="Repository to build",
)
@click.option("--artifact-dir", default=None, help="Local artifact store (default .bundleci/artifacts)")
@click.option("--cache-dir", default=None, help="Cargo cache directory (default .bundleci/cache)")
@click.option("--cache/--no-cache", "cache_enabled", default=None, help="Restore/save cargo caches")
def run(version, signing, quick_test, repo_root, artifact_dir, cache_dir, cache_enabled):
    """Run the desktop bundle pipeline."""
    console = get_console()
    settings = _load_settings(
        console,
        artifact_dir=artifact_dir,
        cache_dir=cache_dir,
        cache_enabled=cache_enabled,
    )

    try:
        root = Path(repo_root).resolve()
        inputs = PipelineInput(version=version, signing=signing, quick_test=quick_test)
        run_ctx = RunContext(
            inputs=inputs,
            secrets=SecretBundle.from_env(os.environ),
            settings=settings,
            repo_root=root,
            console=console,
        )
        steps = desktop_pipeline(settings)

        console.print_run_started(
            repository=root.name,
            version=version,
            signing=signing,
            quick_test=quick_test,
            step_count=len(steps),
        )
        result = run_pipeline(steps, run_ctx)
        console.print_results(result.statuses, result.exit_code)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(ExitCode.USAGE)

    sys.exit(result.exit_code)


@cli.command()
@input_options
def plan(version, signing, quick_test):
    """Show which steps would run for the given inputs, without running them."""
    console = get_console()
    settings = _load_settings(console)
    inputs = PipelineInput(version=version, signing=signing, quick_test=quick_test)

    console.print_info("PLAN")
    for step, runs in plan_steps(desktop_pipeline(settings), inputs):
        console.print_plan_step(step.name, runs)


@cli.command("check-secrets")
def check_secrets():
    """Check that every signing secret is set in the environment."""
    console = get_console()
    try:
        validate_secrets(SecretBundle.from_env(os.environ), console)
    except CIError as e:
        console.print_failure(SECRETS_STEP, e.message, exit_code=ExitCode.MISSING_SECRET)
        sys.exit(ExitCode.MISSING_SECRET)


if __name__ == "__main__":
    cli()
