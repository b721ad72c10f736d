# desktop.py
# The desktop bundle pipeline: build the server, package the Electron app,
# publish the zip, and smoke-test the bundle.
from __future__ import annotations

import shlex
from typing import List, Tuple

from .cache import CargoCache
from .config import BundleSettings
from .dsl import action, has_version, not_signing, pipeline, quick_test, sh, signing
from .errors import TOOL_HINTS
from .model import ExitCode, RetryPolicy, Step
from .step_workflows import build, credentials, publish, smoke, versioning

CERT_SECRETS = ("CERTIFICATE_OSX_APPLICATION", "CERTIFICATE_PASSWORD")
NOTARIZE_SECRETS = ("APPLE_ID", "APPLE_ID_PASSWORD", "APPLE_TEAM_ID")


def _requires(cmd: str) -> Tuple[str, ...]:
    """Preflight the command's tool when it is one we know how to explain."""
    try:
        argv = shlex.split(cmd)
    except ValueError:
        return ()
    if argv and argv[0] in TOOL_HINTS:
        return (argv[0],)
    return ()


def desktop_pipeline(settings: BundleSettings) -> List[Step]:
    s = settings
    retry = RetryPolicy(max_attempts=s.retry_attempts, backoff=s.retry_backoff)

    steps: List[Step] = [
        action(
            credentials.STEP_NAME,
            credentials.run_step,
            when=signing,
            skip_reason="signing disabled",
            exit_code=ExitCode.MISSING_SECRET,
        ),
        action(
            versioning.STEP_NAME,
            versioning.run_step,
            when=has_version,
            skip_reason="no version given",
            exit_code=ExitCode.VERSION_UPDATE,
        ),
    ]

    cache = CargoCache(s.cache_dir) if s.cache_enabled else None
    if cache is not None:
        steps.append(action("Restore Cargo caches", cache.restore))

    steps.append(
        sh(
            "Build goosed",
            s.build_command,
            requires=_requires(s.build_command),
            exit_code=ExitCode.BUILD,
        )
    )

    # the same bundle command for both variants; only the injected secrets differ
    package_kwargs = dict(
        cwd=s.desktop_dir,
        retry=retry,
        requires=_requires(s.bundle_command),
        exit_code=ExitCode.PACKAGING,
    )

    steps += [
        action(build.COPY_STEP_NAME, build.run_step, exit_code=ExitCode.COPY),
        sh(
            "Add MacOS certs for signing and notarization",
            s.cert_command,
            cwd=s.desktop_dir,
            secrets=CERT_SECRETS,
            when=signing,
            skip_reason="signing disabled",
            exit_code=ExitCode.SIGNING,
        ),
        sh(
            "Install dependencies",
            s.install_command,
            cwd=s.desktop_dir,
            requires=_requires(s.install_command),
            exit_code=ExitCode.DEPENDENCIES,
        ),
        sh(
            "Make Unsigned App",
            s.bundle_command,
            when=not_signing,
            skip_reason="signing enabled",
            **package_kwargs,
        ),
        sh(
            "Make Signed App",
            s.bundle_command,
            secrets=NOTARIZE_SECRETS,
            when=signing,
            skip_reason="signing disabled",
            **package_kwargs,
        ),
        action(publish.STEP_NAME, publish.run_step, exit_code=ExitCode.PUBLISH),
        action(
            smoke.STEP_NAME,
            smoke.run_step,
            when=quick_test,
            skip_reason="quick test disabled",
            exit_code=ExitCode.SMOKE_TEST,
        ),
    ]

    # saved last: a failed job leaves the cache untouched
    if cache is not None:
        steps.append(action("Save Cargo caches", cache.save))
    return pipeline(*steps)
