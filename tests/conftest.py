"""Shared fixtures: a throwaway repository laid out like the desktop app's,
with stand-in shell commands for cargo, npm and the signing script."""

from __future__ import annotations

import json
import shlex
import sys
from pathlib import Path

import pytest


def _ensure_src_on_path() -> None:
    root = Path(__file__).resolve().parents[1]
    src_path = root / "src"
    if src_path.exists():
        src_str = str(src_path)
        if src_str not in sys.path:
            sys.path.insert(0, src_str)


_ensure_src_on_path()

from bundleci.config import BundleSettings  # noqa: E402
from bundleci.model import PipelineInput, RunContext, SecretBundle, REQUIRED_SECRETS  # noqa: E402
from bundleci.ui.console import Console  # noqa: E402

CARGO_TOML = """\
[workspace]
members = ["crates/*"]

[workspace.package]
version = "1.0.0"
edition = "2021"
"""

PACKAGE_JSON = {
    "name": "goose-app",
    "productName": "Goose",
    "version": "1.0.0",
    "main": ".vite/build/main.js",
    "scripts": {"bundle:default": "electron-forge make"},
}


def py_cmd(code: str) -> str:
    """A shell-safe command running `code` with this interpreter."""
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


@pytest.fixture
def fake_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    desktop = repo / "ui" / "desktop"
    (desktop / "scripts").mkdir(parents=True)
    (repo / "Cargo.toml").write_text(CARGO_TOML, encoding="utf-8")
    (desktop / "package.json").write_text(json.dumps(PACKAGE_JSON, indent=2) + "\n", encoding="utf-8")
    return repo


@pytest.fixture
def settings() -> BundleSettings:
    """Defaults with every external tool swapped for a local stand-in."""
    return BundleSettings(
        build_command="mkdir -p target/release && printf 'server' > target/release/goosed",
        cert_command='printf "%s" "$CERTIFICATE_PASSWORD" > ../../cert-password.txt',
        install_command="mkdir -p node_modules",
        bundle_command=(
            'printf "%s" "${APPLE_ID:-unsigned}" > ../../bundle-identity.txt && '
            "mkdir -p out/Goose-darwin-arm64 && printf 'zip' > out/Goose-darwin-arm64/Goose.zip"
        ),
        retry_backoff=0,
        smoke_delay=1.0,
        launch_command=py_cmd("open('smoke-ran', 'w').close(); import time; time.sleep(10)"),
        cache_enabled=False,
    )


@pytest.fixture
def all_secrets() -> SecretBundle:
    return SecretBundle({name: f"value-of-{name.lower()}" for name in REQUIRED_SECRETS})


@pytest.fixture
def make_ctx(fake_repo: Path, settings: BundleSettings):
    def _make(inputs: PipelineInput | None = None, secrets: SecretBundle | None = None, **overrides) -> RunContext:
        return RunContext(
            inputs=inputs or PipelineInput(),
            secrets=secrets or SecretBundle(),
            settings=settings.with_overrides(**overrides),
            repo_root=fake_repo,
            console=Console(),
        )

    return _make
