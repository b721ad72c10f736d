# config.py
# Settings for the desktop bundle pipeline. Defaults reproduce the release
# workflow for the macOS arm64 bundle; every field can be overridden through
# a BUNDLECI_* environment variable.
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

ENV_PREFIX = "BUNDLECI_"

IF_MISSING_CHOICES = ("warn", "error", "ignore")


@dataclass(frozen=True)
class BundleSettings:
    # --- layout (relative to repo root) ---
    cargo_manifest: str = "Cargo.toml"
    desktop_dir: str = "ui/desktop"
    package_json: str = "ui/desktop/package.json"

    # --- build ---
    build_command: str = "cargo build --release -p goose-server"
    binary_path: str = "target/release/goosed"
    binary_dest: str = "ui/desktop/src/bin/goosed"

    # --- signing / packaging (run inside desktop_dir) ---
    cert_command: str = "./scripts/add-macos-cert.sh"
    install_command: str = "npm ci"
    bundle_command: str = "npm run bundle:default"
    retry_attempts: int = 2
    retry_backoff: float = 5.0

    # --- artifact ---
    artifact_name: str = "Goose-darwin-arm64"
    artifact_path: str = "ui/desktop/out/Goose-darwin-arm64/Goose.zip"
    artifact_dir: str = ".bundleci/artifacts"
    artifact_if_missing: str = "warn"

    # --- smoke test ---
    app_path: str = "ui/desktop/out/Goose-darwin-arm64/Goose.app"
    process_pattern: str = "Goose.app/Contents/MacOS/Goose"
    launch_command: Optional[str] = None
    smoke_delay: float = 5.0

    # --- cargo caches ---
    cache_enabled: bool = True
    cache_dir: str = ".bundleci/cache"

    def __post_init__(self) -> None:
        if self.retry_attempts < 1:
            raise ValueError(f"retry_attempts must be >= 1, got {self.retry_attempts}")
        if self.retry_backoff < 0 or self.smoke_delay < 0:
            raise ValueError("retry_backoff and smoke_delay must be >= 0")
        if self.artifact_if_missing not in IF_MISSING_CHOICES:
            raise ValueError(
                f"artifact_if_missing must be one of {IF_MISSING_CHOICES}, "
                f"got {self.artifact_if_missing!r}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> BundleSettings:
        """Build settings from defaults + BUNDLECI_<FIELD> overrides."""
        env = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            overrides[f.name] = _coerce(f.name, raw, getattr(cls, f.name))
        return cls(**overrides)

    def with_overrides(self, **changes) -> BundleSettings:
        """Apply CLI options; None means 'not given'."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _coerce(name: str, raw: str, default):
    if isinstance(default, bool):
        return parse_bool(raw, name)
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if default is None:
        return raw or None
    return raw


def parse_bool(raw: str, name: str = "value") -> bool:
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name}: expected a boolean, got {raw!r}")
