# step_workflows/versioning.py
# Rewrites the version declared in the cargo manifest and the desktop
# package descriptor (plus its lockfile, as `npm version` does).
from __future__ import annotations

import json
import re
from pathlib import Path
from typing import List

from ..errors import CIError
from ..model import RunContext

STEP_NAME = "Update versions"

SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

# Same match as `sed 's/^version = ".*"/.../'`: every line, not just [package].
CARGO_VERSION_RE = re.compile(r'^version = ".*"', re.MULTILINE)


def normalize_version(raw: str) -> str:
    """Strip surrounding whitespace and one leading 'v'; reject non-semver."""
    v = raw.strip()
    if v[:1] in ("v", "V"):
        v = v[1:]
    if not SEMVER_RE.match(v):
        raise CIError(
            kind="invalid_version",
            step=STEP_NAME,
            message=f"not a valid semantic version: {raw!r}",
        )
    return v


def _read(path: Path) -> str:
    if not path.is_file():
        raise CIError(
            kind="version_file_missing",
            step=STEP_NAME,
            message=f"version file not found: {path}",
        )
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise CIError(
            kind="version_file_unreadable",
            step=STEP_NAME,
            message=f"could not read {path}: {e}",
        ) from e


def _write_if_changed(path: Path, old: str, new: str) -> bool:
    if new == old:
        return False
    tmp = path.with_name(path.name + ".bundleci.tmp")
    try:
        tmp.write_text(new, encoding="utf-8")
        tmp.replace(path)
    except OSError as e:
        raise CIError(
            kind="version_file_unwritable",
            step=STEP_NAME,
            message=f"could not write {path}: {e}",
        ) from e
    finally:
        if tmp.is_file():
            tmp.unlink(missing_ok=True)
    return True


def update_cargo_manifest(path: Path, version: str) -> bool:
    """Returns True if the file was rewritten."""
    text = _read(path)
    updated = CARGO_VERSION_RE.sub(f'version = "{version}"', text)
    return _write_if_changed(path, text, updated)


def _json_indent(text: str) -> int | str:
    # keep the file's own indentation, npm style
    m = re.search(r"^([ \t]+)\S", text, re.MULTILINE)
    if not m:
        return 2
    ws = m.group(1)
    return ws if "\t" in ws else len(ws)


def _update_json(path: Path, text: str, version: str, lockfile: bool) -> bool:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CIError(
            kind="version_file_invalid",
            step=STEP_NAME,
            message=f"{path} is not valid JSON: {e}",
        ) from e

    data["version"] = version
    if lockfile:
        root_pkg = (data.get("packages") or {}).get("")
        if isinstance(root_pkg, dict):
            root_pkg["version"] = version

    updated = json.dumps(data, indent=_json_indent(text), ensure_ascii=False) + "\n"
    if json.loads(updated) == json.loads(text):
        return False
    return _write_if_changed(path, text, updated)


def update_package_json(path: Path, version: str) -> bool:
    """Rewrite package.json, and package-lock.json next to it when present."""
    changed = _update_json(path, _read(path), version, lockfile=False)

    lock = path.with_name("package-lock.json")
    if lock.is_file():
        changed = _update_json(lock, _read(lock), version, lockfile=True) or changed
    return changed


def update_versions(repo_root: Path, cargo_manifest: str, package_json: str, raw_version: str) -> List[Path]:
    """Set the version in both declaration files. Returns the files rewritten."""
    version = normalize_version(raw_version)
    cargo = (repo_root / cargo_manifest).resolve()
    pkg = (repo_root / package_json).resolve()

    # both must exist before either is touched
    _read(cargo)
    _read(pkg)

    written: List[Path] = []
    if update_cargo_manifest(cargo, version):
        written.append(cargo)
    if update_package_json(pkg, version):
        written.append(pkg)
    return written


def run_step(ctx: RunContext) -> None:
    written = update_versions(
        ctx.repo_root,
        ctx.settings.cargo_manifest,
        ctx.settings.package_json,
        ctx.inputs.version,
    )
    version = normalize_version(ctx.inputs.version)
    if written:
        for p in written:
            ctx.console.print_info(f"Set version {version} in {p}")
    else:
        ctx.console.print_info(f"Version already {version}; nothing to update")
