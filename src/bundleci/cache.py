# cache.py
from __future__ import annotations

import hashlib
import json
import os
import platform
import tarfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .model import RunContext

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Cargo caching, keyed the way the release workflow keys it:
#
#   registry: <os>-cargo-registry-<hash(**/Cargo.lock)>  restore: <os>-cargo-registry-
#   index:    <os>-cargo-index                           restore: <os>-cargo-index
#   build:    <os>-cargo-build-<hash(**/Cargo.lock)>     restore: <os>-cargo-build-
#
# An exact key restores that archive. Otherwise the newest archive whose key
# starts with the restore prefix is used. Entries that were an exact hit are
# not saved again. Cache trouble is reported, never fatal.
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class CacheEntry:
    label: str
    path: str           # relative to repo root, or ~/...
    key: str
    restore_prefix: str

    def resolve(self, repo_root: Path) -> Path:
        p = Path(self.path).expanduser()
        return p if p.is_absolute() else (repo_root / p)


@dataclass(frozen=True)
class CacheHit:
    hit: bool
    exact: bool
    key: str
    reason: str  # human readable


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        while True:
            chunk = f.read(1024 * 1024)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def hash_files(repo_root: Path, filename: str, *, exclude_dirs: Iterable[str] = ("target", "node_modules", ".git", ".bundleci")) -> str:
    """Stable hash over every `filename` under repo_root (like hashFiles('**/<filename>')); "" when none."""
    skip = set(exclude_dirs)
    files: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(repo_root):
        dirnames[:] = [d for d in dirnames if d not in skip]
        if filename in filenames:
            files.append(Path(dirpath) / filename)
    if not files:
        return ""
    h = hashlib.sha256()
    for f in sorted(files):
        h.update(f.relative_to(repo_root).as_posix().encode("utf-8"))
        h.update(sha256_file(f).encode("ascii"))
    return h.hexdigest()


def cargo_entries(repo_root: Path, os_name: Optional[str] = None) -> List[CacheEntry]:
    os_name = os_name or platform.system()
    lock_hash = hash_files(repo_root, "Cargo.lock")
    return [
        CacheEntry(
            label="registry",
            path="~/.cargo/registry",
            key=f"{os_name}-cargo-registry-{lock_hash}",
            restore_prefix=f"{os_name}-cargo-registry-",
        ),
        CacheEntry(
            label="index",
            path="~/.cargo/index",
            key=f"{os_name}-cargo-index",
            restore_prefix=f"{os_name}-cargo-index",
        ),
        CacheEntry(
            label="build",
            path="target",
            key=f"{os_name}-cargo-build-{lock_hash}",
            restore_prefix=f"{os_name}-cargo-build-",
        ),
    ]


class CacheStore:
    """
    File-based cache store:
      root/
        <key>.tar.gz
        <key>.manifest.json
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()

    def artifact_path(self, key: str) -> Path:
        return self.root / f"{key}.tar.gz"

    def manifest_path(self, key: str) -> Path:
        return self.root / f"{key}.manifest.json"

    def _candidates(self, prefix: str) -> List[Path]:
        if not self.root.exists():
            return []
        tars = [p for p in self.root.glob("*.tar.gz") if p.name.startswith(prefix)]
        return sorted(tars, key=lambda p: p.stat().st_mtime, reverse=True)

    def restore(self, entry: CacheEntry, *, repo_root: Path) -> CacheHit:
        """
        Restore an entry into its path.

        NOTE: restore is "overwrite by extraction". Nothing is cleaned first.
        """
        art = self.artifact_path(entry.key)
        exact = art.exists()
        if not exact:
            candidates = self._candidates(entry.restore_prefix)
            if not candidates:
                return CacheHit(hit=False, exact=False, key=entry.key, reason="cache miss")
            art = candidates[0]

        target = entry.resolve(repo_root)
        try:
            target.mkdir(parents=True, exist_ok=True)
            with tarfile.open(str(art), mode="r:gz") as tar:
                tar.extractall(path=str(target), filter="data")
        except (OSError, tarfile.TarError) as e:
            return CacheHit(hit=False, exact=False, key=entry.key, reason=f"cache exists but restore failed: {e}")

        restored_key = art.name[: -len(".tar.gz")]
        if exact:
            return CacheHit(hit=True, exact=True, key=entry.key, reason=f"hit: {restored_key}")
        return CacheHit(hit=True, exact=False, key=entry.key, reason=f"restored from prefix match: {restored_key}")

    def save(self, entry: CacheEntry, *, repo_root: Path) -> Optional[Dict]:
        """Archive the entry's path under its key. Returns the manifest, or None if nothing to save."""
        src = entry.resolve(repo_root)
        if not src.is_dir():
            return None

        self.root.mkdir(parents=True, exist_ok=True)
        art = self.artifact_path(entry.key)
        tmp = art.with_suffix(".gz.tmp")
        manifest = {
            "key": entry.key,
            "label": entry.label,
            "path": entry.path,
            "generated_at_unix": int(time.time()),
        }
        try:
            # Build tar.gz in tmp, then atomic rename
            with tarfile.open(str(tmp), mode="w:gz") as tar:
                for child in sorted(src.iterdir()):
                    tar.add(str(child), arcname=child.name)
            tmp.replace(art)
            self.manifest_path(entry.key).write_text(
                json.dumps(manifest, sort_keys=True, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)
        return manifest

    def prune(self, prefix: str, keep: int = 3) -> None:
        """Keep only the newest N archives sharing a restore prefix."""
        for p in self._candidates(prefix)[keep:]:
            key = p.name[: -len(".tar.gz")]
            p.unlink(missing_ok=True)
            self.manifest_path(key).unlink(missing_ok=True)


class CargoCache:
    """Restore/save pair used as two pipeline steps around the build.

    Neither step raises on cache trouble; problems are printed as warnings.
    """

    def __init__(self, cache_root: str | Path, keep: int = 3):
        self.cache_root = cache_root
        self.keep = keep
        self.entries: List[CacheEntry] = []
        self.hits: Dict[str, CacheHit] = {}

    def _store(self, ctx: RunContext) -> CacheStore:
        root = Path(self.cache_root).expanduser()
        if not root.is_absolute():
            root = ctx.repo_root / root
        return CacheStore(root)

    def _entries(self, ctx: RunContext) -> Optional[List[CacheEntry]]:
        try:
            return cargo_entries(ctx.repo_root)
        except OSError as e:
            ctx.console.print_warning(f"cargo cache: could not compute cache keys: {e}")
            return None

    def restore(self, ctx: RunContext) -> None:
        store = self._store(ctx)
        # keys are fixed at restore time, before the build can touch Cargo.lock
        self.entries = self._entries(ctx) or []
        for entry in self.entries:
            try:
                hit = store.restore(entry, repo_root=ctx.repo_root)
            except (OSError, tarfile.TarError) as e:
                hit = CacheHit(hit=False, exact=False, key=entry.key, reason=f"cache exists but restore failed: {e}")
            self.hits[entry.label] = hit
            ctx.console.print_cache(entry.label, hit.reason)
            if not hit.hit and hit.reason.startswith("cache exists"):
                ctx.console.print_warning(f"{entry.label} cache: {hit.reason}")

    def save(self, ctx: RunContext) -> None:
        store = self._store(ctx)
        for entry in self.entries or self._entries(ctx) or []:
            hit = self.hits.get(entry.label)
            if hit is not None and hit.exact:
                ctx.console.print_cache(entry.label, f"hit on primary key, not saving ({entry.key})")
                continue
            try:
                manifest = store.save(entry, repo_root=ctx.repo_root)
                if manifest is not None:
                    store.prune(entry.restore_prefix, keep=self.keep)
            except (OSError, tarfile.TarError) as e:
                ctx.console.print_warning(f"{entry.label} cache: save failed: {e}")
                continue
            if manifest is None:
                ctx.console.print_cache(entry.label, f"nothing to save at {entry.path}")
                continue
            ctx.console.print_cache(entry.label, f"saved ({entry.key})")
