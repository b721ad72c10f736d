# step_workflows/publish.py
from __future__ import annotations

import json
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from ..cache import sha256_file
from ..errors import CIError
from ..model import RunContext

STEP_NAME = "Upload Desktop artifact"


@dataclass(frozen=True)
class PublishedArtifact:
    name: str
    path: Path
    manifest: Dict


class ArtifactStore:
    """
    File-based artifact slots, one per logical name:
      root/
        <name>/
          <file>
          manifest.json

    Last write wins.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def slot(self, name: str) -> Path:
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"invalid artifact name: {name!r}")
        return self.root / name

    def publish(self, name: str, src: Path, *, extra: Optional[Dict] = None) -> PublishedArtifact:
        slot = self.slot(name)
        slot.mkdir(parents=True, exist_ok=True)

        # a new upload replaces whatever the slot held before
        for old in slot.iterdir():
            if old.name not in (src.name, "manifest.json") and old.is_file():
                old.unlink()

        dest = slot / src.name
        tmp = slot / f".{src.name}.tmp"
        try:
            shutil.copy2(src, tmp)
            tmp.replace(dest)
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)

        manifest = {
            "name": name,
            "file": src.name,
            "size": dest.stat().st_size,
            "sha256": sha256_file(dest),
            "published_at_unix": int(time.time()),
        }
        if extra:
            manifest.update(extra)
        (slot / "manifest.json").write_text(
            json.dumps(manifest, sort_keys=True, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        return PublishedArtifact(name=name, path=dest, manifest=manifest)

    def load_manifest(self, name: str) -> Optional[Dict]:
        p = self.slot(name) / "manifest.json"
        if not p.exists():
            return None
        return json.loads(p.read_text(encoding="utf-8"))


def run_step(ctx: RunContext) -> None:
    s = ctx.settings
    src = ctx.path(s.artifact_path)

    if not src.is_file():
        msg = f"No files were found with the provided path: {src}. No artifacts will be uploaded."
        if s.artifact_if_missing == "error":
            raise CIError(kind="artifact_missing", step=STEP_NAME, message=msg)
        if s.artifact_if_missing == "warn":
            ctx.console.print_warning(msg)
        return

    store = ArtifactStore(ctx.path(s.artifact_dir))
    try:
        published = store.publish(
            s.artifact_name,
            src,
            extra={"version": ctx.inputs.version, "signed": ctx.inputs.signing},
        )
    except OSError as e:
        raise CIError(
            kind="publish_failed",
            step=STEP_NAME,
            message=f"could not publish {src.name} as '{s.artifact_name}': {e}",
        ) from e
    ctx.console.print_info(
        f"Published artifact '{published.name}' ({published.manifest['size']} bytes, "
        f"sha256 {published.manifest['sha256'][:12]}...) to {published.path}"
    )
