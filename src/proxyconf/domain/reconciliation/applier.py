"""Atomic commits of rendered artifacts into the live config directory."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from proxyconf.domain.errors import ArtifactWriteError
from proxyconf.domain.reconciliation.renderer import ARTIFACT_SUFFIX

if TYPE_CHECKING:
    from proxyconf.domain.model import EntityKind

log = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp-"


def write_atomic(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` so readers see either the old or the new file.

    The temporary file lives in the destination directory so ``os.replace`` stays
    on one filesystem and is atomic.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=TEMP_PREFIX, suffix=path.suffix)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class ArtifactApplier:
    """Commits and removes artifacts in the live directory.

    The applier never validates; callers validate first. It is safe to call
    directly when rolling back to previously known-good content.
    """

    def __init__(self, live_dir: Path) -> None:
        self.live_dir = live_dir

    def path_for(self, artifact_id: str) -> Path:
        return self.live_dir / f"{artifact_id}{ARTIFACT_SUFFIX}"

    def read(self, artifact_id: str) -> str | None:
        try:
            return self.path_for(artifact_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise ArtifactWriteError(f"Cannot read artifact {artifact_id}: {exc}") from exc

    def commit(self, artifact_id: str, text: str) -> Path:
        target = self.path_for(artifact_id)
        try:
            write_atomic(target, text)
        except OSError as exc:
            raise ArtifactWriteError(f"Cannot write artifact {artifact_id}: {exc}") from exc
        log.info("Committed artifact %s", target.name)
        return target

    def remove(self, artifact_id: str) -> bool:
        """Delete the live artifact; a missing artifact is not an error."""

        target = self.path_for(artifact_id)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ArtifactWriteError(f"Cannot remove artifact {artifact_id}: {exc}") from exc
        log.info("Removed artifact %s", target.name)
        return True

    def list_artifacts(self, kind: EntityKind | None = None) -> list[str]:
        """Artifact ids currently live, optionally limited to one kind."""

        if not self.live_dir.is_dir():
            return []
        pattern = f"{kind}_*{ARTIFACT_SUFFIX}" if kind is not None else f"*{ARTIFACT_SUFFIX}"
        return sorted(
            path.stem
            for path in self.live_dir.glob(pattern)
            if path.is_file() and not path.name.startswith(TEMP_PREFIX)
        )
