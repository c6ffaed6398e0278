"""Check-only validation of candidate artifacts against the engine.

The engine validates its whole configuration set at once, so a candidate is
staged next to a copy of every live artifact. A candidate can therefore fail
because of an unrelated entity (two streams on one port); that failure is
reported, never swallowed.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from proxyconf.domain.errors import ArtifactWriteError, PipelineStage, ValidationError
from proxyconf.domain.reconciliation.applier import TEMP_PREFIX
from proxyconf.domain.reconciliation.renderer import ARTIFACT_SUFFIX

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable

    from proxyconf.domain.ports import ProxyEngine
    from proxyconf.domain.reconciliation.renderer import RenderedArtifact

log = logging.getLogger(__name__)

STAGING_PREFIX = ".staging-"


@dataclass(frozen=True, slots=True)
class ValidationReport:
    artifact_ids: tuple[str, ...]
    output: str = ""


class ConfigValidator:
    def __init__(self, live_dir: Path, engine: ProxyEngine) -> None:
        self.live_dir = live_dir
        self.engine = engine

    def validate(
        self,
        candidate: RenderedArtifact,
        *,
        removing: Collection[str] = (),
    ) -> ValidationReport:
        """Validate the live set with ``candidate`` added or replaced."""

        return self.validate_set((candidate,), removing=removing)

    def validate_set(
        self,
        candidates: Iterable[RenderedArtifact],
        *,
        removing: Collection[str] = (),
    ) -> ValidationReport:
        """Validate the live set with several candidates written and ``removing`` dropped."""

        candidates = tuple(candidates)
        artifact_ids = tuple(candidate.artifact_id for candidate in candidates)
        staging = self._stage(candidates, removing)
        try:
            check = self.engine.check(staging)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        if not check.ok:
            log.warning("Engine rejected %s: %s", ", ".join(artifact_ids) or "config", check.output)
            raise ValidationError(
                "Engine rejected the combined configuration",
                details=_summarise(check.output),
                stage=PipelineStage.VALIDATE,
            )
        log.info("Validated %s", ", ".join(artifact_ids) or "config")
        return ValidationReport(artifact_ids=artifact_ids, output=check.output)

    def _stage(
        self,
        candidates: tuple[RenderedArtifact, ...],
        removing: Collection[str],
    ) -> Path:
        parent = self.live_dir.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(dir=parent, prefix=STAGING_PREFIX))
        except OSError as exc:
            raise ArtifactWriteError(
                f"Cannot create staging directory: {exc}",
                stage=PipelineStage.VALIDATE,
            ) from exc
        try:
            if self.live_dir.is_dir():
                for source in self.live_dir.glob(f"*{ARTIFACT_SUFFIX}"):
                    if source.name.startswith(TEMP_PREFIX) or not source.is_file():
                        continue
                    if source.stem in removing:
                        continue
                    shutil.copy2(source, staging / source.name)
            for candidate in candidates:
                (staging / candidate.filename).write_text(candidate.text, encoding="utf-8")
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise ArtifactWriteError(
                f"Cannot stage configuration for validation: {exc}",
                stage=PipelineStage.VALIDATE,
            ) from exc
        return staging


def _summarise(output: str) -> str:
    """Keep the engine lines that name the problem (``[emerg]``/``[error]``) if any."""

    lines = [line.strip() for line in output.splitlines() if line.strip()]
    relevant = [line for line in lines if "[emerg]" in line or "[error]" in line]
    return "\n".join(relevant or lines) or "engine reported an invalid configuration"
