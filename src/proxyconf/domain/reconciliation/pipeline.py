"""Render → validate → commit → reload, serialized over the live directory.

Rendering happens outside the lock; validation, commit and reload run under one
directory-wide mutex so the engine never reloads against a directory state that
no caller intended.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from proxyconf.domain.errors import (
    ArtifactWriteError,
    ConfigSynthesisError,
    ReloadError,
    ValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from proxyconf.domain.model import EntityKind, RoutingEntity
    from proxyconf.domain.reconciliation.applier import ArtifactApplier
    from proxyconf.domain.reconciliation.reload import ReloadCoordinator
    from proxyconf.domain.reconciliation.renderer import RenderedArtifact, TemplateRenderer
    from proxyconf.domain.reconciliation.validator import ConfigValidator

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApplyOutcome:
    artifact: RenderedArtifact
    changed: bool


@dataclass(slots=True)
class SyncReport:
    """Result of a full reconciliation pass for one entity kind."""

    committed: list[str] = field(default_factory=list[str])
    unchanged: list[str] = field(default_factory=list[str])
    removed: list[str] = field(default_factory=list[str])
    failed: dict[str, str] = field(default_factory=dict[str, str])


class ConfigPipeline:
    def __init__(
        self,
        *,
        renderer: TemplateRenderer,
        validator: ConfigValidator,
        applier: ArtifactApplier,
        coordinator: ReloadCoordinator,
    ) -> None:
        self.renderer = renderer
        self.validator = validator
        self.applier = applier
        self.coordinator = coordinator
        self._lock = threading.Lock()

    def render(self, entity: RoutingEntity) -> RenderedArtifact:
        return self.renderer.render(entity)

    def is_live(self, entity: RoutingEntity) -> bool:
        return self.applier.read(entity.artifact_id) is not None

    def apply(self, entity: RoutingEntity) -> ApplyOutcome:
        """Make the entity's artifact live.

        A validation failure leaves the live directory untouched. A reload
        failure restores the last-known-good artifact before re-raising.
        """

        artifact = self.renderer.render(entity)
        with self._lock:
            self.validator.validate(artifact)
            previous = self.applier.read(artifact.artifact_id)
            self.applier.commit(artifact.artifact_id, artifact.text)
            try:
                self.coordinator.reload()
            except ReloadError:
                self._restore({artifact.artifact_id: previous})
                raise
        return ApplyOutcome(artifact=artifact, changed=previous != artifact.text)

    def retract(self, entity: RoutingEntity) -> bool:
        """Remove the entity's artifact and reload. Returns whether a file was removed.

        On reload failure the artifact stays removed; the store already says the
        entity must not be live.
        """

        with self._lock:
            removed = self.applier.remove(entity.artifact_id)
            self.coordinator.reload()
        return removed

    def sync_all(self, entities: Iterable[RoutingEntity], kind: EntityKind) -> SyncReport:
        """Bring every artifact of ``kind`` in line with ``entities`` in one reload.

        Entities that cannot be rendered, or that the engine rejects alongside
        the rest, are reported in ``failed`` and their live artifacts are left
        alone.
        """

        report = SyncReport()
        desired: dict[str, RenderedArtifact] = {}
        for entity in entities:
            if entity.kind is not kind or not entity.should_be_live:
                continue
            try:
                artifact = self.renderer.render(entity)
            except ConfigSynthesisError as exc:
                report.failed[entity.artifact_id] = exc.message
                log.warning("Skipping %s during reconciliation: %s", entity.artifact_id, exc)
                continue
            desired[artifact.artifact_id] = artifact

        with self._lock:
            live = self.applier.list_artifacts(kind)
            stale = [
                artifact_id
                for artifact_id in live
                if artifact_id not in desired and artifact_id not in report.failed
            ]
            try:
                self.validator.validate_set(desired.values(), removing=stale)
            except ValidationError:
                desired = self._isolate_rejected(desired, stale, report)

            previous: dict[str, str | None] = {}
            try:
                for artifact_id, artifact in desired.items():
                    current = self.applier.read(artifact_id)
                    if current == artifact.text:
                        report.unchanged.append(artifact_id)
                        continue
                    previous[artifact_id] = current
                    self.applier.commit(artifact_id, artifact.text)
                    report.committed.append(artifact_id)
                for artifact_id in stale:
                    previous[artifact_id] = self.applier.read(artifact_id)
                    self.applier.remove(artifact_id)
                    report.removed.append(artifact_id)
            except ArtifactWriteError:
                self._restore(previous)
                raise

            try:
                self.coordinator.reload()
            except ReloadError:
                self._restore(previous)
                raise

        log.info(
            "Reconciled %s: committed=%d unchanged=%d removed=%d failed=%d",
            kind,
            len(report.committed),
            len(report.unchanged),
            len(report.removed),
            len(report.failed),
        )
        return report

    def _isolate_rejected(
        self,
        desired: dict[str, RenderedArtifact],
        stale: list[str],
        report: SyncReport,
    ) -> dict[str, RenderedArtifact]:
        """Accept candidates one at a time against the set accepted so far.

        Unchanged artifacts are already live and need no check of their own.
        Changed artifacts that are live go before new ones, so a running entity
        keeps its socket over a newcomer claiming the same one.
        """

        live_changed: list[RenderedArtifact] = []
        new: list[RenderedArtifact] = []
        for artifact_id, artifact in desired.items():
            current = self.applier.read(artifact_id)
            if current == artifact.text:
                continue
            if current is not None:
                live_changed.append(artifact)
            else:
                new.append(artifact)

        checked: list[RenderedArtifact] = []
        for artifact in (*live_changed, *new):
            try:
                self.validator.validate_set([*checked, artifact], removing=stale)
            except ValidationError as exc:
                report.failed[artifact.artifact_id] = exc.details or exc.message
                log.warning(
                    "Skipping %s during reconciliation: %s",
                    artifact.artifact_id,
                    exc.details or exc.message,
                )
                continue
            checked.append(artifact)

        if not checked:
            self.validator.validate_set((), removing=stale)
        return {
            artifact_id: artifact
            for artifact_id, artifact in desired.items()
            if artifact_id not in report.failed
        }

    def _restore(self, previous: dict[str, str | None]) -> None:
        for artifact_id, content in previous.items():
            try:
                if content is None:
                    self.applier.remove(artifact_id)
                else:
                    self.applier.commit(artifact_id, content)
            except ArtifactWriteError:
                log.exception("Rollback of %s failed; live directory is ahead", artifact_id)
            else:
                log.warning("Rolled back %s to last-known-good content", artifact_id)
