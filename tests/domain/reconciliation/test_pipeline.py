from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from proxyconf.config import RetryPolicy
from proxyconf.domain.errors import ArtifactWriteError, ReloadError, ValidationError
from proxyconf.domain.model import EntityKind
from proxyconf.domain.reconciliation import (
    ArtifactApplier,
    ConfigPipeline,
    ConfigValidator,
    ReloadCoordinator,
    TemplateRenderer,
)
from tests.helpers.streams import BlockingEngine, FakeEngine, make_stream

if TYPE_CHECKING:
    from pathlib import Path


def _pipeline(live: Path, engine: FakeEngine) -> ConfigPipeline:
    return ConfigPipeline(
        renderer=TemplateRenderer(),
        validator=ConfigValidator(live, engine),
        applier=ArtifactApplier(live),
        coordinator=ReloadCoordinator(engine, retry=RetryPolicy(total=0)),
    )


def test_apply_commits_and_reloads(tmp_path: Path) -> None:
    live = tmp_path / "live"
    engine = FakeEngine(live_dir=live)
    pipeline = _pipeline(live, engine)
    stream = make_stream(1)

    outcome = pipeline.apply(stream)

    assert outcome.changed
    assert (live / "stream_1.conf").read_text() == TemplateRenderer().render(stream).text
    assert engine.reload_calls == 1
    assert engine.reloaded_states[0] == {"stream_1.conf": outcome.artifact.text}
    assert pipeline.is_live(stream)


def test_apply_same_state_twice_is_unchanged(tmp_path: Path) -> None:
    live = tmp_path / "live"
    pipeline = _pipeline(live, FakeEngine())

    pipeline.apply(make_stream(1))
    outcome = pipeline.apply(make_stream(1))

    assert not outcome.changed


def test_validation_failure_leaves_live_directory_untouched(tmp_path: Path) -> None:
    live = tmp_path / "live"
    engine = FakeEngine()
    pipeline = _pipeline(live, engine)
    pipeline.apply(make_stream(1, incoming_port=5000))
    before = {p.name: p.read_text() for p in live.iterdir()}

    with pytest.raises(ValidationError):
        pipeline.apply(make_stream(2, incoming_port=5000))

    assert {p.name: p.read_text() for p in live.iterdir()} == before
    assert engine.reload_calls == 1


def test_reload_failure_restores_previous_content(tmp_path: Path) -> None:
    live = tmp_path / "live"
    engine = FakeEngine()
    pipeline = _pipeline(live, engine)
    first = pipeline.apply(make_stream(1, forwarding_port=22))

    engine.reload_failures = 1
    with pytest.raises(ReloadError):
        pipeline.apply(make_stream(1, forwarding_port=2222))

    assert (live / "stream_1.conf").read_text() == first.artifact.text


def test_reload_failure_removes_brand_new_artifact(tmp_path: Path) -> None:
    live = tmp_path / "live"
    engine = FakeEngine(reload_failures=1)
    pipeline = _pipeline(live, engine)

    with pytest.raises(ReloadError):
        pipeline.apply(make_stream(1))

    assert not (live / "stream_1.conf").exists()


def test_retract_removes_and_reloads(tmp_path: Path) -> None:
    live = tmp_path / "live"
    engine = FakeEngine()
    pipeline = _pipeline(live, engine)
    stream = make_stream(1)
    pipeline.apply(stream)

    assert pipeline.retract(stream) is True
    assert pipeline.retract(stream) is False
    assert not pipeline.is_live(stream)
    assert engine.reload_calls == 3


def test_retract_keeps_artifact_removed_when_reload_fails(tmp_path: Path) -> None:
    live = tmp_path / "live"
    engine = FakeEngine()
    pipeline = _pipeline(live, engine)
    stream = make_stream(1)
    pipeline.apply(stream)

    engine.reload_failures = 1
    with pytest.raises(ReloadError):
        pipeline.retract(stream)

    assert not (live / "stream_1.conf").exists()


def test_sync_all_converges_in_one_reload(tmp_path: Path) -> None:
    live = tmp_path / "live"
    engine = FakeEngine()
    pipeline = _pipeline(live, engine)
    applier = ArtifactApplier(live)
    applier.commit("stream_9", "# stale\n")
    applier.commit("stream_1", "# outdated\n")
    pipeline.apply(make_stream(2, incoming_port=6000))
    engine.reload_calls = 0

    report = pipeline.sync_all(
        [
            make_stream(1, incoming_port=5000),
            make_stream(2, incoming_port=6000),
            make_stream(3, incoming_port=7000, enabled=False),
            make_stream(4, incoming_port=8000, is_deleted=True),
        ],
        EntityKind.STREAM,
    )

    assert report.committed == ["stream_1"]
    assert report.unchanged == ["stream_2"]
    assert report.removed == ["stream_9"]
    assert report.failed == {}
    assert applier.list_artifacts(EntityKind.STREAM) == ["stream_1", "stream_2"]
    assert engine.reload_calls == 1


def test_sync_all_reports_unrenderable_entities_and_keeps_their_artifacts(
    tmp_path: Path,
) -> None:
    live = tmp_path / "live"
    pipeline = _pipeline(live, FakeEngine())
    ArtifactApplier(live).commit("stream_5", "# previous\n")
    broken = make_stream(5, forwarding_host="")

    report = pipeline.sync_all([broken, make_stream(6, incoming_port=6000)], EntityKind.STREAM)

    assert list(report.failed) == ["stream_5"]
    assert report.removed == []
    assert (live / "stream_5.conf").read_text() == "# previous\n"


def test_sync_all_skips_conflicting_entity_and_applies_the_rest(tmp_path: Path) -> None:
    live = tmp_path / "live"
    engine = FakeEngine()
    pipeline = _pipeline(live, engine)
    pipeline.apply(make_stream(1, incoming_port=5000))
    applier = ArtifactApplier(live)
    applier.commit("stream_99", "# orphan\n")
    engine.reload_calls = 0

    report = pipeline.sync_all(
        [
            make_stream(1, incoming_port=5000),
            make_stream(2, incoming_port=5000),
            make_stream(3, incoming_port=6000),
        ],
        EntityKind.STREAM,
    )

    assert report.unchanged == ["stream_1"]
    assert report.committed == ["stream_3"]
    assert report.removed == ["stream_99"]
    assert list(report.failed) == ["stream_2"]
    assert "duplicate" in report.failed["stream_2"]
    assert applier.list_artifacts(EntityKind.STREAM) == ["stream_1", "stream_3"]
    assert engine.reload_calls == 1


def test_sync_all_prefers_live_entities_over_newcomers_on_conflict(tmp_path: Path) -> None:
    live = tmp_path / "live"
    pipeline = _pipeline(live, FakeEngine())
    pipeline.apply(make_stream(1, incoming_port=5000, forwarding_port=22))
    pipeline.apply(make_stream(2, incoming_port=6000))
    second_text = (live / "stream_2.conf").read_text()

    report = pipeline.sync_all(
        [
            make_stream(3, incoming_port=5000),
            make_stream(1, incoming_port=5000, forwarding_port=2222),
            make_stream(2, incoming_port=5000),
        ],
        EntityKind.STREAM,
    )

    assert report.committed == ["stream_1"]
    assert sorted(report.failed) == ["stream_2", "stream_3"]
    assert report.removed == []
    assert "2222" in (live / "stream_1.conf").read_text()
    assert (live / "stream_2.conf").read_text() == second_text
    assert not (live / "stream_3.conf").exists()


def test_concurrent_applies_on_one_port_admit_only_one(tmp_path: Path) -> None:
    live = tmp_path / "live"
    blocking = BlockingEngine()
    pipeline = ConfigPipeline(
        renderer=TemplateRenderer(),
        validator=ConfigValidator(live, FakeEngine()),
        applier=ArtifactApplier(live),
        coordinator=ReloadCoordinator(blocking, retry=RetryPolicy(total=0)),
    )
    rejected: list[int] = []

    def apply(stream_id: int) -> None:
        try:
            pipeline.apply(make_stream(stream_id, incoming_port=5000))
        except ValidationError:
            rejected.append(stream_id)

    first = threading.Thread(target=apply, args=(1,))
    second = threading.Thread(target=apply, args=(2,))
    try:
        first.start()
        assert blocking.started.wait(timeout=5)
        second.start()
        second.join(timeout=0.2)
        # still waiting for the first apply to finish its reload
        assert second.is_alive()
    finally:
        blocking.release.set()
        first.join(timeout=5)
        second.join(timeout=5)

    assert rejected == [2]
    assert ArtifactApplier(live).list_artifacts(EntityKind.STREAM) == ["stream_1"]
    assert blocking.reload_calls == 1


def test_sync_all_rolls_back_when_a_write_fails(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    live = tmp_path / "live"
    pipeline = _pipeline(live, FakeEngine())
    pipeline.apply(make_stream(1, incoming_port=5000, forwarding_port=22))
    original = (live / "stream_1.conf").read_text()
    real_commit = pipeline.applier.commit

    def flaky_commit(artifact_id: str, text: str) -> Path:
        if artifact_id == "stream_2":
            raise ArtifactWriteError("disk full")
        return real_commit(artifact_id, text)

    monkeypatch.setattr(pipeline.applier, "commit", flaky_commit)

    with pytest.raises(ArtifactWriteError):
        pipeline.sync_all(
            [
                make_stream(1, incoming_port=5000, forwarding_port=2222),
                make_stream(2, incoming_port=6000),
            ],
            EntityKind.STREAM,
        )

    assert (live / "stream_1.conf").read_text() == original
