from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from proxyconf.adapters.sqlalchemy import start_mappers
from proxyconf.adapters.sqlalchemy.migrations import upgrade_head
from proxyconf.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, shutdown, startup
from proxyconf.app import build_lifecycle, default_access
from proxyconf.config import EngineConfig, LifecycleConfig, RetryPolicy
from tests.helpers.streams import FakeEngine, RecordingAuditLog

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from proxyconf.adapters.access import StaticAccessControl
    from proxyconf.domain.lifecycle import StreamLifecycle


@pytest.fixture
def sqlite_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'proxyconf.db'}", future=True)
    start_mappers()
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def engine_config(tmp_path: Path) -> EngineConfig:
    return EngineConfig(
        config_dir=tmp_path / "nginx",
        reload_retry=RetryPolicy(total=0, backoff_factor=0),
    )


@pytest.fixture
def fake_engine(engine_config: EngineConfig) -> FakeEngine:
    return FakeEngine(live_dir=engine_config.live_dir)


@pytest.fixture
def audit_log() -> RecordingAuditLog:
    return RecordingAuditLog()


@pytest.fixture
def lifecycle(
    engine_config: EngineConfig,
    fake_engine: FakeEngine,
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
    audit_log: RecordingAuditLog,
) -> StreamLifecycle:
    return build_lifecycle(
        engine_config=engine_config,
        lifecycle_config=LifecycleConfig(),
        engine=fake_engine,
        unit_of_work_factory=sqlite_unit_of_work,
        audit_log=audit_log,
    )


@pytest.fixture
def access() -> StaticAccessControl:
    return default_access(user_id=1)
