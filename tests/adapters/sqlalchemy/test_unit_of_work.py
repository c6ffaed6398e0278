from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, inspect

from proxyconf.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    is_started,
    shutdown,
    startup,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def _stream_fields(port: int = 5000) -> dict[str, object]:
    return {
        "owner_id": 1,
        "incoming_port": port,
        "forwarding_host": "10.0.0.2",
        "forwarding_port": 22,
    }


def test_sqlalchemy_unit_of_work_requires_startup() -> None:
    assert not is_started()
    with pytest.raises(StartupError):
        SqlAlchemyUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert SqlAlchemyUnitOfWork().session_factory.kw["bind"] is engine_b


def test_startup_migrates_schema(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    tables = set(inspect(sqlite_engine).get_table_names())
    assert {"stream", "certificate", "alembic_version"} <= tables


def test_repositories_need_an_open_session(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    uow = SqlAlchemyUnitOfWork()
    with pytest.raises(StartupError):
        _ = uow.repositories


def test_unit_of_work_persists_streams(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    with SqlAlchemyUnitOfWork() as uow:
        stream = uow.repositories.streams.insert(_stream_fields())
        uow.commit()
        stream_id = stream.id

    assert stream_id is not None
    with SqlAlchemyUnitOfWork() as uow:
        stored = uow.repositories.streams.get_by_id(stream_id)
        assert stored is not None
        assert stored.incoming_port == 5000
        assert stored.created_on is not None
        assert stored.created_on.tzinfo is not None


def test_unit_of_work_rolls_back_on_error(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    with pytest.raises(RuntimeError), SqlAlchemyUnitOfWork() as uow:
        uow.repositories.streams.insert(_stream_fields())
        raise RuntimeError("boom")

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.streams.count_all() == 0
