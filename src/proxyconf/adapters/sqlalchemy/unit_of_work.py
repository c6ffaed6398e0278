"""SQLAlchemy-backed unit of work for the stream lifecycle.

The adapter keeps one engine per process. ``startup`` binds it and brings the
schema to the latest migration; every unit of work then opens its own short
session, so a lifecycle step commits independently of the next one.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Self

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from proxyconf.adapters.sqlalchemy.mappings import start_mappers
from proxyconf.adapters.sqlalchemy.migrations import upgrade_head
from proxyconf.adapters.sqlalchemy.repositories import (
    SqlAlchemyCertificateRepository,
    SqlAlchemyStreamRepository,
)
from proxyconf.config.storage import get_database_uri
from proxyconf.domain.errors import InternalConsistencyError
from proxyconf.domain.ports.unit_of_work import RepositoryCollection, StreamRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the store is used before ``startup`` or reconfigured by accident."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    def bind(self, engine: Engine | None) -> None:
        self.engine = engine
        self._session_factory = None

    def session_factory(self) -> sessionmaker[Session]:
        if self.engine is None:
            raise StartupError(
                "Stream store not initialised; call "
                "proxyconf.adapters.sqlalchemy.unit_of_work.startup() first."
            )
        if self._session_factory is None:
            # rows stay readable after commit; views are built once the session closed
            self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the stream store to ``engine`` (or a new one) and migrate it to head."""

    if _STATE.engine is not None and not force:
        raise StartupError("Stream store already initialised. Pass force=True to rebind it.")

    resolved_engine = engine or create_engine(database_uri or get_database_uri(), future=True)
    start_mappers()
    upgrade_head(engine=resolved_engine)

    if _STATE.engine is not None and _STATE.engine is not resolved_engine:
        _STATE.engine.dispose()
    _STATE.bind(resolved_engine)
    log.info("Stream store ready at %s", resolved_engine.url.render_as_string(hide_password=True))


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the bound engine and forget it (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
        log.debug("Stream store engine disposed")
    _STATE.bind(None)


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """One session per ``with`` block; leaving the block without ``commit`` discards writes."""

    def __init__(self) -> None:
        self.session_factory: sessionmaker[Session] = _STATE.session_factory()
        self._session: Session | None = None
        self._repositories: TRepositories | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> Self:
        if self._session is not None:
            raise StartupError("Unit of work is already open")
        self._session = self.session_factory()
        self._repositories = self._build_repositories(self._session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self.session
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    def commit(self) -> None:
        try:
            self.session.commit()
        except (IntegrityError, OperationalError) as exc:
            self.session.rollback()
            raise InternalConsistencyError(f"Store rejected the write: {exc.orig}") from exc

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work used outside its 'with' block")
        return self._session

    @property
    def repositories(self) -> TRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work used outside its 'with' block")
        return self._repositories


class SqlAlchemyUnitOfWork(BaseSqlAlchemyUnitOfWork[StreamRepositories]):
    """Streams and the certificates they reference, in one session."""

    def _build_repositories(self, session: Session) -> StreamRepositories:
        return StreamRepositories(
            streams=SqlAlchemyStreamRepository(session),
            certificates=SqlAlchemyCertificateRepository(session),
        )


if TYPE_CHECKING:
    from proxyconf.domain.ports.unit_of_work import StreamUnitOfWork

    _uow_check: StreamUnitOfWork = SqlAlchemyUnitOfWork()
