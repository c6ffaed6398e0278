"""SQLAlchemy adapter package for proxyconf."""

from __future__ import annotations

from .mappings import (
    certificate_table,
    mapper_registry,
    start_mappers,
    stream_table,
)
from .repositories import SqlAlchemyCertificateRepository, SqlAlchemyStreamRepository
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyCertificateRepository",
    "SqlAlchemyStreamRepository",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "certificate_table",
    "is_started",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
    "stream_table",
]
