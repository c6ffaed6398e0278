"""Domain port definitions for adapters."""

from __future__ import annotations

from .collaborators import AccessControl, AuditLog, CertificateIssuer, Permission
from .engine import EngineCheck, ProxyEngine
from .persistence import CertificateRepository, Expand, StreamRepository, VisibilityFilter
from .unit_of_work import (
    RepositoryCollection,
    StreamRepositories,
    StreamUnitOfWork,
    UnitOfWork,
)

__all__ = [
    "AccessControl",
    "AuditLog",
    "CertificateIssuer",
    "CertificateRepository",
    "EngineCheck",
    "Expand",
    "Permission",
    "ProxyEngine",
    "RepositoryCollection",
    "StreamRepositories",
    "StreamRepository",
    "StreamUnitOfWork",
    "UnitOfWork",
    "VisibilityFilter",
]
