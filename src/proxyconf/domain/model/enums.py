"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityKind(StrEnum):
    """Kinds of routing entity; the value is the artifact name prefix."""

    STREAM = "stream"
    PROXY_HOST = "proxy_host"
    REDIRECTION_HOST = "redirection_host"
    DEAD_HOST = "dead_host"


class CertificateProvider(StrEnum):
    LETSENCRYPT = "letsencrypt"
    OTHER = "other"


class Visibility(StrEnum):
    """How much of the store a principal may see."""

    ALL = "all"
    OWNER = "user"


class AuditAction(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    ENABLED = "enabled"
    DISABLED = "disabled"
    DELETED = "deleted"
