"""SQLAlchemy mapping metadata for streams and certificates."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import cache

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    TypeDecorator,
    false,
    orm,
    true,
)
from sqlalchemy.orm import configure_mappers, relationship

from proxyconf.domain.model import Certificate, CertificateProvider, Stream

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

certificate_table = Table(
    "certificate",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False),
    Column(
        "provider",
        Enum(CertificateProvider, native_enum=False),
        nullable=False,
        default=CertificateProvider.LETSENCRYPT,
    ),
    Column("nice_name", String, nullable=False, default=""),
    Column("domain_names", JSON, nullable=False, default=list),
    Column("expires_on", UTCDateTime(), nullable=True),
    Column("meta", JSON, nullable=False, default=dict),
    Column("is_deleted", Boolean, nullable=False, default=False, server_default=false()),
)

stream_table = Table(
    "stream",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("incoming_port", Integer, nullable=False, index=True),
    Column("forwarding_host", String(255), nullable=False),
    Column("forwarding_port", Integer, nullable=False),
    Column("tcp_forwarding", Boolean, nullable=False, default=True, server_default=true()),
    Column("udp_forwarding", Boolean, nullable=False, default=False, server_default=false()),
    Column(
        "certificate_id",
        Integer,
        ForeignKey("certificate.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("enabled", Boolean, nullable=False, default=True, server_default=true()),
    Column("is_deleted", Boolean, nullable=False, default=False, server_default=false()),
    Column("meta", JSON, nullable=False, default=dict),
    Column("created_on", UTCDateTime(), nullable=True),
    Column("modified_on", UTCDateTime(), nullable=True),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Certificate, certificate_table)

    mapper_registry.map_imperatively(
        Stream,
        stream_table,
        properties={
            # certificate_id is authoritative; the relation is read-only and loaded on expand
            "certificate": relationship(
                Certificate,
                lazy="noload",
                viewonly=True,
            ),
        },
    )

    configure_mappers()
    return mapper_registry
