"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final, cast

from sqlalchemy import String, func, select
from sqlalchemy import cast as sql_cast
from sqlalchemy.orm import selectinload

from proxyconf.adapters.sqlalchemy.mappings import stream_table
from proxyconf.domain.errors import InternalConsistencyError, NotFoundError, ValidationError
from proxyconf.domain.model import Certificate, Stream

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy import Select
    from sqlalchemy.orm import InstrumentedAttribute, Session

    from proxyconf.domain.ports import Expand, VisibilityFilter

STREAM_COLUMNS: Final[frozenset[str]] = frozenset(
    {
        "owner_id",
        "incoming_port",
        "forwarding_host",
        "forwarding_port",
        "tcp_forwarding",
        "udp_forwarding",
        "certificate_id",
        "enabled",
        "is_deleted",
        "meta",
    }
)
EXPANDABLE: Final[frozenset[str]] = frozenset({"certificate"})


def _now() -> datetime:
    return datetime.now(UTC)


class SqlAlchemyStreamRepository:
    """Stream rows; every read except ``get_including_deleted`` hides deleted rows."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def insert(self, fields: Mapping[str, Any]) -> Stream:
        values = self._checked(fields)
        now = _now()
        stream = Stream(**values, created_on=now, modified_on=now)
        self.session.add(stream)
        self.session.flush()
        return stream

    def patch_by_id(self, stream_id: int, fields: Mapping[str, Any]) -> Stream:
        stream = self.session.get(Stream, stream_id)
        if stream is None:
            raise NotFoundError("stream", stream_id)
        for name, value in self._checked(fields).items():
            setattr(stream, name, value)
        stream.modified_on = _now()
        self.session.flush()
        return stream

    def get_by_id(
        self,
        stream_id: int,
        *,
        expand: Expand = (),
        visibility: VisibilityFilter | None = None,
    ) -> Stream | None:
        stmt = self._visible(select(Stream), visibility).where(stream_table.c.id == stream_id)
        stmt = self._expanded(stmt, expand)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_including_deleted(self, stream_id: int) -> Stream | None:
        stmt = select(Stream).where(stream_table.c.id == stream_id)
        return self.session.execute(self._expanded(stmt, ("certificate",))).scalar_one_or_none()

    def list_all(
        self,
        *,
        expand: Expand = (),
        search: str | None = None,
        visibility: VisibilityFilter | None = None,
    ) -> Sequence[Stream]:
        stmt = self._visible(select(Stream), visibility)
        if search:
            port_text = sql_cast(stream_table.c.incoming_port, String)
            stmt = stmt.where(port_text.like(f"%{_escape_like(search)}%", escape="\\"))
        stmt = self._expanded(stmt.order_by(stream_table.c.incoming_port.asc()), expand)
        return list(self.session.execute(stmt).scalars().all())

    def count_all(self, *, visibility: VisibilityFilter | None = None) -> int:
        stmt = select(func.count()).select_from(stream_table)
        stmt = stmt.where(stream_table.c.is_deleted.is_(False))
        if visibility is not None and visibility.restricted:
            stmt = stmt.where(stream_table.c.owner_id == visibility.owner_id)
        return int(self.session.execute(stmt).scalar_one())

    @staticmethod
    def _checked(fields: Mapping[str, Any]) -> dict[str, Any]:
        unknown = set(fields) - STREAM_COLUMNS
        if unknown:
            # domain names in particular never belong on a stream row
            raise ValidationError(f"Unknown stream fields: {', '.join(sorted(unknown))}")
        return dict(fields)

    @staticmethod
    def _visible(
        stmt: Select[tuple[Stream]],
        visibility: VisibilityFilter | None,
    ) -> Select[tuple[Stream]]:
        stmt = stmt.where(stream_table.c.is_deleted.is_(False))
        if visibility is not None and visibility.restricted:
            stmt = stmt.where(stream_table.c.owner_id == visibility.owner_id)
        return stmt

    @staticmethod
    def _expanded(stmt: Select[tuple[Stream]], expand: Expand) -> Select[tuple[Stream]]:
        unknown = set(expand) - EXPANDABLE
        if unknown:
            raise ValidationError(f"Cannot expand {', '.join(sorted(unknown))} on streams")
        if "certificate" in expand:
            certificate = cast("InstrumentedAttribute[Certificate | None]", Stream.certificate)
            stmt = stmt.options(selectinload(certificate))
        return stmt.execution_options(populate_existing=True)


class SqlAlchemyCertificateRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, certificate: Certificate) -> Certificate:
        if certificate.id is not None:
            raise InternalConsistencyError(f"Certificate #{certificate.id} is already stored")
        self.session.add(certificate)
        self.session.flush()
        return certificate

    def get_by_id(self, certificate_id: int) -> Certificate | None:
        return self.session.get(Certificate, certificate_id)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


if TYPE_CHECKING:
    from proxyconf.domain.ports import CertificateRepository, StreamRepository

    _session_stub = cast("Session", object())
    _stream_repo: StreamRepository = SqlAlchemyStreamRepository(_session_stub)
    _certificate_repo: CertificateRepository = SqlAlchemyCertificateRepository(_session_stub)
