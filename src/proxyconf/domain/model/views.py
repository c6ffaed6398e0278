"""Public projections of stored entities.

The stored representation carries bookkeeping (soft-delete flag, certificate
meta holding provider credentials) that callers must never see. Every read path
returns a view built here instead of the mapped object.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime

    from .entity import Certificate, Stream


@dataclass(frozen=True, slots=True, kw_only=True)
class CertificateView:
    id: int
    provider: str
    nice_name: str
    domain_names: tuple[str, ...]
    expires_on: datetime | None
    meta: dict[str, Any] = field(default_factory=dict[str, Any])


@dataclass(frozen=True, slots=True, kw_only=True)
class StreamView:
    id: int
    kind: str
    owner_id: int
    incoming_port: int
    forwarding_host: str
    forwarding_port: int
    tcp_forwarding: bool
    udp_forwarding: bool
    enabled: bool
    certificate_id: int | None
    meta: dict[str, Any]
    created_on: datetime | None = None
    modified_on: datetime | None = None
    certificate: CertificateView | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def certificate_view(certificate: Certificate) -> CertificateView:
    if certificate.id is None:
        raise ValueError("certificate has not been stored yet")
    # certificate meta may hold DNS provider credentials; it never leaves the store
    return CertificateView(
        id=certificate.id,
        provider=str(certificate.provider),
        nice_name=certificate.nice_name,
        domain_names=tuple(certificate.domain_names),
        expires_on=certificate.expires_on,
    )


def public_view(stream: Stream) -> StreamView:
    if stream.id is None:
        raise ValueError("stream has not been stored yet")
    return StreamView(
        id=stream.id,
        kind=str(stream.kind),
        owner_id=stream.owner_id,
        incoming_port=stream.incoming_port,
        forwarding_host=stream.forwarding_host,
        forwarding_port=stream.forwarding_port,
        tcp_forwarding=stream.tcp_forwarding,
        udp_forwarding=stream.udp_forwarding,
        enabled=stream.enabled,
        certificate_id=stream.certificate_id,
        meta=dict(stream.meta or {}),
        created_on=stream.created_on,
        modified_on=stream.modified_on,
        certificate=(
            certificate_view(stream.certificate)
            if stream.certificate is not None and not stream.certificate.is_deleted
            else None
        ),
    )
