"""Tagged reference from a routing entity to its certificate.

The reference is weak: it names a certificate by id, it never owns one.
``PendingCertificate`` only exists on requests and means "issue a quick
certificate first, then store the resolved id".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

NEW_CERTIFICATE_TOKEN: Final[str] = "new"


@dataclass(frozen=True, slots=True)
class NoCertificate:
    pass


@dataclass(frozen=True, slots=True)
class PendingCertificate:
    pass


@dataclass(frozen=True, slots=True)
class ResolvedCertificate:
    certificate_id: int

    def __post_init__(self) -> None:
        if self.certificate_id <= 0:
            raise ValueError("certificate id must be positive")


type CertificateRef = NoCertificate | PendingCertificate | ResolvedCertificate

NO_CERTIFICATE: Final = NoCertificate()
PENDING_CERTIFICATE: Final = PendingCertificate()


def certificate_ref_from_id(certificate_id: int | None) -> CertificateRef:
    """Stored form: a nullable id column, never a pending marker."""

    if not certificate_id:
        return NO_CERTIFICATE
    return ResolvedCertificate(certificate_id)


def parse_certificate_ref(value: object) -> CertificateRef:
    """Translate caller input (``None``, ``0``, ``"new"`` or an id) into a reference."""

    match value:
        case NoCertificate() | PendingCertificate() | ResolvedCertificate():
            return value
        case bool():
            raise ValueError("certificate reference must be an id or 'new'")
        case None | 0:
            return NO_CERTIFICATE
        case int():
            return ResolvedCertificate(value)
        case str() if value.strip().lower() == NEW_CERTIFICATE_TOKEN:
            return PENDING_CERTIFICATE
        case str() if value.strip().isdigit():
            return certificate_ref_from_id(int(value.strip()))
        case _:
            raise ValueError(f"invalid certificate reference: {value!r}")


def certificate_id_of(ref: CertificateRef) -> int | None:
    """Column value for a reference; pending references cannot be stored."""

    match ref:
        case ResolvedCertificate(certificate_id=certificate_id):
            return certificate_id
        case NoCertificate():
            return None
        case PendingCertificate():
            raise ValueError("pending certificate must be issued before it is stored")
