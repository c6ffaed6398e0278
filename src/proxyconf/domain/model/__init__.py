"""Domain model for routing entities."""

from __future__ import annotations

from .certificate_ref import (
    NO_CERTIFICATE,
    PENDING_CERTIFICATE,
    CertificateRef,
    NoCertificate,
    PendingCertificate,
    ResolvedCertificate,
    certificate_id_of,
    certificate_ref_from_id,
    parse_certificate_ref,
)
from .entity import Certificate, RoutingEntity, Stream, artifact_id
from .enums import AuditAction, CertificateProvider, EntityKind, Visibility
from .views import CertificateView, StreamView, certificate_view, public_view

__all__ = [
    "NO_CERTIFICATE",
    "PENDING_CERTIFICATE",
    "AuditAction",
    "Certificate",
    "CertificateProvider",
    "CertificateRef",
    "CertificateView",
    "EntityKind",
    "NoCertificate",
    "PendingCertificate",
    "ResolvedCertificate",
    "RoutingEntity",
    "Stream",
    "StreamView",
    "Visibility",
    "artifact_id",
    "certificate_id_of",
    "certificate_ref_from_id",
    "certificate_view",
    "parse_certificate_ref",
    "public_view",
]
