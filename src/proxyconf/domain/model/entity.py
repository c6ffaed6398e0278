"""Routing entities and the certificates they reference."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from .certificate_ref import CertificateRef, certificate_ref_from_id
from .enums import CertificateProvider, EntityKind

if TYPE_CHECKING:
    from datetime import datetime


def artifact_id(kind: EntityKind, entity_id: int) -> str:
    """Canonical artifact name for an entity, used as the on-disk file stem."""

    return f"{kind}_{entity_id}"


@dataclass(eq=False, kw_only=True)
class Certificate:
    """Certificate descriptor as seen by the renderer: identity, paths, expiry."""

    id: int | None = None
    owner_id: int
    provider: CertificateProvider = CertificateProvider.LETSENCRYPT
    nice_name: str = ""
    domain_names: list[str] = field(default_factory=list[str])
    expires_on: datetime | None = None
    meta: dict[str, Any] = field(default_factory=dict[str, Any])
    is_deleted: bool = False

    @property
    def _material_dir(self) -> str:
        if self.id is None:
            raise ValueError("certificate has not been stored yet")
        if self.provider is CertificateProvider.LETSENCRYPT:
            return f"/etc/letsencrypt/live/npm-{self.id}"
        return f"/data/custom_ssl/npm-{self.id}"

    @property
    def certificate_path(self) -> str:
        return f"{self._material_dir}/fullchain.pem"

    @property
    def certificate_key_path(self) -> str:
        return f"{self._material_dir}/privkey.pem"


@dataclass(eq=False, kw_only=True)
class RoutingEntity:
    """State shared by every routing entity kind.

    ``id`` is assigned by the store and never reused; ``KIND`` is fixed per class.
    """

    KIND: ClassVar[EntityKind]

    id: int | None = None
    owner_id: int
    enabled: bool = True
    is_deleted: bool = False
    certificate_id: int | None = None
    meta: dict[str, Any] = field(default_factory=dict[str, Any])
    created_on: datetime | None = None
    modified_on: datetime | None = None

    @property
    def kind(self) -> EntityKind:
        return self.KIND

    @property
    def certificate_ref(self) -> CertificateRef:
        return certificate_ref_from_id(self.certificate_id)

    @property
    def artifact_id(self) -> str:
        if self.id is None:
            raise ValueError(f"{self.KIND} has no id yet")
        return artifact_id(self.KIND, self.id)

    @property
    def should_be_live(self) -> bool:
        """An artifact must exist exactly when this holds."""
        return self.enabled and not self.is_deleted

    @property
    def listen_spec(self) -> str:
        raise NotImplementedError


@dataclass(eq=False, kw_only=True)
class Stream(RoutingEntity):
    """TCP/UDP forward dispatched on port and protocol only, never on domain names."""

    KIND: ClassVar[EntityKind] = EntityKind.STREAM

    incoming_port: int
    forwarding_host: str
    forwarding_port: int
    tcp_forwarding: bool = True
    udp_forwarding: bool = False
    certificate: Certificate | None = field(default=None, repr=False)

    @property
    def listen_spec(self) -> str:
        return str(self.incoming_port)
