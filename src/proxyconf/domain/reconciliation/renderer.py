"""Render routing entities into engine configuration text.

Rendering is a pure function of the entity and the render settings: it never
touches the filesystem or the engine, and the same entity state always yields
byte-identical output. Certificate material is not fetched here; the caller
hands in an entity whose certificate relation is already resolved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import cache
from typing import TYPE_CHECKING, Any, Final

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from proxyconf.domain.errors import ConfigSynthesisError
from proxyconf.domain.model import (
    EntityKind,
    NoCertificate,
    PendingCertificate,
    ResolvedCertificate,
    Stream,
)

if TYPE_CHECKING:
    from proxyconf.domain.model import Certificate, RoutingEntity

log = logging.getLogger(__name__)

ARTIFACT_SUFFIX: Final[str] = ".conf"
TEMPLATE_BY_KIND: Final[dict[EntityKind, str]] = {
    EntityKind.STREAM: "stream.conf.j2",
}


@cache
def template_environment() -> Environment:
    """Jinja environment over the templates shipped with the package."""

    return Environment(
        loader=PackageLoader("proxyconf", "templates"),
        autoescape=False,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


@dataclass(frozen=True, slots=True)
class TlsSettings:
    protocols: str = "TLSv1.2 TLSv1.3"
    ciphers: str = (
        "ECDHE-ECDSA-AES128-GCM-SHA256:ECDHE-RSA-AES128-GCM-SHA256:"
        "ECDHE-ECDSA-AES256-GCM-SHA384:ECDHE-RSA-AES256-GCM-SHA384:"
        "ECDHE-ECDSA-CHACHA20-POLY1305:ECDHE-RSA-CHACHA20-POLY1305"
    )
    session_timeout: str = "5m"


@dataclass(frozen=True, slots=True)
class RenderSettings:
    ipv6: bool = True
    custom_dir: str = "/data/nginx/custom"
    tls: TlsSettings = field(default_factory=TlsSettings)


@dataclass(frozen=True, slots=True)
class RenderedArtifact:
    kind: EntityKind
    artifact_id: str
    text: str

    @property
    def filename(self) -> str:
        return f"{self.artifact_id}{ARTIFACT_SUFFIX}"


class TemplateRenderer:
    """Entity → (config text, artifact id)."""

    def __init__(
        self,
        settings: RenderSettings | None = None,
        *,
        environment: Environment | None = None,
    ) -> None:
        self.settings = settings or RenderSettings()
        self._environment = environment or template_environment()

    def render(self, entity: RoutingEntity) -> RenderedArtifact:
        template_name = TEMPLATE_BY_KIND.get(entity.kind)
        if template_name is None:
            raise ConfigSynthesisError(f"No template for {entity.kind} entities")
        if entity.id is None:
            raise ConfigSynthesisError(f"Cannot render an unsaved {entity.kind}")

        if isinstance(entity, Stream):
            _check_stream(entity)
        certificate = _resolved_certificate(entity)

        context: dict[str, Any] = {
            entity.kind.value: entity,
            "certificate": certificate,
            "ipv6": self.settings.ipv6,
            "custom_dir": self.settings.custom_dir,
            "tls": self.settings.tls,
        }
        try:
            text = self._environment.get_template(template_name).render(context)
        except TemplateError as exc:
            raise ConfigSynthesisError(
                f"Template {template_name} failed for {entity.artifact_id}: {exc}"
            ) from exc

        log.debug(
            "Rendered %s for %s (%d bytes)", entity.artifact_id, entity.listen_spec, len(text)
        )
        return RenderedArtifact(kind=entity.kind, artifact_id=entity.artifact_id, text=text)


def _check_stream(stream: Stream) -> None:
    missing = [
        name
        for name in ("incoming_port", "forwarding_host", "forwarding_port")
        if getattr(stream, name, None) in (None, "", 0)
    ]
    if missing:
        raise ConfigSynthesisError(
            f"stream #{stream.id} is missing {', '.join(missing)}",
        )
    if not (stream.tcp_forwarding or stream.udp_forwarding):
        raise ConfigSynthesisError(f"stream #{stream.id} forwards neither TCP nor UDP")


def _resolved_certificate(entity: RoutingEntity) -> Certificate | None:
    match entity.certificate_ref:
        case NoCertificate():
            return None
        case PendingCertificate():
            raise ConfigSynthesisError(f"{entity.artifact_id} still waits for its certificate")
        case ResolvedCertificate(certificate_id=certificate_id):
            certificate: Certificate | None = getattr(entity, "certificate", None)
            if certificate is None or certificate.id != certificate_id:
                raise ConfigSynthesisError(
                    f"{entity.artifact_id} references certificate #{certificate_id} "
                    "but it was not resolved"
                )
            if certificate.is_deleted:
                raise ConfigSynthesisError(
                    f"{entity.artifact_id} references deleted certificate #{certificate_id}"
                )
            return certificate
