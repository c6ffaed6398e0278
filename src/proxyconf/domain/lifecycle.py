"""Stream lifecycle: create, update, enable, disable and delete through the pipeline.

Every write commits the store first and only then touches the live directory,
so an artifact never reflects a state the store does not hold. Store patches are
not rolled back when a later stage fails; the row stays, and a later update or
``reconcile`` settles the engine.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from proxyconf.config.engine import LifecycleConfig
from proxyconf.domain.errors import (
    AuditLogError,
    InternalConsistencyError,
    NotFoundError,
    ReloadError,
    ValidationError,
)
from proxyconf.domain.model import (
    AuditAction,
    EntityKind,
    PendingCertificate,
    ResolvedCertificate,
    Visibility,
    certificate_id_of,
    public_view,
)
from proxyconf.domain.ports import VisibilityFilter
from proxyconf.domain.requests import StreamCreateRequest, StreamUpdateRequest, coerce_request

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from proxyconf.domain.model import Stream, StreamView
    from proxyconf.domain.ports import (
        AccessControl,
        AuditLog,
        CertificateIssuer,
        Expand,
        Permission,
        StreamUnitOfWork,
    )
    from proxyconf.domain.reconciliation import ConfigPipeline, SyncReport

log = logging.getLogger(__name__)

OBJECT_TYPE: Final[str] = "stream"
CERTIFICATE_EXPAND: Final[tuple[str, ...]] = ("certificate",)


class StreamLifecycle:
    """Entry points for every stream state transition and read."""

    def __init__(
        self,
        *,
        unit_of_work: Callable[[], StreamUnitOfWork],
        pipeline: ConfigPipeline,
        certificate_issuer: CertificateIssuer,
        audit_log: AuditLog,
        config: LifecycleConfig | None = None,
    ) -> None:
        self._unit_of_work = unit_of_work
        self.pipeline = pipeline
        self.certificate_issuer = certificate_issuer
        self.audit_log = audit_log
        self.config = config or LifecycleConfig()

    # Writes ------------------------------------------------------------------

    def create(
        self,
        access: AccessControl,
        data: StreamCreateRequest | Mapping[str, Any],
    ) -> StreamView:
        permission = access.can("streams:create", data)
        request = coerce_request(StreamCreateRequest, data)
        certificate_ref = request.certificate_ref

        fields = request.stored_fields()
        fields["owner_id"] = permission.user_id
        with self._unit_of_work() as uow:
            if isinstance(certificate_ref, ResolvedCertificate):
                self._require_certificate(uow, certificate_ref.certificate_id)
            if not isinstance(certificate_ref, PendingCertificate):
                fields["certificate_id"] = certificate_id_of(certificate_ref)
            stream = uow.repositories.streams.insert(fields)
            uow.commit()
            stream_id = _stored_id(stream)
        log.info("Stored stream #%d on port %d", stream_id, request.incoming_port)

        if isinstance(certificate_ref, PendingCertificate):
            certificate_id = self._issue_certificate(
                request.domain_names, request.meta, owner_id=permission.user_id
            )
            with self._unit_of_work() as uow:
                uow.repositories.streams.patch_by_id(stream_id, {"certificate_id": certificate_id})
                uow.commit()

        stream = self._configure(stream_id)
        view = public_view(stream)
        self._audit(
            AuditAction.CREATED,
            stream_id,
            {**view.to_dict(), "domain_names": list(request.domain_names)},
            permission=permission,
        )
        return view

    def update(
        self,
        access: AccessControl,
        data: StreamUpdateRequest | Mapping[str, Any],
    ) -> StreamView:
        permission = access.can("streams:update", data)
        request = coerce_request(StreamUpdateRequest, data)

        with self._unit_of_work() as uow:
            current = self._fetch(
                uow,
                request.id,
                expand=CERTIFICATE_EXPAND,
                visibility=permission.visibility_filter,
            )
            fields = request.stored_fields()
            if "meta" in fields:
                fields["meta"] = {**current.meta, **fields["meta"]}
            tcp = fields.get("tcp_forwarding", current.tcp_forwarding)
            udp = fields.get("udp_forwarding", current.udp_forwarding)
            if not (tcp or udp):
                raise ValidationError(
                    "at least one of tcp_forwarding or udp_forwarding must be enabled"
                )
            certificate_ref = request.certificate_ref
            if isinstance(certificate_ref, ResolvedCertificate):
                self._require_certificate(uow, certificate_ref.certificate_id)
            current_domains = (
                list(current.certificate.domain_names) if current.certificate is not None else []
            )
        domain_names = request.domain_names if request.domain_names is not None else current_domains

        match certificate_ref:
            case PendingCertificate():
                fields["certificate_id"] = self._issue_certificate(
                    domain_names, request.meta or {}, owner_id=permission.user_id
                )
            case None:
                pass
            case _:
                fields["certificate_id"] = certificate_id_of(certificate_ref)

        if fields:
            with self._unit_of_work() as uow:
                uow.repositories.streams.patch_by_id(request.id, fields)
                uow.commit()

        stream = self._configure(request.id)
        view = public_view(stream)
        self._audit(
            AuditAction.UPDATED,
            request.id,
            {**view.to_dict(), "domain_names": domain_names},
            permission=permission,
        )
        return view

    def enable(self, access: AccessControl, stream_id: int) -> None:
        permission = access.can("streams:update", stream_id)
        with self._unit_of_work() as uow:
            stream = self._fetch(uow, stream_id, visibility=permission.visibility_filter)
            if stream.enabled:
                raise ValidationError("Stream is already enabled")
            uow.repositories.streams.patch_by_id(stream_id, {"enabled": True})
            uow.commit()

        stream = self._configure(stream_id)
        self._audit(
            AuditAction.ENABLED,
            stream_id,
            public_view(stream).to_dict(),
            permission=permission,
        )

    def disable(self, access: AccessControl, stream_id: int) -> None:
        permission = access.can("streams:update", stream_id)
        with self._unit_of_work() as uow:
            stream = self._fetch(uow, stream_id, visibility=permission.visibility_filter)
            if not stream.enabled:
                raise ValidationError("Stream is already disabled")
            stream = uow.repositories.streams.patch_by_id(stream_id, {"enabled": False})
            uow.commit()

        self.pipeline.retract(stream)
        self._audit(
            AuditAction.DISABLED,
            stream_id,
            public_view(stream).to_dict(),
            permission=permission,
        )

    def delete(self, access: AccessControl, stream_id: int) -> None:
        permission = access.can("streams:delete", stream_id)
        with self._unit_of_work() as uow:
            stream = self._fetch(
                uow,
                stream_id,
                expand=CERTIFICATE_EXPAND,
                visibility=permission.visibility_filter,
            )
            snapshot = public_view(stream)
            stream = uow.repositories.streams.patch_by_id(stream_id, {"is_deleted": True})
            uow.commit()

        self.pipeline.retract(stream)
        self._audit(AuditAction.DELETED, stream_id, snapshot.to_dict(), permission=permission)

    def reconcile(self, access: AccessControl) -> SyncReport:
        """Regenerate every stream artifact from the store in one validated reload."""

        access.can("streams:reconcile")
        with self._unit_of_work() as uow:
            streams = uow.repositories.streams.list_all(
                expand=CERTIFICATE_EXPAND,
                visibility=VisibilityFilter.everything(),
            )
        return self.pipeline.sync_all(streams, EntityKind.STREAM)

    # Reads -------------------------------------------------------------------

    def get(
        self,
        access: AccessControl,
        stream_id: int,
        *,
        expand: Expand = (),
    ) -> StreamView:
        permission = access.can("streams:get", stream_id)
        with self._unit_of_work() as uow:
            stream = self._fetch(
                uow, stream_id, expand=expand, visibility=permission.visibility_filter
            )
        return public_view(stream)

    def get_all(
        self,
        access: AccessControl,
        *,
        expand: Expand = (),
        search: str | None = None,
    ) -> list[StreamView]:
        permission = access.can("streams:list")
        with self._unit_of_work() as uow:
            streams = uow.repositories.streams.list_all(
                expand=expand,
                search=search,
                visibility=permission.visibility_filter,
            )
        return [public_view(stream) for stream in streams]

    def get_count(self, owner_id: int, visibility: Visibility) -> int:
        """Count non-deleted streams visible to ``owner_id`` under ``visibility``."""

        visibility_filter = (
            VisibilityFilter.everything()
            if visibility is Visibility.ALL
            else VisibilityFilter.owned_by(owner_id)
        )
        with self._unit_of_work() as uow:
            return uow.repositories.streams.count_all(visibility=visibility_filter)

    def get_for_audit(self, access: AccessControl, stream_id: int) -> StreamView:
        """Fetch a stream by id even after it was deleted."""

        permission = access.can("streams:get", stream_id)
        with self._unit_of_work() as uow:
            stream = uow.repositories.streams.get_including_deleted(stream_id)
        if stream is None:
            raise NotFoundError(OBJECT_TYPE, stream_id)
        if permission.visibility is Visibility.OWNER and stream.owner_id != permission.user_id:
            raise NotFoundError(OBJECT_TYPE, stream_id)
        return public_view(stream)

    # Internals ---------------------------------------------------------------

    def _fetch(
        self,
        uow: StreamUnitOfWork,
        stream_id: int,
        *,
        expand: Expand = (),
        visibility: VisibilityFilter | None = None,
    ) -> Stream:
        stream = uow.repositories.streams.get_by_id(
            stream_id, expand=expand, visibility=visibility
        )
        if stream is None:
            raise NotFoundError(OBJECT_TYPE, stream_id)
        if stream.id != stream_id:
            raise InternalConsistencyError(
                f"Store returned stream #{stream.id} when asked for #{stream_id}"
            )
        return stream

    def _require_certificate(self, uow: StreamUnitOfWork, certificate_id: int) -> None:
        certificate = uow.repositories.certificates.get_by_id(certificate_id)
        if certificate is None or certificate.is_deleted:
            raise ValidationError(f"Certificate #{certificate_id} does not exist")

    def _issue_certificate(
        self,
        domain_names: Sequence[str],
        meta: Mapping[str, Any],
        *,
        owner_id: int,
    ) -> int:
        if not domain_names:
            raise ValidationError("A new certificate needs at least one domain name")
        certificate = self.certificate_issuer.issue_quick(domain_names, meta, owner_id=owner_id)
        if certificate.id is None:
            raise InternalConsistencyError("Certificate issuer returned an unsaved certificate")
        log.info("Issued certificate #%d for %s", certificate.id, ", ".join(domain_names))
        return certificate.id

    def _configure(self, stream_id: int) -> Stream:
        """Bring the live artifact in line with the stored row and record the outcome."""

        with self._unit_of_work() as uow:
            stream = self._fetch(uow, stream_id, expand=CERTIFICATE_EXPAND)

        if not stream.should_be_live:
            if self.pipeline.is_live(stream):
                self.pipeline.retract(stream)
            return stream

        try:
            self.pipeline.apply(stream)
        except (ValidationError, ReloadError) as exc:
            self._record_engine_status(stream_id, error=exc.details or exc.message)
            raise
        return self._record_engine_status(stream_id, error=None)

    def _record_engine_status(self, stream_id: int, *, error: str | None) -> Stream:
        with self._unit_of_work() as uow:
            current = self._fetch(uow, stream_id)
            meta = {**current.meta, "engine_online": error is None, "engine_error": error}
            uow.repositories.streams.patch_by_id(stream_id, {"meta": meta})
            uow.commit()
            return self._fetch(uow, stream_id, expand=CERTIFICATE_EXPAND)

    def _audit(
        self,
        action: AuditAction,
        stream_id: int,
        meta: Mapping[str, Any],
        *,
        permission: Permission,
    ) -> None:
        try:
            self.audit_log.record(
                str(action), OBJECT_TYPE, stream_id, meta, user_id=permission.user_id
            )
        except Exception as exc:
            if self.config.audit_strict:
                raise AuditLogError(
                    f"Audit entry '{action}' for stream #{stream_id} was not recorded: {exc}"
                ) from exc
            log.warning(
                "Audit entry '%s' for stream #%d was not recorded",
                action,
                stream_id,
                exc_info=True,
            )


def _stored_id(stream: Stream) -> int:
    if stream.id is None:
        raise InternalConsistencyError("Store did not assign an id to the new stream")
    return stream.id

