"""Certificate issuer that registers quick certificates in the store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from proxyconf.domain.errors import CertificateIssueError
from proxyconf.domain.model import Certificate, CertificateProvider

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from proxyconf.domain.ports import StreamUnitOfWork

log = logging.getLogger(__name__)


class StoreCertificateIssuer:
    """Records a Let's Encrypt certificate for the requested names.

    Obtaining the actual key material happens outside this process; the record
    gives the renderer stable certificate paths to point at.
    """

    def __init__(self, unit_of_work: Callable[[], StreamUnitOfWork]) -> None:
        self._unit_of_work = unit_of_work

    def issue_quick(
        self,
        domain_names: Sequence[str],
        meta: Mapping[str, Any],
        *,
        owner_id: int,
    ) -> Certificate:
        certificate = Certificate(
            owner_id=owner_id,
            provider=CertificateProvider.LETSENCRYPT,
            nice_name=", ".join(domain_names),
            domain_names=list(domain_names),
            meta=dict(meta),
        )
        try:
            with self._unit_of_work() as uow:
                uow.repositories.certificates.add(certificate)
                uow.commit()
        except SQLAlchemyError as exc:
            raise CertificateIssueError(f"Could not register certificate: {exc}") from exc
        log.info("Registered certificate #%s for %s", certificate.id, certificate.nice_name)
        return certificate
