"""Ports for collaborators invoked around the reconciliation pipeline."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from proxyconf.domain.model import Visibility
from proxyconf.domain.ports.persistence import VisibilityFilter

if TYPE_CHECKING:
    from proxyconf.domain.model import Certificate


@dataclass(frozen=True, slots=True)
class Permission:
    """What an access check grants: who is acting and how much they may see."""

    user_id: int
    visibility: Visibility = Visibility.OWNER

    @property
    def visibility_filter(self) -> VisibilityFilter:
        if self.visibility is Visibility.ALL:
            return VisibilityFilter.everything()
        return VisibilityFilter.owned_by(self.user_id)


@runtime_checkable
class AccessControl(Protocol):
    """Gate for every lifecycle and read entry point.

    Raises ``PermissionDeniedError`` when ``action`` is not allowed on ``target``.
    """

    def can(self, action: str, target: object = None) -> Permission: ...


@runtime_checkable
class CertificateIssuer(Protocol):
    def issue_quick(
        self,
        domain_names: Sequence[str],
        meta: Mapping[str, Any],
        *,
        owner_id: int,
    ) -> Certificate: ...


@runtime_checkable
class AuditLog(Protocol):
    def record(
        self,
        action: str,
        object_type: str,
        object_id: int,
        meta: Mapping[str, Any],
        *,
        user_id: int | None = None,
    ) -> None: ...
