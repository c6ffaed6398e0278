"""Fixed-principal access control."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from proxyconf.domain.errors import PermissionDeniedError
from proxyconf.domain.model import Visibility
from proxyconf.domain.ports import Permission

if TYPE_CHECKING:
    from collections.abc import Collection


@dataclass(frozen=True, slots=True)
class StaticAccessControl:
    """Grants ``allowed_actions`` (every action when ``None``) to one principal."""

    user_id: int
    visibility: Visibility = Visibility.ALL
    allowed_actions: Collection[str] | None = None

    def can(self, action: str, target: object = None) -> Permission:
        _ = target
        if self.allowed_actions is not None and action not in self.allowed_actions:
            raise PermissionDeniedError(f"User #{self.user_id} may not perform {action}")
        return Permission(user_id=self.user_id, visibility=self.visibility)


if TYPE_CHECKING:
    from proxyconf.domain.ports import AccessControl

    _access_check: AccessControl = StaticAccessControl(user_id=1)
