"""Audit log adapter that writes structured entries to the logging system."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

AUDIT_LOGGER_NAME = "proxyconf.audit"


class LoggingAuditLog:
    """Emits one INFO record per audit entry on the ``proxyconf.audit`` logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def record(
        self,
        action: str,
        object_type: str,
        object_id: int,
        meta: Mapping[str, Any],
        *,
        user_id: int | None = None,
    ) -> None:
        payload = json.dumps(dict(meta), default=str, sort_keys=True)
        self.logger.info(
            "%s %s #%d by user %s: %s",
            object_type,
            action,
            object_id,
            user_id if user_id is not None else "-",
            payload,
            extra={
                "audit_action": action,
                "audit_object_type": object_type,
                "audit_object_id": object_id,
                "audit_user_id": user_id,
            },
        )


if TYPE_CHECKING:
    from proxyconf.domain.ports import AuditLog

    _audit_check: AuditLog = LoggingAuditLog()
