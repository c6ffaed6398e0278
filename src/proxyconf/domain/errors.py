"""Domain error taxonomy.

Every error raised out of a lifecycle operation carries the pipeline stage that
failed so callers can tell a store problem from an engine rejection.
"""

from __future__ import annotations

from enum import StrEnum


class PipelineStage(StrEnum):
    ACCESS = "access"
    STORE = "store"
    CERTIFICATE = "certificate"
    RENDER = "render"
    VALIDATE = "validate"
    COMMIT = "commit"
    RELOAD = "reload"
    AUDIT = "audit"


class ProxyConfError(Exception):
    """Base class for errors raised by the reconciliation core."""

    default_stage: PipelineStage | None = None

    def __init__(self, message: str, *, stage: PipelineStage | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage

    def __str__(self) -> str:
        if self.stage is None:
            return self.message
        return f"[{self.stage}] {self.message}"


class PermissionDeniedError(ProxyConfError):
    """Raised when the caller may not perform an action."""

    default_stage = PipelineStage.ACCESS


class NotFoundError(ProxyConfError):
    """Requested entity id has no visible, non-deleted row."""

    default_stage = PipelineStage.STORE

    def __init__(self, object_type: str, object_id: int) -> None:
        super().__init__(f"{object_type} #{object_id} not found")
        self.object_type = object_type
        self.object_id = object_id


class ValidationError(ProxyConfError):
    """Business-rule violation: bad caller input or a rejected configuration."""

    def __init__(
        self,
        message: str,
        *,
        details: str | None = None,
        stage: PipelineStage | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.details = details

    def __str__(self) -> str:
        base = super().__str__()
        if self.details:
            return f"{base}: {self.details}"
        return base


class InternalConsistencyError(ProxyConfError):
    """Invariant violation that cannot be blamed on caller input."""

    default_stage = PipelineStage.STORE


class ConfigSynthesisError(ProxyConfError):
    """The renderer could not produce config text from the entity."""

    default_stage = PipelineStage.RENDER


class ArtifactWriteError(ProxyConfError):
    """The live config directory could not be written."""

    default_stage = PipelineStage.COMMIT


class ReloadError(ProxyConfError):
    """The engine did not accept a validated configuration at reload time."""

    default_stage = PipelineStage.RELOAD

    def __init__(self, message: str, *, details: str | None = None, attempts: int = 1) -> None:
        super().__init__(message)
        self.details = details
        self.attempts = attempts

    def __str__(self) -> str:
        base = super().__str__()
        if self.details:
            return f"{base}: {self.details}"
        return base


class CertificateIssueError(ProxyConfError):
    """Quick certificate issuance failed."""

    default_stage = PipelineStage.CERTIFICATE


class AuditLogError(ProxyConfError):
    """Recording an audit entry failed while audit logging is strict."""

    default_stage = PipelineStage.AUDIT


class EngineCommandError(Exception):
    """Low-level failure of an engine command (raised by engine adapters)."""

    def __init__(self, message: str, *, output: str = "") -> None:
        super().__init__(message)
        self.output = output
