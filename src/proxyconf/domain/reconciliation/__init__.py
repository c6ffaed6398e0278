"""Turn stored routing entities into live, engine-accepted configuration."""

from __future__ import annotations

from .applier import TEMP_PREFIX, ArtifactApplier, write_atomic
from .pipeline import ApplyOutcome, ConfigPipeline, SyncReport
from .reload import ReloadCoordinator
from .renderer import (
    ARTIFACT_SUFFIX,
    RenderedArtifact,
    RenderSettings,
    TemplateRenderer,
    TlsSettings,
    template_environment,
)
from .validator import ConfigValidator, ValidationReport

__all__ = [
    "ARTIFACT_SUFFIX",
    "TEMP_PREFIX",
    "ApplyOutcome",
    "ArtifactApplier",
    "ConfigPipeline",
    "ConfigValidator",
    "ReloadCoordinator",
    "RenderSettings",
    "RenderedArtifact",
    "SyncReport",
    "TemplateRenderer",
    "TlsSettings",
    "ValidationReport",
    "template_environment",
    "write_atomic",
]
