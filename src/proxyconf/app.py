"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from proxyconf.adapters.access import StaticAccessControl
from proxyconf.adapters.audit import LoggingAuditLog
from proxyconf.adapters.certificates import StoreCertificateIssuer
from proxyconf.adapters.nginx import NginxEngine
from proxyconf.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from proxyconf.config import get_engine_config, get_lifecycle_config
from proxyconf.domain.lifecycle import StreamLifecycle
from proxyconf.domain.model import Visibility
from proxyconf.domain.ports.unit_of_work import StreamUnitOfWork
from proxyconf.domain.reconciliation import (
    ArtifactApplier,
    ConfigPipeline,
    ConfigValidator,
    ReloadCoordinator,
    RenderSettings,
    TemplateRenderer,
)

if TYPE_CHECKING:
    from proxyconf.config import EngineConfig, LifecycleConfig
    from proxyconf.domain.ports import AuditLog, CertificateIssuer, ProxyEngine

UnitOfWorkFactory = Callable[[], StreamUnitOfWork]


log = getLogger(__name__)


def build_pipeline(
    *,
    engine_config: EngineConfig | None = None,
    engine: ProxyEngine | None = None,
) -> ConfigPipeline:
    """Wire renderer, validator, applier and reload coordinator over one live directory."""

    config = engine_config or get_engine_config()
    effective_engine = engine or NginxEngine(config)
    settings = RenderSettings(ipv6=config.ipv6, custom_dir=str(config.custom_dir))
    return ConfigPipeline(
        renderer=TemplateRenderer(settings),
        validator=ConfigValidator(config.live_dir, effective_engine),
        applier=ArtifactApplier(config.live_dir),
        coordinator=ReloadCoordinator(effective_engine, retry=config.reload_retry),
    )


def build_lifecycle(
    *,
    engine_config: EngineConfig | None = None,
    lifecycle_config: LifecycleConfig | None = None,
    engine: ProxyEngine | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    certificate_issuer: CertificateIssuer | None = None,
    audit_log: AuditLog | None = None,
) -> StreamLifecycle:
    """Build a stream lifecycle manager from the configured adapters."""

    if unit_of_work_factory is None:
        if not is_started():
            startup()
        unit_of_work_factory = SqlAlchemyUnitOfWork
    config = engine_config or get_engine_config()
    log.info("Using engine config dir %s", config.config_dir)
    return StreamLifecycle(
        unit_of_work=unit_of_work_factory,
        pipeline=build_pipeline(engine_config=config, engine=engine),
        certificate_issuer=certificate_issuer or StoreCertificateIssuer(unit_of_work_factory),
        audit_log=audit_log or LoggingAuditLog(),
        config=lifecycle_config or get_lifecycle_config(),
    )


def default_access(
    user_id: int = 1,
    visibility: Visibility = Visibility.ALL,
) -> StaticAccessControl:
    """Access control for the local operator running the command line."""

    return StaticAccessControl(user_id=user_id, visibility=visibility)


def reload_engine(*, engine_config: EngineConfig | None = None) -> None:
    """Regenerate the main configuration and trigger one coordinated reload."""

    config = engine_config or get_engine_config()
    coordinator = ReloadCoordinator(NginxEngine(config), retry=config.reload_retry)
    coordinator.reload()
