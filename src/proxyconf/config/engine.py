"""Configuration for the proxy engine process and its reload policy."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from .env import env_bool, env_float, env_int
from .errors import ConfigurationError

DEFAULT_NGINX_BINARY: Final[str] = "nginx"
DEFAULT_CONFIG_DIR: Final[Path] = Path("/data/nginx")
DEFAULT_COMMAND_TIMEOUT_SECONDS: Final[float] = 10.0
DEFAULT_RELOAD_RETRIES: Final[int] = 3
DEFAULT_RELOAD_BACKOFF: Final[float] = 0.5


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff for engine reloads."""

    total: int = DEFAULT_RELOAD_RETRIES
    backoff_factor: float = DEFAULT_RELOAD_BACKOFF
    max_backoff_wait: float = 10.0
    backoff_jitter: float = 0.25

    def __post_init__(self) -> None:
        if self.total < 0:
            raise ConfigurationError("Reload retry total must be non-negative")
        if self.backoff_factor < 0 or self.max_backoff_wait < 0 or self.backoff_jitter < 0:
            raise ConfigurationError("Reload backoff values must be non-negative")

    def backoff(self, attempt: int) -> float:
        """Base wait before retry number ``attempt`` (0-based), without jitter."""

        return min(self.max_backoff_wait, self.backoff_factor * (2**attempt))


@dataclass(slots=True, frozen=True)
class EngineConfig:
    """Where the engine lives and how it is driven.

    ``config_dir`` is the engine's data root: rendered artifacts go to
    ``config_dir / "live"`` and the generated main configuration to
    ``config_dir / "nginx.conf"``.
    """

    config_dir: Path = DEFAULT_CONFIG_DIR
    binary: str = DEFAULT_NGINX_BINARY
    prefix: Path | None = None
    command_timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS
    ipv6: bool = True
    reload_retry: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def live_dir(self) -> Path:
        return self.config_dir / "live"

    @property
    def main_config_path(self) -> Path:
        return self.config_dir / "nginx.conf"

    @property
    def custom_dir(self) -> Path:
        return self.config_dir / "custom"


@dataclass(slots=True, frozen=True)
class LifecycleConfig:
    """Policy switches for the entity lifecycle manager."""

    audit_strict: bool = False


def get_engine_config() -> EngineConfig:
    config_dir = os.getenv("PROXYCONF_CONFIG_DIR")
    prefix = os.getenv("PROXYCONF_NGINX_PREFIX")
    return EngineConfig(
        config_dir=Path(config_dir).expanduser() if config_dir else DEFAULT_CONFIG_DIR,
        binary=os.getenv("PROXYCONF_NGINX_BINARY") or DEFAULT_NGINX_BINARY,
        prefix=Path(prefix).expanduser() if prefix else None,
        command_timeout_seconds=env_float(
            "PROXYCONF_COMMAND_TIMEOUT", default=DEFAULT_COMMAND_TIMEOUT_SECONDS
        ),
        ipv6=env_bool("PROXYCONF_IPV6", default=True),
        reload_retry=RetryPolicy(
            total=env_int("PROXYCONF_RELOAD_RETRIES", default=DEFAULT_RELOAD_RETRIES),
            backoff_factor=env_float(
                "PROXYCONF_RELOAD_BACKOFF", default=DEFAULT_RELOAD_BACKOFF
            ),
        ),
    )


def get_lifecycle_config() -> LifecycleConfig:
    return LifecycleConfig(audit_strict=env_bool("PROXYCONF_AUDIT_STRICT", default=False))
