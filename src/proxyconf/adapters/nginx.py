"""nginx implementation of the engine port."""

from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Final

from proxyconf.domain.errors import EngineCommandError
from proxyconf.domain.ports import EngineCheck
from proxyconf.domain.reconciliation import template_environment, write_atomic

if TYPE_CHECKING:
    from collections.abc import Sequence

    from jinja2 import Environment

    from proxyconf.config.engine import EngineConfig

log = logging.getLogger(__name__)

MAIN_TEMPLATE: Final[str] = "nginx.conf.j2"
CHECK_CONFIG_NAME: Final[str] = "nginx.conf"


class NginxEngine:
    """Drives the nginx binary: ``-t`` against a staged directory, ``-s reload`` live."""

    def __init__(self, config: EngineConfig, *, environment: Environment | None = None) -> None:
        self.config = config
        self._environment = environment or template_environment()

    def render_main_config(self, artifacts_dir: Path, *, pid_path: Path | None = None) -> str:
        template = self._environment.get_template(MAIN_TEMPLATE)
        return template.render(
            artifacts_dir=str(artifacts_dir),
            pid_path=str(pid_path) if pid_path is not None else None,
        )

    def ensure_main_config(self) -> Path:
        """Write the live main configuration that includes the live artifacts directory."""

        target = self.config.main_config_path
        text = self.render_main_config(self.config.live_dir)
        try:
            current = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            current = None
        if current != text:
            self.config.live_dir.mkdir(parents=True, exist_ok=True)
            write_atomic(target, text)
            log.info("Wrote main configuration %s", target)
        return target

    def check(self, artifacts_dir: Path) -> EngineCheck:
        with tempfile.TemporaryDirectory(prefix="proxyconf-check-") as scratch:
            scratch_dir = Path(scratch)
            main_config = scratch_dir / CHECK_CONFIG_NAME
            main_config.write_text(
                self.render_main_config(artifacts_dir, pid_path=scratch_dir / "nginx.pid"),
                encoding="utf-8",
            )
            try:
                result = self._run(["-t", "-c", str(main_config)])
            except EngineCommandError as exc:
                return EngineCheck(ok=False, output=exc.output or str(exc))
        output = _combined_output(result)
        if result.returncode != 0:
            return EngineCheck(ok=False, output=output)
        return EngineCheck(ok=True, output=output)

    def reload(self) -> None:
        self.ensure_main_config()
        result = self._run(["-s", "reload", "-c", str(self.config.main_config_path)])
        if result.returncode != 0:
            output = _combined_output(result)
            raise EngineCommandError(
                f"nginx reload exited with status {result.returncode}",
                output=output,
            )

    def _run(self, arguments: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.config.binary, *arguments]
        if self.config.prefix is not None:
            command.extend(["-p", str(self.config.prefix)])
        log.debug("Running %s", " ".join(command))
        try:
            return subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.config.command_timeout_seconds,
                check=False,
            )
        except FileNotFoundError as exc:
            raise EngineCommandError(
                f"nginx binary not found: {self.config.binary}",
                output=str(exc),
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise EngineCommandError(
                f"nginx did not finish within {self.config.command_timeout_seconds}s",
                output=_text(exc.stderr) or _text(exc.stdout),
            ) from exc


def _combined_output(result: subprocess.CompletedProcess[str]) -> str:
    # nginx writes its -t diagnostics to stderr
    parts = (result.stderr, result.stdout)
    return "\n".join(part.strip() for part in parts if part and part.strip())


def _text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
