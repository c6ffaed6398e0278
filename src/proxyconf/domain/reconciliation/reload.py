"""Serialized, coalescing graceful reloads of the engine process.

The engine has exactly one accepted configuration generation at a time, so
every reload request funnels through one coordinator. A request that arrives
while a reload is running cannot be satisfied by that reload (it may have read
the directory before the caller's change), so all such requests are coalesced
into a single follow-up reload and share its outcome.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import TYPE_CHECKING

from proxyconf.config.engine import RetryPolicy
from proxyconf.domain.errors import EngineCommandError, ReloadError

if TYPE_CHECKING:
    from collections.abc import Callable

    from proxyconf.domain.ports import ProxyEngine

log = logging.getLogger(__name__)


class ReloadCoordinator:
    def __init__(
        self,
        engine: ProxyEngine,
        *,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self.engine = engine
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._jitter = jitter
        self._condition = threading.Condition()
        self._in_flight = False
        self._started = 0
        self._finished = 0
        self._last_error: ReloadError | None = None

    @property
    def generation(self) -> int:
        """Number of reloads that have completed, successfully or not."""
        with self._condition:
            return self._finished

    def reload(self) -> None:
        with self._condition:
            needed = self._started + 1
            while self._in_flight:
                self._condition.wait()
            if self._finished >= needed:
                # another caller ran a reload that started after we asked
                shared = self._last_error
                if shared is not None:
                    raise ReloadError(
                        shared.message, details=shared.details, attempts=shared.attempts
                    ) from shared
                return
            self._in_flight = True
            self._started += 1
            generation = self._started

        error: ReloadError | None = None
        succeeded = False
        try:
            self._reload_with_retry(generation)
            succeeded = True
        except ReloadError as exc:
            error = exc
        except Exception as exc:
            error = ReloadError(f"Engine reload crashed: {exc}")
            error.__cause__ = exc
        finally:
            if not succeeded and error is None:
                error = ReloadError("Engine reload was interrupted before it finished")
            with self._condition:
                self._in_flight = False
                self._finished = generation
                self._last_error = error
                self._condition.notify_all()

        if error is not None:
            raise error

    def await_quiescence(self, timeout: float | None = None) -> bool:
        """Block until no reload is running; ``False`` if ``timeout`` expired first."""

        with self._condition:
            return self._condition.wait_for(lambda: not self._in_flight, timeout=timeout)

    def _reload_with_retry(self, generation: int) -> None:
        attempts = self.retry.total + 1
        last_output = ""
        for attempt in range(attempts):
            try:
                self.engine.reload()
            except EngineCommandError as exc:
                last_output = exc.output or str(exc)
                if attempt + 1 >= attempts:
                    break
                delay = self.retry.backoff(attempt) + self.retry.backoff_jitter * self._jitter()
                log.warning(
                    "Engine reload #%d failed (attempt %d/%d), retrying in %.2fs: %s",
                    generation,
                    attempt + 1,
                    attempts,
                    delay,
                    last_output,
                )
                self._sleep(delay)
            else:
                log.info("Engine reload #%d accepted", generation)
                return

        log.error("Engine reload #%d failed after %d attempts", generation, attempts)
        raise ReloadError(
            f"Engine refused to reload after {attempts} attempts",
            details=last_output,
            attempts=attempts,
        )
