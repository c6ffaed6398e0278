"""Port for the external proxy engine process."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pathlib import Path


@dataclass(frozen=True, slots=True)
class EngineCheck:
    """Outcome of the engine's own configuration self-test."""

    ok: bool
    output: str = ""


@runtime_checkable
class ProxyEngine(Protocol):
    """The engine validates a whole artifacts directory and reloads on request.

    ``reload`` raises ``EngineCommandError`` when the engine refuses.
    """

    def check(self, artifacts_dir: Path) -> EngineCheck: ...

    def reload(self) -> None: ...
