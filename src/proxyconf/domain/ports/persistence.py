"""Ports for persisting routing entities and certificates."""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from proxyconf.domain.model import Visibility

if TYPE_CHECKING:
    from proxyconf.domain.model import Certificate, Stream


@dataclass(frozen=True, slots=True)
class VisibilityFilter:
    """Row filter derived from a permission: everything, or one owner's rows."""

    visibility: Visibility = Visibility.ALL
    owner_id: int | None = None

    def __post_init__(self) -> None:
        if self.visibility is Visibility.OWNER and self.owner_id is None:
            raise ValueError("owner visibility requires an owner id")

    @classmethod
    def everything(cls) -> VisibilityFilter:
        return cls()

    @classmethod
    def owned_by(cls, owner_id: int) -> VisibilityFilter:
        return cls(visibility=Visibility.OWNER, owner_id=owner_id)

    @property
    def restricted(self) -> bool:
        return self.visibility is not Visibility.ALL


type Expand = Collection[str]


@runtime_checkable
class StreamRepository(Protocol):
    """Persistence contract for streams. Soft-deleted rows are invisible to reads."""

    def insert(self, fields: Mapping[str, Any]) -> Stream: ...

    def patch_by_id(self, stream_id: int, fields: Mapping[str, Any]) -> Stream: ...

    def get_by_id(
        self,
        stream_id: int,
        *,
        expand: Expand = (),
        visibility: VisibilityFilter | None = None,
    ) -> Stream | None: ...

    def get_including_deleted(self, stream_id: int) -> Stream | None: ...

    def list_all(
        self,
        *,
        expand: Expand = (),
        search: str | None = None,
        visibility: VisibilityFilter | None = None,
    ) -> Sequence[Stream]: ...

    def count_all(self, *, visibility: VisibilityFilter | None = None) -> int: ...


@runtime_checkable
class CertificateRepository(Protocol):
    """Persistence contract for certificate descriptors."""

    def add(self, certificate: Certificate) -> Certificate: ...

    def get_by_id(self, certificate_id: int) -> Certificate | None: ...
