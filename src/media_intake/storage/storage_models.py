"""Storage engine result types."""

from dataclasses import dataclass
from typing import Any

from ..entries.entry_models import StorageOrigin, StoredContent


@dataclass(frozen=True, slots=True)
class StorageResult:
    content_id: str
    origin: StorageOrigin
    gateway_url: str
    size_bytes: int

    @property
    def stored(self) -> StoredContent:
        return StoredContent(content_id=self.content_id, origin=self.origin)


@dataclass(slots=True)
class NodeHealth:
    endpoint: str
    healthy: bool
    data: dict[str, Any] | None = None
    error: str | None = None


@dataclass(slots=True)
class StorageHealth:
    primary: NodeHealth
    fallback: NodeHealth
    primary_gateway: str
    fallback_gateway: str

    @property
    def status(self) -> str:
        return "healthy" if self.primary.healthy or self.fallback.healthy else "degraded"
