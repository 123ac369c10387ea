from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from ..events.models import EventEnvelope, Project, StoredEvent


@dataclass(frozen=True)
class WorkerStatus:
    """Liveness read result.

    `active` is true iff the heartbeat record exists and its remaining TTL is positive.
    """

    active: bool
    ttl_remaining: Optional[int] = None
    last_beat_at: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "ttl_remaining": self.ttl_remaining,
            "last_beat_at": self.last_beat_at,
        }


class EventQueue(Protocol):
    """Named FIFO queue of serialized envelopes (push on the head, pop from the tail)."""

    async def push(self, payload: str) -> None:
        ...

    async def pop(self, cancel: asyncio.Event) -> Optional[str]:
        """Block until an item is available; return None once `cancel` is set."""
        ...

    async def ping(self) -> None:
        ...


class LivenessStore(Protocol):
    """TTL-backed single record proving that a consumer is beating."""

    async def beat(self, now_ms: int, ttl_s: int) -> None:
        ...

    async def status(self) -> WorkerStatus:
        ...


class EventStore(Protocol):
    """Append-only event persistence plus the API key lookup (kernel depends on interface)."""

    def insert_event(self, envelope: EventEnvelope) -> StoredEvent:
        ...

    def query_events(
        self,
        project_id: str,
        *,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Return `{event_name, created_at}` rows ordered by created_at ascending."""
        ...

    def resolve_project(self, api_key: str) -> Optional[Project]:
        ...

    def ping(self) -> None:
        ...

    def close(self) -> None:
        ...
