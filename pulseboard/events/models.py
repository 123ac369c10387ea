from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from ..common.errors import EnvelopeDecodeError

# Keys written by the first-generation JS producers; still accepted on decode.
_LEGACY_KEYS = {
    "projectId": "project_id",
    "event": "event_name",
    "userId": "user_id",
    "sessionId": "session_id",
}


@dataclass(frozen=True)
class EventEnvelope:
    """One event as it travels through the durable queue.

    Note:
    - `project_id` is attached by the gateway, never taken from the caller.
    - There is no timestamp here: the store assigns `created_at` on insert and
      that value is authoritative for aggregation.
    """

    project_id: str
    event_name: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    properties: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "event_name": self.event_name,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "properties": self.properties,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str | bytes) -> "EventEnvelope":
        """Decode a queue item. Raises EnvelopeDecodeError and nothing else."""
        try:
            obj = json.loads(raw)
        except (TypeError, ValueError, UnicodeDecodeError) as e:
            raise EnvelopeDecodeError(f"invalid JSON: {e}", cause=e) from e
        if not isinstance(obj, dict):
            raise EnvelopeDecodeError("envelope must be a JSON object")
        return cls.from_dict(obj)

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "EventEnvelope":
        data = dict(obj)
        for legacy, key in _LEGACY_KEYS.items():
            if key not in data and legacy in data:
                data[key] = data[legacy]

        project_id = data.get("project_id")
        if not isinstance(project_id, str) or not project_id.strip():
            raise EnvelopeDecodeError("project_id is required")
        event_name = data.get("event_name")
        if not isinstance(event_name, str) or not event_name:
            raise EnvelopeDecodeError("event_name is required")

        for opt in ("user_id", "session_id"):
            v = data.get(opt)
            if v is not None and not isinstance(v, str):
                raise EnvelopeDecodeError(f"{opt} must be a string")
        properties = data.get("properties")
        if properties is not None and not isinstance(properties, dict):
            raise EnvelopeDecodeError("properties must be an object")

        return cls(
            project_id=project_id,
            event_name=event_name,
            user_id=data.get("user_id"),
            session_id=data.get("session_id"),
            properties=properties,
        )


@dataclass(frozen=True)
class StoredEvent:
    id: str
    project_id: str
    event_name: str
    created_at: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    properties: Optional[dict[str, Any]] = field(default=None, hash=False, compare=False)


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    api_key: str
