from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from .core.gateway import EventBody

EVENT_NAME_PATTERN = r"^[A-Za-z0-9_]+$"


# -------------------------
# HTTP envelopes & errors
# -------------------------

class ErrorEnvelope(BaseModel):
    status: Literal["error"] = "error"
    code: str
    message: str
    trace_id: str
    data: Any = Field(default_factory=dict)


class SuccessResult(BaseModel):
    success: bool = True
    queued: Optional[bool] = None


# -------------------------
# Ingestion
# -------------------------

# Flags that pick the queued path on POST /track ("useRedis" is the first SDK's name).
QUEUE_FLAG_KEYS = ("useQueue", "useRedis", "use_queue")


class TrackEvent(BaseModel):
    """One event as sent by the JS SDK.

    Field names follow the SDK (camelCase); snake_case is accepted too.
    """

    model_config = ConfigDict(populate_by_name=True)

    event: str = Field(
        min_length=1,
        max_length=200,
        pattern=EVENT_NAME_PATTERN,
        validation_alias=AliasChoices("event", "event_name"),
    )
    user_id: Optional[str] = Field(default=None, alias="userId")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    properties: Optional[Dict[str, Any]] = None

    def body(self) -> EventBody:
        return EventBody(
            event_name=self.event,
            user_id=self.user_id,
            session_id=self.session_id,
            properties=self.properties,
        )


class TrackRequest(TrackEvent):
    """Body of POST /track."""

    use_queue: bool = Field(default=False, validation_alias=AliasChoices(*QUEUE_FLAG_KEYS))


class BatchEvent(TrackEvent):
    """Item of POST /track/batch. Batches always take the synchronous path."""

    @model_validator(mode="before")
    @classmethod
    def _no_queue_flag(cls, data: Any) -> Any:
        if isinstance(data, dict) and any(k in data for k in QUEUE_FLAG_KEYS):
            raise ValueError("batch events are always stored synchronously; drop the queue flag")
        return data


class TrackBatchRequest(BaseModel):
    events: List[BatchEvent] = Field(min_length=1, max_length=500)


# -------------------------
# Stats & worker
# -------------------------

class RawEvent(BaseModel):
    event_name: str
    created_at: str


class TopEvent(BaseModel):
    event_name: str
    count: int = Field(ge=1)
    last_seen: str


class TopEventsResult(BaseModel):
    top: List[TopEvent]
    events: List[RawEvent]


class WorkerStatusResult(BaseModel):
    active: bool
    ttl_remaining: Optional[int] = None
    last_beat_at: Optional[int] = None


class ProjectInfo(BaseModel):
    id: str
    project_id: str
    name: str
