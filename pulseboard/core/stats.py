from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional

import structlog

from ..capabilities.interfaces import EventStore
from ..common.errors import InvalidRangeError
from ..common.time_util import format_iso_ms, parse_iso

log = structlog.get_logger(__name__)

DAY_START = "T00:00:00.000Z"
DAY_END = "T23:59:59.999Z"


@dataclass(frozen=True)
class TimeRange:
    start: str
    end: str


@dataclass
class TopEventRow:
    event_name: str
    count: int
    last_seen: str

    def to_dict(self) -> dict[str, Any]:
        return {"event_name": self.event_name, "count": self.count, "last_seen": self.last_seen}


def _bound(value: str, day_suffix: str) -> str:
    raw = value.strip()
    if len(raw) == len("YYYY-MM-DD"):
        try:
            day = date.fromisoformat(raw)
        except ValueError as e:
            raise InvalidRangeError(f"invalid date: {value!r}", cause=e) from e
        return day.isoformat() + day_suffix
    # anything longer carries a time component ("T" or space separated);
    # normalise it to the stored form
    try:
        return format_iso_ms(parse_iso(raw))
    except ValueError as e:
        raise InvalidRangeError(f"invalid timestamp: {value!r}", cause=e) from e


def resolve_range(from_: Optional[str], to: Optional[str]) -> Optional[TimeRange]:
    """Turn query-string bounds into an inclusive stored-timestamp range.

    - Both bounds are required; a half-open request means "no filter".
    - `YYYY-MM-DD` covers the whole UTC day: 00:00:00.000 for the lower bound,
      23:59:59.999 for the upper one.
    - Anything with a time component is used as that exact instant.
    """
    if not from_ or not to:
        return None
    return TimeRange(start=_bound(from_, DAY_START), end=_bound(to, DAY_END))


def _is_wellformed(row: dict[str, Any]) -> bool:
    return bool(row.get("event_name")) and bool(row.get("created_at"))


def _instant(created_at: str) -> Optional[datetime]:
    try:
        return parse_iso(created_at)
    except (TypeError, ValueError):
        return None


def group_events(rows: Iterable[dict[str, Any]]) -> list[TopEventRow]:
    """One pass over `rows`: count per event_name and keep the latest created_at.

    Rows come out in first-seen order. Ranking is left to the caller.
    `last_seen` only moves on a strictly later instant, so ties keep the first row seen.
    """
    grouped: dict[str, TopEventRow] = {}
    latest: dict[str, Optional[datetime]] = {}
    for row in rows:
        if not _is_wellformed(row):
            continue
        name = row["event_name"]
        created_at = row["created_at"]
        current = grouped.get(name)
        if current is None:
            grouped[name] = TopEventRow(event_name=name, count=1, last_seen=created_at)
            latest[name] = _instant(created_at)
            continue
        current.count += 1
        seen = _instant(created_at)
        best = latest[name]
        if seen is not None and (best is None or seen > best):
            current.last_seen = created_at
            latest[name] = seen
    return list(grouped.values())


class StatsAggregator:
    """Read-only stats over the event store. No state is kept between calls."""

    def __init__(self, store: EventStore) -> None:
        self.store = store

    def _fetch(self, project_id: str, from_: Optional[str], to: Optional[str]) -> list[dict[str, Any]]:
        rng = resolve_range(from_, to)
        rows = self.store.query_events(
            project_id,
            start=rng.start if rng else None,
            end=rng.end if rng else None,
        )
        events = [
            {"event_name": r["event_name"], "created_at": r["created_at"]} for r in rows if _is_wellformed(r)
        ]
        dropped = len(rows) - len(events)
        if dropped:
            log.debug("stats.malformed_rows_dropped", project_id=project_id, dropped=dropped)
        return events

    def raw_events(
        self,
        project_id: str,
        from_: Optional[str] = None,
        to: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        return self._fetch(project_id, from_, to)

    def top_events(
        self,
        project_id: str,
        from_: Optional[str] = None,
        to: Optional[str] = None,
    ) -> dict[str, Any]:
        events = self._fetch(project_id, from_, to)
        top = group_events(events)
        return {"top": [t.to_dict() for t in top], "events": events}
