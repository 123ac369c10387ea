from __future__ import annotations

import time
from datetime import datetime, timezone

# Fixed-width UTC form used for every stored `created_at` (millisecond precision).
ISO_MS_FORMAT = "%Y-%m-%dT%H:%M:%S.{ms:03d}Z"


def format_iso_ms(dt: datetime) -> str:
    """Render a datetime as `YYYY-MM-DDTHH:MM:SS.mmmZ` in UTC.

    Naive datetimes are taken to be UTC already.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime(ISO_MS_FORMAT.format(ms=dt.microsecond // 1000))


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (with `Z`, an offset, or naive) into an aware UTC datetime."""
    raw = value.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now_iso() -> str:
    """返回 UTC 时间的 ISO-8601 字符串（毫秒，带 Z）。"""
    return format_iso_ms(datetime.now(timezone.utc))


def now_ms() -> int:
    return int(time.time() * 1000)
