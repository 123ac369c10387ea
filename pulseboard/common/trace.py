from __future__ import annotations

import ulid


def new_id() -> str:
    """Generate a stable, sortable identifier (ULID, 26 chars)."""
    return str(ulid.new())


def new_trace_id() -> str:
    """Generate trace_id (same format as IDs)."""
    return new_id()
