from __future__ import annotations

from pathlib import Path

from ..capabilities.interfaces import EventStore
from ..common.errors import StoreError
from ..core.config import PulseboardConfig
from ..modules.supabase_store import SupabaseConfig, SupabaseEventStore
from .db import SqliteStore


def build_store(cfg: PulseboardConfig) -> EventStore:
    """Select the event store backend from config.

    Relative SQLite paths are resolved against the repo root, not the process CWD.
    """
    if cfg.store_backend == "supabase":
        return SupabaseEventStore(
            SupabaseConfig(
                url=cfg.supabase.url or "",
                key=cfg.supabase.key or "",
                timeout_s=cfg.supabase.timeout_s,
            )
        )

    if cfg.db_path == ":memory:":
        return SqliteStore(db_path=cfg.db_path)
    repo_root = Path(__file__).resolve().parents[2]  # <repo>
    db_path = Path(cfg.db_path)
    if not db_path.is_absolute():
        db_path = repo_root / db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StoreError(f"cannot create {db_path.parent}: {e}", cause=e) from e
    return SqliteStore(db_path=str(db_path))
