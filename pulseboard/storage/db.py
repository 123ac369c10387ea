from __future__ import annotations

import json
import os
import secrets
import sqlite3
import threading
from typing import Any, Iterator, Optional
from contextlib import contextmanager

from ..capabilities.interfaces import EventStore
from ..common.errors import StoreError
from ..common.time_util import utc_now_iso
from ..common.trace import new_id
from ..events.models import EventEnvelope, Project, StoredEvent

def _default_db_path() -> str:
    return os.getenv("PULSEBOARD_DB_PATH", "data/pulseboard.db")



# event_name / created_at are nullable: rows imported from other producers may
# lack them, so readers skip such rows.
SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS projects (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  api_key TEXT NOT NULL UNIQUE,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS events (
  id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  event_name TEXT,
  user_id TEXT,
  session_id TEXT,
  properties_json TEXT,
  created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_events_project_created
ON events(project_id, created_at);
"""


class SqliteStore(EventStore):
    """Event store on SQLite (single connection + explicit close).

    Notes:
    - the API serves requests from a threadpool and the worker writes via
      asyncio.to_thread, so every statement goes through one lock
    - created_at is stored in the fixed-width UTC form, so range filters are
      plain string comparisons
    """

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or _default_db_path()
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open database {self.db_path}: {e}", cause=e) from e
        self._conn.row_factory = sqlite3.Row
        with self._locked("create schema") as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def _locked(self, what: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StoreError(f"{what} failed: {e}", cause=e) from e

    def close(self) -> None:
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error:
                pass

    def ping(self) -> None:
        with self._locked("ping") as conn:
            conn.execute("SELECT 1").fetchone()

    def insert_event(self, envelope: EventEnvelope) -> StoredEvent:
        event = StoredEvent(
            id=new_id(),
            project_id=envelope.project_id,
            event_name=envelope.event_name,
            created_at=utc_now_iso(),
            user_id=envelope.user_id,
            session_id=envelope.session_id,
            properties=envelope.properties,
        )
        properties_json = (
            json.dumps(envelope.properties, ensure_ascii=False) if envelope.properties is not None else None
        )
        with self._locked("insert event") as conn:
            conn.execute(
                """
                INSERT INTO events(id, project_id, event_name, user_id, session_id, properties_json, created_at)
                VALUES (?,?,?,?,?,?,?)
                """,
                (
                    event.id,
                    event.project_id,
                    event.event_name,
                    event.user_id,
                    event.session_id,
                    properties_json,
                    event.created_at,
                ),
            )
            conn.commit()
        return event

    def query_events(
        self,
        project_id: str,
        *,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Rows for one project, oldest first.

        - start / end are inclusive bounds in the stored timestamp form.
        """
        params: list[Any] = [project_id]
        where = "WHERE project_id=?"
        if start is not None:
            where += " AND created_at >= ?"
            params.append(start)
        if end is not None:
            where += " AND created_at <= ?"
            params.append(end)

        sql = f"SELECT event_name, created_at FROM events {where} ORDER BY created_at ASC"
        with self._locked("query events") as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [{"event_name": r["event_name"], "created_at": r["created_at"]} for r in rows]

    def resolve_project(self, api_key: str) -> Optional[Project]:
        with self._locked("resolve project") as conn:
            row = conn.execute("SELECT * FROM projects WHERE api_key=?", (api_key,)).fetchone()
        if not row:
            return None
        return Project(id=row["id"], name=row["name"], api_key=row["api_key"])

    def create_project(self, name: str, api_key: Optional[str] = None) -> Project:
        project = Project(id=new_id(), name=name, api_key=api_key or f"pk_{secrets.token_hex(16)}")
        with self._locked("create project") as conn:
            conn.execute(
                "INSERT INTO projects(id, name, api_key, created_at) VALUES (?,?,?,?)",
                (project.id, project.name, project.api_key, utc_now_iso()),
            )
            conn.commit()
        return project
