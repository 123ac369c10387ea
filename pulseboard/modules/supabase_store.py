from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..capabilities.interfaces import EventStore
from ..common.errors import StoreError
from ..events.models import EventEnvelope, Project, StoredEvent


@dataclass(frozen=True)
class SupabaseConfig:
    url: str
    key: str
    timeout_s: float = 10.0
    events_table: str = "events"
    projects_table: str = "projects"


class SupabaseEventStore(EventStore):
    """Event store backed by a Supabase project through its PostgREST endpoint.

    Contract:
    - `created_at` is assigned by the database default (now() in UTC).
    - Reads select only what aggregation needs: event_name and created_at.
    """

    def __init__(self, cfg: SupabaseConfig, client: Optional[httpx.Client] = None) -> None:
        if not cfg.url or not cfg.key:
            raise StoreError("SUPABASE_URL and SUPABASE_KEY must be set")
        self.cfg = cfg
        self._client = client or httpx.Client(timeout=httpx.Timeout(cfg.timeout_s))
        self._base = cfg.url.rstrip("/") + "/rest/v1"
        self._headers = {
            "apikey": cfg.key,
            "Authorization": f"Bearer {cfg.key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, table: str, *, params: Any = None, json: Any = None, prefer: str | None = None) -> Any:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            resp = self._client.request(method, f"{self._base}/{table}", params=params, json=json, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"{method} {table} failed with HTTP {e.response.status_code}: {e.response.text[:200]}",
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {table} failed: {e}", cause=e) from e
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"{method} {table} returned invalid JSON", cause=e) from e

    def insert_event(self, envelope: EventEnvelope) -> StoredEvent:
        rows = self._request(
            "POST",
            self.cfg.events_table,
            json=envelope.to_dict(),
            prefer="return=representation",
        )
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            raise StoreError("insert returned no row")
        row = rows[0]
        return StoredEvent(
            id=str(row.get("id", "")),
            project_id=row.get("project_id") or envelope.project_id,
            event_name=row.get("event_name") or envelope.event_name,
            created_at=row.get("created_at") or "",
            user_id=row.get("user_id"),
            session_id=row.get("session_id"),
            properties=row.get("properties"),
        )

    def query_events(
        self,
        project_id: str,
        *,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        params: list[tuple[str, str]] = [
            ("select", "event_name,created_at"),
            ("project_id", f"eq.{project_id}"),
        ]
        if start is not None:
            params.append(("created_at", f"gte.{start}"))
        if end is not None:
            params.append(("created_at", f"lte.{end}"))
        params.append(("order", "created_at.asc"))

        rows = self._request("GET", self.cfg.events_table, params=params)
        if not isinstance(rows, list):
            return []
        return [r for r in rows if isinstance(r, dict)]

    def resolve_project(self, api_key: str) -> Optional[Project]:
        rows = self._request(
            "GET",
            self.cfg.projects_table,
            params=[("select", "id,name,api_key"), ("api_key", f"eq.{api_key}"), ("limit", "1")],
        )
        if not isinstance(rows, list) or not rows:
            return None
        row = rows[0]
        return Project(id=str(row["id"]), name=row.get("name") or "Default Project", api_key=row.get("api_key", api_key))

    def ping(self) -> None:
        self._request("GET", self.cfg.events_table, params=[("select", "id"), ("limit", "1")])

    def close(self) -> None:
        self._client.close()
