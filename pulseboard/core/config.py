from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class HeartbeatConfig(BaseModel):
    """Worker liveness record settings.

    Notes:
    - ttl_s must exceed interval_s so that one missed beat does not read as a
      dead worker, while two consecutive misses do.
    """

    key: str = "pulseboard:worker:heartbeat"
    interval_s: float = 10.0
    ttl_s: int = 20

    @model_validator(mode="after")
    def _ttl_outlives_interval(self) -> "HeartbeatConfig":
        if self.ttl_s <= self.interval_s:
            raise ValueError("heartbeat ttl_s must be greater than interval_s")
        return self


class SupabaseSettings(BaseModel):
    url: Optional[str] = None
    key: Optional[str] = None
    timeout_s: float = 10.0


class PulseboardConfig(BaseModel):
    """Runtime configuration loaded from file + env overrides."""

    env: str = "dev"
    store_backend: Literal["sqlite", "supabase"] = "sqlite"
    db_path: str = "data/pulseboard.db"

    # None disables queued ingestion in the API and is fatal for the worker.
    redis_url: Optional[str] = None
    queue_key: str = "events"

    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    host: str = "0.0.0.0"
    port: int = 8080

    # per-client request budget over a 60 s window; 0 disables the limiter
    rate_limit_per_minute: int = Field(default=100, ge=0)

    heartbeat: HeartbeatConfig = Field(default_factory=HeartbeatConfig)
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        v = os.getenv(name)
        if v is not None and v.strip() != "":
            return v.strip()
    return None


class ConfigManager:
    """Load configuration from JSON file with environment overrides.

    Contract:
    - default < config file < environment variables (including those loaded from .env)
    - self-healing:
        * if config file is missing: write a default config (best-effort)
        * if config file is corrupted: backup the bad file then write a default config (best-effort)
    - the unprefixed names used by existing deployments (REDIS_URL,
      SUPABASE_URL, SUPABASE_KEY, PORT) are honoured after the PULSEBOARD_* ones
    """

    def __init__(self, default_path: Optional[Path] = None) -> None:
        repo_root = Path(__file__).resolve().parents[2]
        self.default_path = default_path or repo_root / "config" / "pulseboard.json"

    def _default_data(self) -> dict:
        return PulseboardConfig().model_dump()

    def _write_default(self, cfg_path: Path) -> None:
        cfg_path.parent.mkdir(parents=True, exist_ok=True)
        cfg_path.write_text(
            json.dumps(self._default_data(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

    def _read_file(self, cfg_path: Path) -> dict:
        if not cfg_path.exists():
            try:
                self._write_default(cfg_path)
            except OSError:
                pass
            return self._default_data()

        try:
            data = json.loads(cfg_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("config root must be an object")
            return data
        except (OSError, ValueError):
            # backup bad file then heal with defaults
            try:
                ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
                cfg_path.replace(cfg_path.with_suffix(cfg_path.suffix + f".bad-{ts}"))
                self._write_default(cfg_path)
            except OSError:
                pass
            return self._default_data()

    def load(self) -> PulseboardConfig:
        raw_path = os.getenv("PULSEBOARD_CONFIG_PATH", str(self.default_path))
        cfg_path = Path(raw_path)
        if not cfg_path.is_absolute():
            # interpret relative paths from repo root (not process CWD)
            cfg_path = self.default_path.parent.parent / cfg_path

        data = self._read_file(cfg_path)

        overrides = {
            "env": _first_env("PULSEBOARD_ENV", "NODE_ENV"),
            "store_backend": _first_env("PULSEBOARD_STORE_BACKEND"),
            "db_path": _first_env("PULSEBOARD_DB_PATH"),
            "redis_url": _first_env("PULSEBOARD_REDIS_URL", "REDIS_URL"),
            "queue_key": _first_env("PULSEBOARD_QUEUE_KEY"),
            "log_level": _first_env("PULSEBOARD_LOG_LEVEL"),
            "log_format": _first_env("PULSEBOARD_LOG_FORMAT"),
            "host": _first_env("PULSEBOARD_HOST"),
            "port": _first_env("PULSEBOARD_PORT", "PORT"),
            "rate_limit_per_minute": _first_env("PULSEBOARD_RATE_LIMIT_PER_MINUTE"),
        }
        for k, v in overrides.items():
            if v is not None:
                data[k] = v

        hb = dict(data.get("heartbeat") or {})
        for field, env_name in (
            ("key", "PULSEBOARD_HEARTBEAT_KEY"),
            ("interval_s", "PULSEBOARD_HEARTBEAT_INTERVAL_S"),
            ("ttl_s", "PULSEBOARD_HEARTBEAT_TTL_S"),
        ):
            v = _first_env(env_name)
            if v is not None:
                hb[field] = v
        data["heartbeat"] = hb

        sb = dict(data.get("supabase") or {})
        for field, names in (
            ("url", ("PULSEBOARD_SUPABASE_URL", "SUPABASE_URL")),
            ("key", ("PULSEBOARD_SUPABASE_KEY", "SUPABASE_KEY")),
            ("timeout_s", ("PULSEBOARD_SUPABASE_TIMEOUT_S",)),
        ):
            v = _first_env(*names)
            if v is not None:
                sb[field] = v
        data["supabase"] = sb

        return PulseboardConfig.model_validate(data)
