import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from pydantic import ValidationError

from pulseboard.core.config import ConfigManager, HeartbeatConfig

# env names read by ConfigManager.load(); cleared so the host environment cannot leak in
_ENV_NAMES = [
    "PULSEBOARD_CONFIG_PATH",
    "PULSEBOARD_ENV",
    "NODE_ENV",
    "PULSEBOARD_STORE_BACKEND",
    "PULSEBOARD_DB_PATH",
    "PULSEBOARD_REDIS_URL",
    "REDIS_URL",
    "PULSEBOARD_QUEUE_KEY",
    "PULSEBOARD_LOG_LEVEL",
    "PULSEBOARD_LOG_FORMAT",
    "PULSEBOARD_HOST",
    "PULSEBOARD_PORT",
    "PULSEBOARD_RATE_LIMIT_PER_MINUTE",
    "PORT",
    "PULSEBOARD_HEARTBEAT_KEY",
    "PULSEBOARD_HEARTBEAT_INTERVAL_S",
    "PULSEBOARD_HEARTBEAT_TTL_S",
    "PULSEBOARD_SUPABASE_URL",
    "SUPABASE_URL",
    "PULSEBOARD_SUPABASE_KEY",
    "SUPABASE_KEY",
    "PULSEBOARD_SUPABASE_TIMEOUT_S",
]


class TestConfigManager(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory(prefix="pulseboard-cfg-")
        self.cfg_path = Path(self._tmp.name) / "config" / "pulseboard.json"
        clean = {k: v for k, v in os.environ.items() if k not in _ENV_NAMES}
        self._env = patch.dict(os.environ, clean, clear=True)
        self._env.start()

    def tearDown(self):
        self._env.stop()
        self._tmp.cleanup()

    def load(self, **env):
        with patch.dict(os.environ, env):
            return ConfigManager(default_path=self.cfg_path).load()

    def test_missing_file_is_written_with_defaults(self):
        cfg = self.load()
        self.assertEqual(cfg.port, 8080)
        self.assertIsNone(cfg.redis_url)
        self.assertTrue(self.cfg_path.exists())
        self.assertEqual(json.loads(self.cfg_path.read_text(encoding="utf-8"))["queue_key"], "events")

    def test_corrupt_file_is_backed_up_and_healed(self):
        self.cfg_path.parent.mkdir(parents=True)
        self.cfg_path.write_text("{broken", encoding="utf-8")
        cfg = self.load()
        self.assertEqual(cfg.store_backend, "sqlite")
        backups = list(self.cfg_path.parent.glob("pulseboard.json.bad-*"))
        self.assertEqual(len(backups), 1)
        self.assertEqual(backups[0].read_text(encoding="utf-8"), "{broken")

    def test_file_values_are_used(self):
        self.cfg_path.parent.mkdir(parents=True)
        self.cfg_path.write_text(json.dumps({"queue_key": "ingest", "heartbeat": {"ttl_s": 45}}), encoding="utf-8")
        cfg = self.load()
        self.assertEqual(cfg.queue_key, "ingest")
        self.assertEqual(cfg.heartbeat.ttl_s, 45)
        self.assertEqual(cfg.heartbeat.interval_s, 10.0)

    def test_env_beats_file_and_prefixed_beats_plain(self):
        self.cfg_path.parent.mkdir(parents=True)
        self.cfg_path.write_text(json.dumps({"redis_url": "redis://file:6379"}), encoding="utf-8")

        cfg = self.load(REDIS_URL="redis://plain:6379", PORT="3000", NODE_ENV="production")
        self.assertEqual(cfg.redis_url, "redis://plain:6379")
        self.assertEqual(cfg.port, 3000)
        self.assertEqual(cfg.env, "production")

        cfg = self.load(REDIS_URL="redis://plain:6379", PULSEBOARD_REDIS_URL="rediss://prefixed:6380")
        self.assertEqual(cfg.redis_url, "rediss://prefixed:6380")

    def test_supabase_and_heartbeat_from_env(self):
        cfg = self.load(
            PULSEBOARD_STORE_BACKEND="supabase",
            SUPABASE_URL="https://x.supabase.co",
            SUPABASE_KEY="svc",
            PULSEBOARD_HEARTBEAT_INTERVAL_S="5",
            PULSEBOARD_HEARTBEAT_TTL_S="12",
        )
        self.assertEqual(cfg.store_backend, "supabase")
        self.assertEqual((cfg.supabase.url, cfg.supabase.key), ("https://x.supabase.co", "svc"))
        self.assertEqual((cfg.heartbeat.interval_s, cfg.heartbeat.ttl_s), (5.0, 12))

    def test_rate_limit_from_env(self):
        self.assertEqual(self.load().rate_limit_per_minute, 100)
        self.assertEqual(self.load(PULSEBOARD_RATE_LIMIT_PER_MINUTE="0").rate_limit_per_minute, 0)
        with self.assertRaises(ValidationError):
            self.load(PULSEBOARD_RATE_LIMIT_PER_MINUTE="-5")

    def test_invalid_values_are_rejected(self):
        with self.assertRaises(ValidationError):
            self.load(PULSEBOARD_STORE_BACKEND="mongo")
        with self.assertRaises(ValidationError):
            self.load(PULSEBOARD_HEARTBEAT_INTERVAL_S="30", PULSEBOARD_HEARTBEAT_TTL_S="20")


class TestHeartbeatConfig(unittest.TestCase):
    def test_ttl_must_outlive_interval(self):
        with self.assertRaises(ValidationError):
            HeartbeatConfig(interval_s=10, ttl_s=10)
        self.assertEqual(HeartbeatConfig().ttl_s, 20)


if __name__ == "__main__":
    unittest.main(verbosity=2)
