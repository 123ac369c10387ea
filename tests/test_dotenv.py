import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from pulseboard.common.dotenv import load_dotenv, load_dotenv_auto

ENV_TEXT = """
# local overrides
export REDIS_URL="redis://localhost:6379/0"
PULSEBOARD_QUEUE_KEY='events_dev'
SUPABASE_KEY=
UNRELATED=1
not a pair
"""


class TestDotenv(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory(prefix="pulseboard-env-")
        self.env_file = Path(self._tmp.name) / ".env"
        self.env_file.write_text(ENV_TEXT, encoding="utf-8")
        keep = {k: v for k, v in os.environ.items() if not k.startswith(("PULSEBOARD_", "REDIS_", "SUPABASE_", "NODE_ENV", "UNRELATED"))}
        self._env = patch.dict(os.environ, keep, clear=True)
        self._env.start()

    def tearDown(self):
        self._env.stop()
        self._tmp.cleanup()

    def test_prefix_filter_and_quotes(self):
        self.assertTrue(load_dotenv(self.env_file, allow_prefixes=("PULSEBOARD_", "REDIS_URL")))
        self.assertEqual(os.environ["REDIS_URL"], "redis://localhost:6379/0")
        self.assertEqual(os.environ["PULSEBOARD_QUEUE_KEY"], "events_dev")
        self.assertNotIn("UNRELATED", os.environ)
        self.assertNotIn("SUPABASE_KEY", os.environ)

    def test_process_environment_wins_unless_override(self):
        os.environ["REDIS_URL"] = "redis://from-process:6379"
        load_dotenv(self.env_file)
        self.assertEqual(os.environ["REDIS_URL"], "redis://from-process:6379")
        load_dotenv(self.env_file, override=True)
        self.assertEqual(os.environ["REDIS_URL"], "redis://localhost:6379/0")

    def test_missing_file(self):
        self.assertFalse(load_dotenv(Path(self._tmp.name) / "nope.env"))

    def test_auto_uses_explicit_file(self):
        os.environ["PULSEBOARD_ENV_FILE"] = str(self.env_file)
        self.assertEqual(load_dotenv_auto(allow_prefixes=("PULSEBOARD_QUEUE",)), self.env_file)
        self.assertEqual(os.environ["PULSEBOARD_QUEUE_KEY"], "events_dev")

    def test_auto_is_skipped_in_production(self):
        os.environ["PULSEBOARD_ENV_FILE"] = str(self.env_file)
        os.environ["NODE_ENV"] = "production"
        self.assertIsNone(load_dotenv_auto())
        self.assertNotIn("REDIS_URL", os.environ)


if __name__ == "__main__":
    unittest.main(verbosity=2)
