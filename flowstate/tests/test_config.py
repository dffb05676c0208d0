from __future__ import annotations

from pathlib import Path
import unittest

from flowstate.config import Settings, default_db_path
from flowstate.errors import InvalidArgumentError


class TestSettings(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = Settings.from_env({})
        self.assertEqual(settings.db_path, default_db_path())
        self.assertEqual(settings.llm_timeout_sec, 10.0)
        self.assertEqual(settings.hourly_rate, 50.0)
        self.assertEqual(settings.idle_timeout_sec, 120.0)
        self.assertIsNone(settings.llm_api_key)

    def test_env_overrides(self) -> None:
        settings = Settings.from_env(
            {
                "FLOWSTATE_DB_PATH": "/tmp/flow.sqlite",
                "FLOWSTATE_LLM_BASE_URL": "http://localhost:11434/v1/",
                "OPENAI_API_KEY": "sk-fallback",
                "FLOWSTATE_HOURLY_RATE": "80",
                "FLOWSTATE_LOG_LEVEL": "debug",
            }
        )
        self.assertEqual(settings.db_path, Path("/tmp/flow.sqlite"))
        self.assertEqual(settings.llm_base_url, "http://localhost:11434/v1")
        self.assertEqual(settings.llm_api_key, "sk-fallback")
        self.assertEqual(settings.hourly_rate, 80.0)
        self.assertEqual(settings.log_level, "DEBUG")

    def test_dedicated_key_wins(self) -> None:
        settings = Settings.from_env({"FLOWSTATE_LLM_API_KEY": "sk-own", "OPENAI_API_KEY": "sk-other"})
        self.assertEqual(settings.llm_api_key, "sk-own")

    def test_bad_numbers_rejected(self) -> None:
        for value in ("abc", "0", "-3"):
            with self.assertRaises(InvalidArgumentError):
                Settings.from_env({"FLOWSTATE_LLM_TIMEOUT": value})


if __name__ == "__main__":
    unittest.main()
