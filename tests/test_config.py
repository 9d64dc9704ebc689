import unittest
from pathlib import Path

from doarama_client.config import API_URL, DEFAULT_TIMEOUT, AppConfig
from doarama_client.errors import InvalidInputError


class AppConfigTests(unittest.TestCase):
    def test_defaults_from_empty_environment(self) -> None:
        config = AppConfig.from_env({})
        self.assertEqual(config.api_url, API_URL)
        self.assertEqual(config.api_name, "")
        self.assertEqual(config.timeout, DEFAULT_TIMEOUT)
        self.assertEqual(config.retries, 0)
        self.assertIsNone(config.log_file)

    def test_reads_doarama_variables(self) -> None:
        config = AppConfig.from_env({
            "DOARAMA_API_URL": "https://example.test/api",
            "DOARAMA_API_NAME": "app",
            "DOARAMA_API_KEY": "secret",
            "DOARAMA_USER_ID": "pilot-1",
            "DOARAMA_TIMEOUT": "12.5",
            "DOARAMA_RETRIES": "2",
            "DOARAMA_LOG_FILE": "logs/doarama.log",
        })
        self.assertEqual(config.api_url, "https://example.test/api")
        self.assertEqual(config.api_name, "app")
        self.assertEqual(config.api_key, "secret")
        self.assertEqual(config.user_id, "pilot-1")
        self.assertEqual(config.user_key, "")
        self.assertEqual(config.timeout, 12.5)
        self.assertEqual(config.retries, 2)
        self.assertEqual(config.log_file, Path("logs/doarama.log"))

    def test_invalid_numbers_are_rejected(self) -> None:
        for env in ({"DOARAMA_TIMEOUT": "soon"}, {"DOARAMA_TIMEOUT": "0"}, {"DOARAMA_RETRIES": "-1"}, {"DOARAMA_RETRIES": "x"}):
            with self.subTest(env=env):
                with self.assertRaises(InvalidInputError):
                    AppConfig.from_env(env)


if __name__ == "__main__":
    unittest.main()
