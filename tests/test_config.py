import unittest
from pathlib import Path

from scraper.config import DEFAULT_DB_URL, ScraperConfig


class ScraperConfigTestCase(unittest.TestCase):
    def test_defaults(self) -> None:
        config = ScraperConfig.from_env({})

        self.assertEqual(config.db_url, DEFAULT_DB_URL)
        self.assertEqual(config.data_dir, Path("data"))
        self.assertTrue(config.export_enabled)
        self.assertEqual(config.browser.backend, "playwright")
        self.assertTrue(config.browser.headless)
        self.assertIsNone(config.timeout.navigation_timeout)
        self.assertEqual(config.worker.concurrency, 2)
        self.assertEqual(config.worker.max_attempts, 3)
        self.assertEqual(config.worker.page_delay, 2.0)
        self.assertEqual(config.sqlite_path(), Path("data/scraper.db"))

    def test_environment_overrides(self) -> None:
        config = ScraperConfig.from_env(
            {
                "SCRAPER_DATABASE_URL": "postgresql://scraper@localhost/scraper",
                "SCRAPER_DATA_DIR": "/tmp/scraper",
                "SCRAPER_EXPORT_ENABLED": "no",
                "SCRAPER_LOG_LEVEL": "debug",
                "SCRAPER_BROWSER_BACKEND": "HTTP",
                "SCRAPER_HEADLESS": "false",
                "SCRAPER_SLOW_MO_MS": "250",
                "SCRAPER_NAVIGATION_TIMEOUT": "45000",
                "SCRAPER_WORKER_CONCURRENCY": "0",
                "SCRAPER_MAX_ATTEMPTS": "5",
                "SCRAPER_PAGE_DELAY": "not-a-number",
            }
        )

        self.assertEqual(config.db_url, "postgresql://scraper@localhost/scraper")
        self.assertEqual(config.data_dir, Path("/tmp/scraper"))
        self.assertFalse(config.export_enabled)
        self.assertEqual(config.log_level, "DEBUG")
        self.assertEqual(config.browser.backend, "http")
        self.assertFalse(config.browser.headless)
        self.assertEqual(config.browser.slow_mo_ms, 250)
        self.assertEqual(config.timeout.navigation_timeout, 45000.0)
        self.assertEqual(config.worker.concurrency, 1)
        self.assertEqual(config.worker.max_attempts, 5)
        self.assertEqual(config.worker.page_delay, 2.0)
        self.assertIsNone(config.sqlite_path())

    def test_unknown_backend_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ScraperConfig.from_env({"SCRAPER_BROWSER_BACKEND": "firefox"})

    def test_in_memory_sqlite_has_no_path(self) -> None:
        self.assertIsNone(ScraperConfig(db_url="sqlite://").sqlite_path())
        self.assertIsNone(ScraperConfig(db_url="sqlite:///:memory:").sqlite_path())


if __name__ == "__main__":
    unittest.main()
