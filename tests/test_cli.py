import io
import json
import os
import unittest
from contextlib import redirect_stderr, redirect_stdout
from tempfile import TemporaryDirectory
from unittest.mock import patch

from scraper.cli import build_arg_parser, main
from scraper.persistence import create_store
from scraper.worker import JobOrchestrator
from tests.fakes import FakePage, FakeSessionFactory, fast_options, load_fixture

QUOTES_URL = "http://quotes.toscrape.com"


class CliTestCase(unittest.TestCase):
    def setUp(self) -> None:
        tmp = TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        env = patch.dict(os.environ, {"SCRAPER_DATA_DIR": tmp.name, "SCRAPER_EXPORT_ENABLED": "false"})
        env.start()
        self.addCleanup(env.stop)
        self.tmp = tmp.name
        self.db_url = f"sqlite:///{tmp.name}/cli.db"

    def _main(self, *argv: str) -> tuple[int, object]:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            code = main(["--db-url", self.db_url, *argv])
        output = buffer.getvalue()
        return code, json.loads(output) if output else None

    def test_parser_requires_a_command(self) -> None:
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            build_arg_parser().parse_args([])

    @patch("scraper.queue.run_scrape_job")
    def test_enqueue_then_status(self, task) -> None:
        code, queued = self._main("enqueue", "scrape-quotes", "--pages", "2", "--priority", "3")

        self.assertEqual(code, 0)
        self.assertEqual(queued["status"], "pending")
        task.apply_async.assert_called_once()
        (payload,) = task.apply_async.call_args.kwargs["args"]
        self.assertEqual(payload["config"]["db_url"], self.db_url)

        code, snapshot = self._main("status", queued["job_id"])
        self.assertEqual(code, 0)
        self.assertEqual(snapshot["job_type"], "scrape-quotes")
        self.assertEqual(snapshot["priority"], 3)
        self.assertEqual(snapshot["parameters"]["pages"], 2)

        code, stats = self._main("stats")
        self.assertEqual(stats["total_jobs"], 1)
        self.assertEqual(stats["jobs_by_status"]["pending"], 1)

    def test_enqueue_runs_eager_task_against_the_selected_database(self) -> None:
        options, _ = fast_options()
        factory = FakeSessionFactory(FakePage({QUOTES_URL: load_fixture("quotes_page1.html")}))
        seen_urls: list[str] = []

        def orchestrator_for(config, store):
            seen_urls.append(config.db_url)
            return JobOrchestrator(store, factory, strategy_options=options)

        other_db = f"sqlite:///{self.tmp}/environment.db"
        with patch.dict(os.environ, {"SCRAPER_DATABASE_URL": other_db}), patch(
            "scraper.tasks.build_orchestrator", side_effect=orchestrator_for
        ):
            code, queued = self._main("enqueue", "scrape-quotes", "--url", QUOTES_URL, "--pages", "1")

        self.assertEqual(code, 0)
        self.assertEqual(seen_urls, [self.db_url])
        self.assertEqual(queued["status"], "completed")

        code, snapshot = self._main("status", queued["job_id"])
        self.assertEqual(snapshot["status"], "completed")
        self.assertEqual(snapshot["result_data"]["count"], 10)
        self.assertIsNone(create_store(other_db).get_job(queued["job_id"]))

    def test_enqueue_unknown_job_type_exits(self) -> None:
        with redirect_stderr(io.StringIO()) as stderr, self.assertRaises(SystemExit) as ctx:
            self._main("enqueue", "scrape-mastodon")

        self.assertEqual(ctx.exception.code, 2)
        self.assertIn("Unknown job type: scrape-mastodon", stderr.getvalue())

    def test_status_of_missing_job(self) -> None:
        code, output = self._main("status", "missing")

        self.assertEqual(code, 1)
        self.assertIsNone(output)

    def test_run_in_process_and_list_records(self) -> None:
        options, _ = fast_options()
        factory = FakeSessionFactory(FakePage({QUOTES_URL: load_fixture("quotes_page1.html")}))

        def orchestrator_for(config, store):
            return JobOrchestrator(store, factory, strategy_options=options)

        with patch("scraper.cli.build_orchestrator", side_effect=orchestrator_for):
            code, snapshot = self._main("run", "scrape-quotes", "--url", QUOTES_URL, "--pages", "1")

        self.assertEqual(code, 0)
        self.assertEqual(snapshot["status"], "completed")
        self.assertEqual(snapshot["result_data"]["count"], 10)

        code, records = self._main("records", "--job", snapshot["job_id"])
        self.assertEqual(len(records), 10)
        code, limited = self._main("records", "--job", snapshot["job_id"], "--limit", "3")
        self.assertEqual(len(limited), 3)
        code, found = self._main("records", "--search", "Author 7")
        self.assertEqual([record["title"] for record in found], ["Quote by Author 7"])

        code, jobs = self._main("jobs", "--status", "completed")
        self.assertEqual([job["job_id"] for job in jobs], [snapshot["job_id"]])


if __name__ == "__main__":
    unittest.main()
