import unittest
from unittest.mock import patch

from scraper.errors import UnknownJobType
from scraper.persistence import create_store
from scraper.queue import CeleryJobQueue, LocalJobQueue


class LocalJobQueueTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = create_store("sqlite://")
        self.queue = LocalJobQueue(self.store)

    def test_higher_priority_is_dequeued_first(self) -> None:
        low = self.queue.enqueue("scrape-quotes", {"pages": 1}, priority=1)
        first_high = self.queue.enqueue("scrape-reddit", None, priority=5)
        middle = self.queue.enqueue("scrape-tiktok", None, priority=3)
        second_high = self.queue.enqueue("scrape-quotes", None, priority=5)

        order = [self.queue.get(timeout=0).job_id for _ in range(len(self.queue))]

        self.assertEqual(order, [first_high, second_high, middle, low])
        self.assertIsNone(self.queue.get(timeout=0))

    def test_enqueue_records_pending_job(self) -> None:
        job_id = self.queue.enqueue("scrape-quotes", {"url": "http://quotes.toscrape.com", "pages": "2"}, 4)

        snapshot = self.store.get_job(job_id)
        self.assertEqual(snapshot.status, "pending")
        self.assertEqual(snapshot.priority, 4)
        self.assertEqual(snapshot.parameters["pages"], 2)
        metadata = snapshot.parameters["metadata"]
        self.assertTrue(metadata["request_id"].startswith("job-"))
        self.assertEqual(metadata["user_agent"], "ScraperBot/1.0")

        request = self.queue.get(timeout=0)
        self.assertEqual(request.job_id, job_id)
        self.assertEqual(request.url, "http://quotes.toscrape.com")

    def test_unknown_job_type_is_rejected_before_anything_is_written(self) -> None:
        with self.assertRaises(UnknownJobType) as ctx:
            self.queue.enqueue("scrape-mastodon")

        self.assertIn("scrape-quotes", str(ctx.exception))
        self.assertEqual(len(self.queue), 0)
        self.assertEqual(self.store.stats()["total_jobs"], 0)


class CeleryJobQueueTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = create_store("sqlite://")

    @patch("scraper.queue.run_scrape_job")
    def test_submits_payload_to_celery(self, task) -> None:
        job_id = CeleryJobQueue(self.store).enqueue("scrape-reddit", {"url": "https://old.reddit.com/r/python"}, 7)

        task.apply_async.assert_called_once()
        kwargs = task.apply_async.call_args.kwargs
        self.assertEqual(kwargs["task_id"], job_id)
        self.assertEqual(kwargs["priority"], 7)
        (payload,) = kwargs["args"]
        self.assertEqual(payload["type"], "scrape-reddit")
        self.assertEqual(payload["job_id"], job_id)
        self.assertEqual(payload["url"], "https://old.reddit.com/r/python")
        self.assertEqual(self.store.get_job(job_id).status, "pending")

    @patch("scraper.queue.run_scrape_job")
    def test_payload_carries_producer_config(self, task) -> None:
        queue = CeleryJobQueue(self.store, {"db_url": "sqlite:///shared.db", "browser_backend": "http"})

        queue.enqueue("scrape-quotes")

        (payload,) = task.apply_async.call_args.kwargs["args"]
        self.assertEqual(payload["config"], {"db_url": "sqlite:///shared.db", "browser_backend": "http"})

    @patch("scraper.queue.run_scrape_job")
    def test_unknown_job_type_is_not_submitted(self, task) -> None:
        with self.assertRaises(UnknownJobType):
            CeleryJobQueue(self.store).enqueue("scrape-mastodon")

        task.apply_async.assert_not_called()


if __name__ == "__main__":
    unittest.main()
