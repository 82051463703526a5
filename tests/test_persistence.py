import unittest

from scraper.errors import InvalidJobTransition, PersistenceError
from scraper.jobs import JobRequest, JobStatus
from scraper.persistence import create_store
from scraper.records import Quote, normalize


def _quote_record(text: str, author: str, *, source: str = "quotes", job_id: str | None = None):
    return normalize(
        source,
        Quote(text=text, author=author, tags=["life"]),
        source_url="http://quotes.toscrape.com",
        title=f"Quote by {author}",
        body_content=f'"{text}"\n\n- {author}',
        metadata={"author": author},
        job_id=job_id,
    )


class JobLifecycleTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = create_store("sqlite://")
        self.request = JobRequest(job_type="scrape-quotes", url="http://quotes.toscrape.com", pages=2, priority=5)
        self.store.create_job(self.request)

    def test_create_job_records_pending_row(self) -> None:
        snapshot = self.store.get_job(self.request.job_id)

        self.assertEqual(snapshot.status, JobStatus.PENDING.value)
        self.assertEqual(snapshot.job_type, "scrape-quotes")
        self.assertEqual(snapshot.priority, 5)
        self.assertEqual(snapshot.parameters["pages"], 2)
        self.assertEqual(snapshot.parameters["url"], "http://quotes.toscrape.com")
        self.assertIsNotNone(snapshot.started_at)
        self.assertIsNone(snapshot.completed_at)

    def test_create_job_is_idempotent(self) -> None:
        first = self.store.get_job(self.request.job_id).id
        again = self.store.create_job(self.request)

        self.assertEqual(again, first)
        self.assertEqual(self.store.stats()["total_jobs"], 1)

    def test_update_only_touches_provided_fields(self) -> None:
        self.store.update_job(self.request.job_id, status=JobStatus.ACTIVE)
        self.store.update_job(self.request.job_id, error_message="Timeout 30000ms exceeded.")
        snapshot = self.store.update_job(self.request.job_id, result_data={"count": 1})

        self.assertEqual(snapshot.status, JobStatus.ACTIVE.value)
        self.assertEqual(snapshot.error_message, "Timeout 30000ms exceeded.")
        self.assertEqual(snapshot.result_data, {"count": 1})
        self.assertIsNone(snapshot.completed_at)

    def test_terminal_status_sets_completed_at(self) -> None:
        self.store.update_job(self.request.job_id, status=JobStatus.ACTIVE)
        snapshot = self.store.update_job(self.request.job_id, status=JobStatus.COMPLETED, result_data={"count": 3})

        self.assertEqual(snapshot.status, "completed")
        self.assertIsNotNone(snapshot.completed_at)
        self.assertTrue(snapshot.is_terminal)

    def test_pending_cannot_skip_active(self) -> None:
        with self.assertRaises(InvalidJobTransition):
            self.store.update_job(self.request.job_id, status=JobStatus.COMPLETED)
        self.assertEqual(self.store.get_job(self.request.job_id).status, "pending")

    def test_terminal_states_are_immutable(self) -> None:
        self.store.update_job(self.request.job_id, status=JobStatus.ACTIVE)
        self.store.update_job(self.request.job_id, status=JobStatus.FAILED, error_message="boom")

        for status in (JobStatus.ACTIVE, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.PENDING):
            with self.assertRaises(InvalidJobTransition):
                self.store.update_job(self.request.job_id, status=status)
        snapshot = self.store.get_job(self.request.job_id)
        self.assertEqual(snapshot.status, "failed")
        self.assertEqual(snapshot.error_message, "boom")

    def test_active_cannot_return_to_pending(self) -> None:
        self.store.update_job(self.request.job_id, status=JobStatus.ACTIVE)

        with self.assertRaises(InvalidJobTransition):
            self.store.update_job(self.request.job_id, status=JobStatus.PENDING)

    def test_unknown_job_and_fields_are_rejected(self) -> None:
        with self.assertRaises(PersistenceError):
            self.store.update_job("missing", status=JobStatus.ACTIVE)
        with self.assertRaises(ValueError):
            self.store.update_job(self.request.job_id, job_type="other")
        self.assertIsNone(self.store.get_job("missing"))

    def test_job_stats_and_listing(self) -> None:
        other = JobRequest(job_type="scrape-reddit")
        self.store.create_job(other)
        self.store.update_job(other.job_id, status=JobStatus.ACTIVE)

        self.assertEqual(self.store.job_stats(), {"pending": 1, "active": 1, "completed": 0, "failed": 0})
        self.assertEqual([job.job_id for job in self.store.list_jobs(status="active")], [other.job_id])
        self.assertEqual(len(self.store.list_jobs()), 2)


class RecordStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = create_store("sqlite://")

    def test_save_and_query_records(self) -> None:
        self.store.save_record(_quote_record("Be yourself.", "Oscar Wilde", job_id="job-1"))
        self.store.save_record(_quote_record("Stay hungry.", "Steve Jobs", job_id="job-1"))
        self.store.save_record(_quote_record("Other", "Nobody", job_id="job-2"))

        by_job = self.store.records_for_job("job-1")
        self.assertEqual(len(by_job), 2)
        self.assertTrue(all(record.source == "quotes" for record in by_job))
        self.assertEqual({record.metadata["author"] for record in by_job}, {"Oscar Wilde", "Steve Jobs"})

        found = self.store.search_records("hungry")
        self.assertEqual([record.title for record in found], ["Quote by Steve Jobs"])
        self.assertEqual(len(self.store.search_records("oscar")), 1)

        self.assertEqual(len(self.store.records_by_source("quotes")), 3)
        self.assertEqual(self.store.records_by_source("reddit"), [])
        self.assertEqual(len(self.store.recent_records(limit=2)), 2)

        stored = by_job[0].to_dict()
        self.assertEqual(stored["source"], "quotes")
        self.assertNotIn("raw_data", stored)

    def test_search_treats_wildcards_literally(self) -> None:
        self.store.save_record(_quote_record("I am 100% sure.", "Percent"))
        self.store.save_record(_quote_record("There are 1000 ways.", "Digits"))
        self.store.save_record(_quote_record("Use snake_case names.", "Underscore"))
        self.store.save_record(_quote_record("Use snakeXcase names.", "Letter"))

        self.assertEqual([record.title for record in self.store.search_records("100%")], ["Quote by Percent"])
        self.assertEqual([record.title for record in self.store.search_records("snake_case")], ["Quote by Underscore"])

    def test_records_for_job_honours_limit(self) -> None:
        for index in range(5):
            self.store.save_record(_quote_record(f"Quote {index}", "A", job_id="job-1"))

        self.assertEqual(len(self.store.records_for_job("job-1", limit=3)), 3)
        self.assertEqual(len(self.store.records_for_job("job-1")), 5)

    def test_stats(self) -> None:
        self.store.save_record(_quote_record("a", "A"))
        self.store.save_record(_quote_record("b", "B"))
        self.store.create_job(JobRequest(job_type="scrape-quotes"))

        self.assertEqual(
            self.store.stats(),
            {"total_content": 2, "total_jobs": 1, "content_by_source": {"quotes": 2}},
        )


if __name__ == "__main__":
    unittest.main()
