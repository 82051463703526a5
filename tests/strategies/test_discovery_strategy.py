import unittest

from scraper.errors import NavigationExhausted
from scraper.records import DiscoveryItem, DiscoveryType
from scraper.strategies.discovery import DISCOVERY_URLS, DiscoveryStrategy, category_url, dedupe_items
from tests.fakes import FakePage, fast_options, load_fixture

EXPLORE_URL = "https://www.tiktok.com/explore"


class DedupeTestCase(unittest.TestCase):
    def test_first_occurrence_wins_per_type_and_name(self) -> None:
        items = [
            DiscoveryItem(type=DiscoveryType.VIDEO, name="1", url="https://a", text="first"),
            DiscoveryItem(type=DiscoveryType.PROFILE, name="1", url="https://b"),
            DiscoveryItem(type=DiscoveryType.VIDEO, name="1", url="https://c", text="second"),
        ]

        unique = dedupe_items(items)

        self.assertEqual([(item.type, item.name) for item in unique], [(DiscoveryType.VIDEO, "1"), (DiscoveryType.PROFILE, "1")])
        self.assertEqual(unique[0].text, "first")

    def test_category_url_is_encoded(self) -> None:
        self.assertEqual(
            category_url("Singing & Dancing"),
            "https://www.tiktok.com/discover?category=Singing%20%26%20Dancing",
        )


class DiscoveryStrategyTestCase(unittest.TestCase):
    def setUp(self) -> None:
        options, self.delays = fast_options()
        self.strategy = DiscoveryStrategy(options)
        self.progress: list[int] = []

    def test_candidate_ladder(self) -> None:
        self.assertEqual(self.strategy.candidates(EXPLORE_URL), list(DISCOVERY_URLS))
        custom = "https://www.tiktok.com/tag/cats"
        self.assertEqual(self.strategy.candidates(custom), [custom, *DISCOVERY_URLS])

    def test_extracts_unique_videos_profiles_and_categories(self) -> None:
        page = FakePage({EXPLORE_URL: load_fixture("tiktok_explore.html")})

        result = self.strategy.collect(page, None, None, self.progress.append)

        self.assertEqual(page.visited, [EXPLORE_URL])
        self.assertEqual(page.waits, [5000])
        self.assertEqual(self.delays, [])
        self.assertFalse(result.used_fallback)

        keys = [(item.type, item.name) for item in result.units]
        self.assertEqual(len(keys), len(set(keys)))
        videos = [item for item in result.units if item.type is DiscoveryType.VIDEO]
        profiles = [item.name for item in result.units if item.type is DiscoveryType.PROFILE]
        categories = [item.name for item in result.units if item.type is DiscoveryType.CATEGORY]

        self.assertEqual([video.name for video in videos], ["7300000000000000001", "7300000000000000002"])
        self.assertEqual(videos[0].text, "Morning routine")
        self.assertEqual(videos[1].url, "https://www.tiktok.com/@bob/video/7300000000000000002")
        self.assertEqual(profiles, ["alice", "bob", "carol", "dave"])
        self.assertEqual(categories, ["Singing & Dancing", "Comedy", "Food"])

    def test_falls_through_candidates_until_content(self) -> None:
        page = FakePage(
            {
                EXPLORE_URL: "<html><head><title>Loading</title></head><body></body></html>",
                "https://www.tiktok.com/tag/fyp": load_fixture("tiktok_explore.html"),
            }
        )

        result = self.strategy.collect(page, None, None, self.progress.append)

        self.assertEqual(page.visited, [EXPLORE_URL, "https://www.tiktok.com/tag/fyp"])
        self.assertTrue(result.units)

    def test_hashtag_fallback(self) -> None:
        page = FakePage({EXPLORE_URL: load_fixture("tiktok_hashtags.html")})

        result = self.strategy.collect(page, None, None, self.progress.append)

        self.assertTrue(result.used_fallback)
        self.assertEqual([item.name for item in result.units], ["#dance", "#fyp", "#cooking_tips"])
        self.assertTrue(all(item.type is DiscoveryType.CATEGORY for item in result.units))
        self.assertEqual(result.units[0].url, "https://www.tiktok.com/tag/dance")

    def test_limit_applies_after_dedupe(self) -> None:
        page = FakePage({EXPLORE_URL: load_fixture("tiktok_explore.html")})

        result = self.strategy.collect(page, None, 3, self.progress.append)

        self.assertEqual(len(result.units), 3)

    def test_all_candidates_fail(self) -> None:
        page = FakePage({})

        with self.assertRaises(NavigationExhausted) as ctx:
            self.strategy.collect(page, None, None, self.progress.append)

        self.assertEqual(ctx.exception.attempted, list(DISCOVERY_URLS))

    def test_to_record(self) -> None:
        item = DiscoveryItem(type=DiscoveryType.PROFILE, name="alice", url="https://www.tiktok.com/@alice")

        record = self.strategy.to_record(item, source_url=EXPLORE_URL)

        self.assertEqual(record.title, "Profile: alice")
        self.assertEqual(record.source_url, "https://www.tiktok.com/@alice")
        self.assertEqual(record.metadata, {"type": "profile", "name": "alice", "found_on": EXPLORE_URL})
        self.assertEqual(self.strategy.unit_kind(item), "profile")


if __name__ == "__main__":
    unittest.main()
