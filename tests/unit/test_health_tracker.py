"""
Tests for scrape-health bookkeeping.
"""

from datetime import datetime, timezone

from castfeed.processing.health_tracker import ScrapeHealthTracker

from tests.conftest import TEST_PODCAST_ID


class TestScrapeHealthTracker:

    def test_success_sets_post_count_to_stored_total(
        self, podcast_repo, episode_repo, sample_podcast, seed_episodes
    ):
        seed_episodes(TEST_PODCAST_ID, 4)
        podcast_repo.record_scrape_failure(TEST_PODCAST_ID)
        tracker = ScrapeHealthTracker(podcast_repo, episode_repo)
        at = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

        assert tracker.record_success(TEST_PODCAST_ID, at) == 4

        podcast = podcast_repo.get_podcast(TEST_PODCAST_ID)
        assert podcast.post_count == 4
        assert podcast.consecutive_scrape_failures == 0
        assert podcast.last_success_at == at

    def test_failure_leaves_post_count(self, podcast_repo, episode_repo, sample_podcast, seed_episodes):
        seed_episodes(TEST_PODCAST_ID, 2)
        tracker = ScrapeHealthTracker(podcast_repo, episode_repo)
        tracker.record_success(TEST_PODCAST_ID)

        assert tracker.record_failure(TEST_PODCAST_ID)
        assert tracker.record_failure(TEST_PODCAST_ID)

        podcast = podcast_repo.get_podcast(TEST_PODCAST_ID)
        assert podcast.consecutive_scrape_failures == 2
        assert podcast.post_count == 2

    def test_failure_for_unknown_podcast(self, podcast_repo, episode_repo):
        tracker = ScrapeHealthTracker(podcast_repo, episode_repo)
        assert tracker.record_failure("missing") is False
