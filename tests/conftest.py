"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for CastFeed tests.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from pathlib import Path
from xml.sax.saxutils import escape

import pytest

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.mkdtemp(prefix="castfeed_tests_"))
os.environ["CASTFEED_DATABASE__PATH"] = str(_TEST_DIR / "castfeed_test.db")
os.environ["CASTFEED_LOGGING__FILE_PATH"] = ""
os.environ["CASTFEED_ACTIVITY__API_KEY"] = "test-activity-key"
os.environ["CASTFEED_DEBUG"] = "true"


TEST_PODCAST_ID = "5afb7fedfe7430d35996d66e"
TEST_FEED_URL = "http://mbmbam.libsyn.com/rss"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def temp_db(tmp_path):
    """Fresh database file with schema for one test."""
    from castfeed.database.schema import DatabaseSchema

    db_path = tmp_path / "castfeed_test.db"
    DatabaseSchema(str(db_path)).create_tables()
    return str(db_path)


@pytest.fixture
def db_connection(temp_db):
    """Create a database connection manager for testing."""
    from castfeed.database.connection import DatabaseConnection

    connection = DatabaseConnection(temp_db, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def podcast_repo(db_connection):
    from castfeed.storage.podcast_repository import PodcastRepository

    return PodcastRepository(db_connection)


@pytest.fixture
def episode_repo(db_connection):
    from castfeed.storage.episode_repository import EpisodeRepository

    return EpisodeRepository(db_connection)


@pytest.fixture
def sample_podcast(podcast_repo):
    """A stored podcast with no episodes."""
    from castfeed.database.models import Podcast

    podcast = Podcast(id=TEST_PODCAST_ID, feed_url=TEST_FEED_URL, title="My Brother, My Brother and Me")
    podcast_repo.create_podcast(podcast)
    return podcast


@pytest.fixture
def seed_episodes(episode_repo):
    """Store already fanned-out episodes for a podcast.

    Usage:
        existing = seed_episodes(podcast_id, 3)
    """
    from castfeed.database.models import Episode

    def _seed(podcast_id, count, prefix="seed"):
        stamped = datetime(2020, 1, 1, tzinfo=timezone.utc)
        episodes = [
            Episode(
                podcast_id=podcast_id,
                unique_key=f"{prefix}-guid-{i}",
                guid=f"{prefix}-guid-{i}",
                title=f"Seeded episode {i}",
                link=f"https://example.com/{prefix}/{i}",
                activity_sent_at=stamped,
                enrichment_queued_at=stamped,
            )
            for i in range(count)
        ]
        episode_repo.upsert_episodes(episodes)
        return episodes

    return _seed


# ============================================================================
# Feed Fixtures
# ============================================================================


def build_feed_xml(count, start=0, title="Test Podcast", prefix="ep", extra_items=""):
    """Render an RSS 2.0 podcast feed with ``count`` items, newest first."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    items = []
    for i in range(start, start + count):
        published = format_datetime(base + timedelta(hours=i))
        items.append(
            f"""
    <item>
      <title>{escape(f"Episode {i}")}</title>
      <guid isPermaLink="false">{prefix}-guid-{i}</guid>
      <link>https://example.com/{prefix}/{i}</link>
      <description>{escape(f"<p>Show notes for <b>episode {i}</b></p>")}</description>
      <enclosure url="https://cdn.example.com/{prefix}/{i}.mp3" length="1000" type="audio/mpeg"/>
      <pubDate>{published}</pubDate>
      <itunes:duration>00:42:{i % 60:02d}</itunes:duration>
    </item>"""
        )

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>{escape(title)}</title>
    <link>https://example.com/</link>
    <description>A podcast for tests</description>
    {''.join(items)}
    {extra_items}
  </channel>
</rss>
""".encode("utf-8")


@pytest.fixture
def make_feed_xml():
    """Factory for RSS feed bodies.

    Usage:
        body = make_feed_xml(649)
    """
    return build_feed_xml


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def test_settings(temp_db):
    """Settings pointing at the per-test database with fast, single-attempt jobs."""
    from castfeed.config.settings import CastFeedSettings, DatabaseSettings, QueueSettings

    return CastFeedSettings(
        database=DatabaseSettings(path=temp_db, pool_size=2),
        queue=QueueSettings(attempts=1, backoff_delay=0.0, job_timeout=None, concurrency=1),
    )
