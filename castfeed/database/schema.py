"""
CastFeed Database Schema
========================

SQLite schema for the ingestion worker:
- podcasts: feed sources with scrape-health bookkeeping
- episodes: parsed feed entries, unique per podcast and entry key, with
  fan-out bookkeeping and page-preview columns
- queue_jobs: unfinished jobs of the persistent job queues
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"podcasts", "episodes", "queue_jobs"}


class DatabaseSchema:
    """Database schema manager for the CastFeed SQLite database."""

    def __init__(self, db_path: str = "data/castfeed.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all tables and indexes if they do not exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            self._create_podcasts_table(conn)
            self._create_episodes_table(conn)
            self._create_queue_jobs_table(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_podcasts_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS podcasts (
                id TEXT PRIMARY KEY,
                feed_url TEXT,
                title TEXT,
                post_count INTEGER NOT NULL DEFAULT 0,
                consecutive_scrape_failures INTEGER NOT NULL DEFAULT 0,
                last_scraped_at TIMESTAMP,
                last_success_at TIMESTAMP,
                active BOOLEAN DEFAULT TRUE,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

    def _create_episodes_table(self, conn: sqlite3.Connection) -> None:
        """Create episodes table; one row per (podcast, unique key)."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS episodes (
                id TEXT PRIMARY KEY,
                podcast_id TEXT NOT NULL,
                unique_key TEXT NOT NULL,
                guid TEXT,
                title TEXT,
                link TEXT,
                enclosure_url TEXT,
                description TEXT,
                image_url TEXT,
                duration TEXT,
                published_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                activity_sent_at TIMESTAMP,
                enrichment_queued_at TIMESTAMP,
                fanout_pending BOOLEAN NOT NULL DEFAULT 0,
                preview_title TEXT,
                preview_image_url TEXT,
                enriched_at TIMESTAMP,
                FOREIGN KEY (podcast_id) REFERENCES podcasts(id) ON DELETE CASCADE,
                UNIQUE (podcast_id, unique_key)
            )
        """
        )

    def _create_queue_jobs_table(self, conn: sqlite3.Connection) -> None:
        """Create queue_jobs table; a row lives until its job is removed."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS queue_jobs (
                id TEXT PRIMARY KEY,
                queue_name TEXT NOT NULL,
                data TEXT NOT NULL,
                opts TEXT NOT NULL,
                state TEXT NOT NULL,
                attempts_made INTEGER NOT NULL DEFAULT 0,
                failed_reason TEXT,
                created_at TIMESTAMP,
                finished_at TIMESTAMP
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_podcasts_active ON podcasts(active)",
            "CREATE INDEX IF NOT EXISTS idx_podcasts_last_scraped ON podcasts(last_scraped_at)",
            "CREATE INDEX IF NOT EXISTS idx_episodes_podcast ON episodes(podcast_id)",
            # Pending fan-out lookups
            "CREATE INDEX IF NOT EXISTS idx_episodes_activity_sent ON episodes(podcast_id, activity_sent_at)",
            "CREATE INDEX IF NOT EXISTS idx_episodes_enrichment_queued ON episodes(podcast_id, enrichment_queued_at)",
            "CREATE INDEX IF NOT EXISTS idx_episodes_link ON episodes(link)",
            "CREATE INDEX IF NOT EXISTS idx_queue_jobs_queue ON queue_jobs(queue_name, state)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            for table in ("queue_jobs", "episodes", "podcasts"):
                conn.execute(f"DROP TABLE IF EXISTS {table}")
            conn.commit()
            logger.info("All database tables dropped")

    def verify_schema(self) -> bool:
        """Verify that every expected table exists."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                rows = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False

        tables = {row[0] for row in rows}
        missing = EXPECTED_TABLES - tables
        if missing:
            logger.error(f"Missing tables: {sorted(missing)}")
            return False

        logger.info("Database schema verification passed")
        return True
