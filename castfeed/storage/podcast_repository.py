"""
Podcast Repository
==================

Repository pattern implementation for podcast rows and their scrape-health
bookkeeping.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Podcast, utc_now
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage as ISO-8601 text."""
    return value.isoformat() if value else None


class PodcastRepository:
    """Repository for managing podcast data in the database."""

    UPDATABLE_FIELDS = (
        "feed_url",
        "title",
        "post_count",
        "consecutive_scrape_failures",
        "last_scraped_at",
        "last_success_at",
        "active",
    )

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize podcast repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("podcast_repository")

    def create_podcast(self, podcast: Podcast) -> str:
        """Insert a new podcast.

        Returns:
            Podcast ID

        Raises:
            DatabaseError: If the podcast exists or the insert fails
        """
        try:
            with self.db.get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO podcasts (
                        id, feed_url, title, post_count, consecutive_scrape_failures,
                        last_scraped_at, last_success_at, active, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        podcast.id,
                        podcast.feed_url,
                        podcast.title,
                        podcast.post_count,
                        podcast.consecutive_scrape_failures,
                        to_db_timestamp(podcast.last_scraped_at),
                        to_db_timestamp(podcast.last_success_at),
                        podcast.active,
                        to_db_timestamp(podcast.created_at or utc_now()),
                    ),
                )
                conn.commit()

            self.logger.info(f"Created podcast {podcast.id}: {podcast.feed_url}")
            return podcast.id

        except sqlite3.IntegrityError as e:
            raise DatabaseError(
                f"Podcast {podcast.id} already exists",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
                recoverable=False,
            ) from e
        except sqlite3.Error as e:
            self.logger.error(f"Failed to create podcast {podcast.id}: {e}")
            raise DatabaseError(
                f"Failed to create podcast: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

    def get_podcast(self, podcast_id: str) -> Optional[Podcast]:
        """Get podcast by ID.

        Returns:
            Podcast if found, None otherwise

        Raises:
            DatabaseError: If the query fails
        """
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM podcasts WHERE id = ?", (podcast_id,)
                ).fetchone()
        except sqlite3.Error as e:
            self.logger.error(f"Failed to get podcast {podcast_id}: {e}")
            raise DatabaseError(
                f"Failed to get podcast {podcast_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return self._row_to_podcast(row) if row else None

    def get_all_podcasts(self, active_only: bool = False) -> List[Podcast]:
        """List podcasts ordered by creation time."""
        query = "SELECT * FROM podcasts"
        if active_only:
            query += " WHERE active = 1"
        query += " ORDER BY created_at"

        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(query).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to list podcasts: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return [self._row_to_podcast(row) for row in rows]

    def update_podcast(self, podcast_id: str, **kwargs) -> bool:
        """Update podcast fields.

        Args:
            podcast_id: Podcast ID
            **kwargs: Fields to update; unknown names are ignored

        Returns:
            True if a row was updated
        """
        fields = []
        values = []

        for field, value in kwargs.items():
            if field in self.UPDATABLE_FIELDS:
                fields.append(f"{field} = ?")
                values.append(to_db_timestamp(value) if isinstance(value, datetime) else value)

        if not fields:
            self.logger.warning(f"No valid fields to update for podcast {podcast_id}")
            return False

        values.append(podcast_id)
        query = f"UPDATE podcasts SET {', '.join(fields)} WHERE id = ?"

        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(query, values)
                conn.commit()
        except sqlite3.Error as e:
            self.logger.error(f"Failed to update podcast {podcast_id}: {e}")
            raise DatabaseError(
                f"Failed to update podcast {podcast_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
                query=query,
            ) from e

        if cursor.rowcount == 0:
            self.logger.warning(f"No podcast found with ID {podcast_id}")
            return False
        return True

    def record_scrape_success(
        self, podcast_id: str, post_count: int, scraped_at: Optional[datetime] = None
    ) -> bool:
        """Reset the failure counter and store the episode count."""
        scraped_at = scraped_at or utc_now()
        return self.update_podcast(
            podcast_id,
            consecutive_scrape_failures=0,
            post_count=post_count,
            last_scraped_at=scraped_at,
            last_success_at=scraped_at,
        )

    def record_scrape_failure(
        self, podcast_id: str, scraped_at: Optional[datetime] = None
    ) -> bool:
        """Increment the failure counter by one in a single statement."""
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    UPDATE podcasts
                    SET consecutive_scrape_failures = consecutive_scrape_failures + 1,
                        last_scraped_at = ?
                    WHERE id = ?
                """,
                    (to_db_timestamp(scraped_at or utc_now()), podcast_id),
                )
                conn.commit()
        except sqlite3.Error as e:
            self.logger.error(f"Failed to record scrape failure for {podcast_id}: {e}")
            raise DatabaseError(
                f"Failed to record scrape failure for {podcast_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return cursor.rowcount > 0

    def list_due_podcasts(self, scraped_before: datetime, limit: int = 500) -> List[Podcast]:
        """Active podcasts never scraped or last scraped before the cutoff."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM podcasts
                    WHERE active = 1
                      AND feed_url IS NOT NULL
                      AND (last_scraped_at IS NULL OR last_scraped_at < ?)
                    ORDER BY last_scraped_at IS NOT NULL, last_scraped_at
                    LIMIT ?
                """,
                    (to_db_timestamp(scraped_before), limit),
                ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to list due podcasts: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return [self._row_to_podcast(row) for row in rows]

    def _row_to_podcast(self, row) -> Podcast:
        return Podcast(
            id=row["id"],
            feed_url=row["feed_url"],
            title=row["title"],
            post_count=row["post_count"],
            consecutive_scrape_failures=row["consecutive_scrape_failures"],
            last_scraped_at=row["last_scraped_at"],
            last_success_at=row["last_success_at"],
            active=bool(row["active"]),
            created_at=row["created_at"],
        )
