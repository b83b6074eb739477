"""
CastFeed Data Models
===================

Pydantic models for podcasts, episodes, queue payloads and activity-feed
entries. These correspond to the database schema and carry validation and
serialization helpers.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple
import uuid

from pydantic import BaseModel, Field, field_validator


ACTIVITY_VERB = "podcast_episode"

# Fields compared when deciding whether a stored episode needs a refresh
EPISODE_METADATA_FIELDS: Tuple[str, ...] = (
    "guid",
    "title",
    "link",
    "enclosure_url",
    "description",
    "image_url",
    "duration",
    "published_at",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Podcast(BaseModel):
    """Podcast feed source with scrape-health bookkeeping."""
    id: str = Field(..., min_length=1, description="Podcast identifier")
    feed_url: Optional[str] = Field(default=None, description="RSS feed URL")
    title: Optional[str] = Field(default=None, max_length=500, description="Podcast title")
    post_count: int = Field(default=0, ge=0, description="Stored episode count after last success")
    consecutive_scrape_failures: int = Field(default=0, ge=0, description="Failed attempts since last success")
    last_scraped_at: Optional[datetime] = Field(default=None, description="Last ingestion attempt")
    last_success_at: Optional[datetime] = Field(default=None, description="Last successful ingestion")
    active: bool = Field(default=True, description="Whether podcast is scheduled for scraping")
    created_at: Optional[datetime] = Field(default_factory=utc_now)

    def is_healthy(self) -> bool:
        """Check if the podcast is scraping without repeated failures."""
        return self.active and self.consecutive_scrape_failures < 5

    def __str__(self) -> str:
        return f"Podcast({self.title or self.id})"


class Episode(BaseModel):
    """Podcast episode parsed from a feed entry."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique episode ID")
    podcast_id: str = Field(..., min_length=1, description="Owning podcast ID")
    unique_key: str = Field(..., min_length=1, description="guid, else link, else enclosure URL")
    guid: Optional[str] = Field(default=None)
    title: Optional[str] = Field(default=None)
    link: Optional[str] = Field(default=None, description="Episode web page")
    enclosure_url: Optional[str] = Field(default=None, description="Episode audio URL")
    description: Optional[str] = Field(default=None, description="Description with HTML stripped")
    image_url: Optional[str] = Field(default=None)
    duration: Optional[str] = Field(default=None)
    published_at: Optional[datetime] = Field(default=None)
    created_at: Optional[datetime] = Field(default_factory=utc_now)
    activity_sent_at: Optional[datetime] = Field(default=None, description="Activity acknowledged by the feed service")
    enrichment_queued_at: Optional[datetime] = Field(default=None, description="Enrichment job accepted by the queue")
    fanout_pending: bool = Field(default=True, description="Created by ingestion and owed an activity and an enrichment job")
    preview_title: Optional[str] = Field(default=None, description="og:title of the episode page")
    preview_image_url: Optional[str] = Field(default=None, description="og:image of the episode page")
    enriched_at: Optional[datetime] = Field(default=None, description="Page preview stored")

    @field_validator('description')
    @classmethod
    def validate_description_length(cls, v):
        """Cap description size to keep rows small."""
        if v and len(v) > 50000:
            return v[:50000] + "... [truncated]"
        return v

    def metadata(self) -> Dict[str, Any]:
        """Feed-derived fields used for change detection."""
        return {name: getattr(self, name) for name in EPISODE_METADATA_FIELDS}

    def metadata_differs(self, other: "Episode") -> bool:
        return self.metadata() != other.metadata()

    @property
    def foreign_id(self) -> str:
        return f"episodes:{self.id}"

    def __str__(self) -> str:
        return f"Episode({(self.title or self.unique_key)[:50]})"


class Activity(BaseModel):
    """Activity-feed entry announcing one episode."""
    actor: str
    verb: str = ACTIVITY_VERB
    object: str
    foreign_id: str
    time: datetime

    @classmethod
    def for_episode(cls, episode: Episode) -> "Activity":
        """Build the activity for an episode of its podcast."""
        return cls(
            actor=f"podcast:{episode.podcast_id}",
            object=episode.foreign_id,
            foreign_id=episode.foreign_id,
            time=episode.published_at or episode.created_at or utc_now(),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for the activity-feed REST API."""
        return self.model_dump(mode="json")


class PodcastJob(BaseModel):
    """Queue payload asking for one podcast to be ingested.

    Both fields are optional here. The orchestrator validates them and records
    a malformed payload as a failed scrape of the named podcast.
    """
    podcast: Optional[str] = Field(default=None, description="Podcast identifier")
    url: Optional[str] = Field(default=None, description="Feed URL to ingest")

    @field_validator('podcast', 'url', mode='before')
    @classmethod
    def coerce_to_text(cls, v):
        if v is None:
            return None
        return str(v)

    @classmethod
    def from_payload(cls, data: Any) -> "PodcastJob":
        """Build a job from a queue payload (dict or PodcastJob)."""
        if isinstance(data, PodcastJob):
            return data
        if isinstance(data, dict):
            return cls(podcast=data.get("podcast"), url=data.get("url"))
        return cls()


class EnrichmentJob(BaseModel):
    """Payload for the page-preview enrichment queue."""
    type: str = "episode"
    url: str

    @classmethod
    def from_payload(cls, data: Any) -> "EnrichmentJob":
        if isinstance(data, EnrichmentJob):
            return data
        return cls.model_validate(data)

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "url": self.url}
