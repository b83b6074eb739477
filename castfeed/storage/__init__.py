"""
CastFeed Storage Layer
=====================

Repository pattern implementations for podcasts, episodes and queue jobs.
"""

from .podcast_repository import PodcastRepository
from .episode_repository import EpisodeRepository
from .job_repository import JobRepository

__all__ = [
    "PodcastRepository",
    "EpisodeRepository",
    "JobRepository",
]
