"""
CastFeed - Podcast Feed Ingestion Worker
========================================

Background worker that ingests podcast RSS feeds, reconciles episodes with
stored state, publishes new episodes to an activity feed and schedules
enrichment jobs.

Main Components:
- Database: SQLite with connection pooling and schema management
- Configuration: environment variables with Pydantic validation
- Ingestion: feed download and parsing
- Processing: reconciliation, batched fan-out and scrape health
- Jobs: in-process asyncio queue with retry and backoff
"""

__version__ = "1.0.0"
__author__ = "CastFeed Development Team"
__description__ = "Podcast feed ingestion and fan-out worker"

from .config.settings import get_settings
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import CastFeedError, IngestionError, ErrorKind

__all__ = [
    "get_settings",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "CastFeedError",
    "IngestionError",
    "ErrorKind",
]
