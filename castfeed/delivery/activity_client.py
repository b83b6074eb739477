"""
Activity Feed Client
====================

REST client for the downstream activity-feed service. One ``add_activities``
call writes one batch to one feed. A circuit breaker stops calls while the
service keeps failing; every failure surfaces as a ``PUBLISH`` error.
"""

import asyncio
import ssl
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
import certifi

from ..config.settings import ActivitySettings, get_settings
from ..database.models import Activity
from ..recovery.retry_logic import CircuitBreaker, RetryConfig
from ..utils.exceptions import IngestionError, ErrorKind, ErrorCode
from ..utils.logging import get_logger_for_component


def podcast_feed_key(podcast_id: str, feed_group: str = "podcast") -> str:
    """Key of the feed that receives a podcast's episode activities."""
    return f"{feed_group}:{podcast_id}"


class ActivityFeedClient:
    """Async client for writing activities to feeds."""

    def __init__(
        self,
        settings: Optional[ActivitySettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize activity client.

        Args:
            settings: Activity service settings (default from config)
            session: Shared aiohttp session; created on first use when omitted
        """
        self.settings = settings or get_settings().activity
        self._session = session
        self._owns_session = session is None
        self.logger = get_logger_for_component("activity_client")
        self.circuit_breaker = CircuitBreaker(
            RetryConfig(
                circuit_failure_threshold=self.settings.circuit_failure_threshold,
                circuit_recovery_timeout=self.settings.circuit_recovery_timeout,
            ),
            name="activity_feed",
        )
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    async def __aenter__(self) -> "ActivityFeedClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.settings.api_token:
                headers["Authorization"] = self.settings.api_token
            if self.settings.api_key:
                headers["X-Api-Key"] = self.settings.api_key

            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(ssl=self.ssl_context),
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout),
                headers=headers,
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    def feed_url(self, feed_key: str) -> str:
        group, _, feed_id = feed_key.partition(":")
        if not group or not feed_id:
            raise ValueError(f"Feed key must look like 'group:id', got {feed_key!r}")
        return f"{self.settings.base_url.rstrip('/')}/feed/{group}/{feed_id}/"

    async def add_activities(
        self, feed_key: str, activities: Sequence[Activity]
    ) -> List[Dict[str, Any]]:
        """Write one batch of activities to a feed.

        Args:
            feed_key: Target feed, ``"<group>:<id>"``
            activities: At most ``batch_size`` activities

        Returns:
            Activities echoed by the service

        Raises:
            IngestionError: ``PUBLISH`` on any failure, including an open circuit
        """
        if len(activities) > self.settings.batch_size:
            raise IngestionError(
                ErrorKind.PUBLISH,
                f"Batch of {len(activities)} exceeds limit {self.settings.batch_size}",
                recoverable=False,
            )

        if not self.circuit_breaker.can_execute():
            raise IngestionError(
                ErrorKind.PUBLISH,
                "Activity feed circuit is open",
                error_code=ErrorCode.ACTIVITY_CIRCUIT_OPEN,
                context={"feed_key": feed_key, "circuit": self.circuit_breaker.get_state_info()},
            )

        url = self.feed_url(feed_key)
        payload = {"activities": [activity.to_payload() for activity in activities]}

        try:
            session = await self._get_session()
            async with session.post(url, json=payload) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise IngestionError(
                        ErrorKind.PUBLISH,
                        f"Activity feed returned HTTP {response.status}: {body[:200]}",
                        context={"feed_key": feed_key, "status": response.status},
                    )
                data = await response.json(content_type=None)

        except IngestionError:
            self.circuit_breaker.record_failure()
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.circuit_breaker.record_failure()
            raise IngestionError(
                ErrorKind.PUBLISH,
                f"Activity feed request failed: {e}",
                cause=e,
                context={"feed_key": feed_key},
            ) from e

        self.circuit_breaker.record_success()
        self.logger.debug(f"Wrote {len(activities)} activities to {feed_key}")
        return (data or {}).get("activities", []) if isinstance(data, dict) else []
