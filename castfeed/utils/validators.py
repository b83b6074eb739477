"""
CastFeed Input Validators
========================

Validation utilities for job payloads, feed URLs and episode links.
"""

import ipaddress
from urllib.parse import urlparse, urlunparse
from typing import Any, Optional

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and sanitization utilities."""

    ALLOWED_SCHEMES = {'http', 'https'}

    BLOCKED_HOSTNAMES = {'localhost', 'localhost.localdomain'}

    @classmethod
    def validate_feed_url(cls, url: Any) -> str:
        """Validate and normalize a podcast feed URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is missing or invalid
        """
        if not url or not isinstance(url, str) or not url.strip():
            raise ValidationError(
                "URL is required and must be a non-empty string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url"
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {e}",
                field_name="url"
            ) from e

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be one of {', '.join(sorted(cls.ALLOWED_SCHEMES))}",
                field_name="url"
            )

        if not parsed.netloc or not parsed.hostname:
            raise ValidationError(
                "URL must include a hostname",
                field_name="url"
            )

        if cls._is_disallowed_host(parsed.hostname):
            raise ValidationError(
                "URL points to a disallowed host",
                field_name="url"
            )

        # Hostnames are case-insensitive, paths are not
        return urlunparse(parsed._replace(
            scheme=parsed.scheme.lower(),
            netloc=parsed.netloc.lower(),
            fragment=''
        ))

    @classmethod
    def _is_disallowed_host(cls, hostname: str) -> bool:
        """Loopback names and non-public IP literals are not fetched."""
        hostname = hostname.lower().rstrip('.')
        if hostname in cls.BLOCKED_HOSTNAMES or hostname.endswith('.localhost'):
            return True

        try:
            address = ipaddress.ip_address(hostname)
        except ValueError:
            return False
        return not address.is_global

    @classmethod
    def normalize_link(cls, url: Optional[str]) -> Optional[str]:
        """Return a cleaned episode link, or None when it is not an http(s) URL."""
        if not url or not isinstance(url, str):
            return None

        url = url.strip()
        parsed = urlparse(url)
        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES or not parsed.netloc:
            return None
        return url


def validate_podcast_id(podcast_id: Any) -> str:
    """Validate the podcast identifier carried by a job.

    Raises:
        ValidationError: If the identifier is missing or blank
    """
    if podcast_id is None or not str(podcast_id).strip():
        raise ValidationError(
            "Podcast identifier is required",
            error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
            field_name="podcast"
        )
    return str(podcast_id).strip()
