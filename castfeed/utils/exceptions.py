"""
CastFeed Custom Exceptions
=========================

Exception types for the ingestion worker with error codes, context
information and a retry hint. Pipeline failures use a single tagged
``IngestionError`` whose ``kind`` says which stage failed.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_TRANSACTION = "D004"
    DATABASE_ERROR = "D006"

    # Feed ingestion errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_NOT_FOUND = "F006"

    # Activity feed errors (A001-A099)
    ACTIVITY_PUBLISH_FAILED = "A001"
    ACTIVITY_CIRCUIT_OPEN = "A002"

    # Queue errors (Q001-Q099)
    QUEUE_SUBMIT_FAILED = "Q001"
    QUEUE_NO_HANDLER = "Q002"
    QUEUE_JOB_TIMEOUT = "Q003"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_NOT_FOUND = "V005"


class ErrorKind(str, Enum):
    """Pipeline stage that produced an ingestion failure."""

    VALIDATION = "validation"
    FETCH = "fetch"
    PARSE = "parse"
    PERSISTENCE = "persistence"
    PUBLISH = "publish"
    SCHEDULE = "schedule"


_KIND_ERROR_CODES = {
    ErrorKind.VALIDATION: ErrorCode.VALIDATION_INVALID_FORMAT,
    ErrorKind.FETCH: ErrorCode.FEED_NETWORK_ERROR,
    ErrorKind.PARSE: ErrorCode.FEED_PARSE_ERROR,
    ErrorKind.PERSISTENCE: ErrorCode.DATABASE_ERROR,
    ErrorKind.PUBLISH: ErrorCode.ACTIVITY_PUBLISH_FAILED,
    ErrorKind.SCHEDULE: ErrorCode.QUEUE_SUBMIT_FAILED,
}


class CastFeedError(Exception):
    """Base exception for all CastFeed errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        """Initialize CastFeed error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            recoverable: Whether retrying the operation may succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(CastFeedError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            **kwargs,
        )


class DatabaseError(CastFeedError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        """Initialize database error.

        Args:
            message: Error message
            query: SQL query that caused the error
            **kwargs: Additional arguments for CastFeedError
        """
        context = kwargs.pop("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


class ValidationError(CastFeedError):
    """Input validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            recoverable=kwargs.pop("recoverable", False),
            **kwargs,
        )


class IngestionError(CastFeedError):
    """Failure of one ingestion attempt, tagged with the failing stage.

    The kind decides diagnostics and retry behaviour only; every kind counts
    the same way for scrape health.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        cause: Optional[BaseException] = None,
        podcast_id: Optional[str] = None,
        feed_url: Optional[str] = None,
        **kwargs,
    ):
        """Initialize ingestion error.

        Args:
            kind: Stage that failed
            message: Error message
            cause: Underlying exception, if any
            podcast_id: Podcast being ingested
            feed_url: Feed URL being ingested
            **kwargs: Additional arguments for CastFeedError
        """
        context = kwargs.pop("context", {})
        context["kind"] = kind.value
        if podcast_id:
            context["podcast_id"] = podcast_id
        if feed_url:
            context["feed_url"] = feed_url
        if cause is not None:
            context["cause_type"] = type(cause).__name__

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", _KIND_ERROR_CODES[kind]),
            context=context,
            recoverable=kwargs.pop("recoverable", kind != ErrorKind.VALIDATION),
            **kwargs,
        )
        self.kind = kind
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    @classmethod
    def wrap(
        cls, kind: ErrorKind, exception: BaseException, **kwargs
    ) -> "IngestionError":
        """Tag an arbitrary exception with a stage kind.

        Already tagged errors pass through unchanged. ``DatabaseError`` is
        always a persistence failure, whatever stage raised it. Validation
        errors keep their non-retryable status.
        """
        if isinstance(exception, IngestionError):
            return exception
        if isinstance(exception, DatabaseError):
            kind = ErrorKind.PERSISTENCE
        elif isinstance(exception, ValidationError):
            kind = ErrorKind.VALIDATION
        return cls(kind, str(exception), cause=exception, **kwargs)


def is_retryable_error(exception: BaseException) -> bool:
    """Check if an error is worth retrying.

    Args:
        exception: Exception raised by a job handler

    Returns:
        True if the error is potentially retryable
    """
    if isinstance(exception, CastFeedError):
        return exception.recoverable

    # Untagged failures are treated as transient
    return True
