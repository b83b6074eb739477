#!/usr/bin/env python3
"""
Error Handling Tests for CastFeed
================================

Tests for tagged ingestion errors, retry classification, backoff delays
and the circuit breaker.
"""

import sqlite3
from unittest.mock import patch

import pytest

from castfeed.recovery.retry_logic import (
    RetryConfig, RetryStrategy, CircuitBreaker, CircuitState, calculate_delay
)
from castfeed.utils.exceptions import (
    CastFeedError, DatabaseError, ValidationError, IngestionError,
    ErrorKind, ErrorCode, is_retryable_error
)


class TestIngestionError:
    """Test the tagged ingestion error."""

    def test_kind_maps_to_error_code(self):
        error = IngestionError(ErrorKind.PARSE, "not a feed")
        assert error.kind == ErrorKind.PARSE
        assert error.error_code == ErrorCode.FEED_PARSE_ERROR
        assert str(error) == "[F003] not a feed"

    def test_validation_is_not_retryable(self):
        assert not IngestionError(ErrorKind.VALIDATION, "bad url").recoverable

    @pytest.mark.parametrize("kind", [
        ErrorKind.FETCH, ErrorKind.PARSE, ErrorKind.PERSISTENCE,
        ErrorKind.PUBLISH, ErrorKind.SCHEDULE,
    ])
    def test_other_kinds_are_retryable(self, kind):
        assert IngestionError(kind, "boom").recoverable

    def test_cause_is_chained(self):
        cause = ConnectionError("reset by peer")
        error = IngestionError(ErrorKind.FETCH, "fetch failed", cause=cause)
        assert error.cause is cause
        assert error.__cause__ is cause
        assert error.context["cause_type"] == "ConnectionError"

    def test_to_dict_includes_context(self):
        error = IngestionError(
            ErrorKind.FETCH, "timeout", podcast_id="p1", feed_url="https://example.com/rss"
        )
        data = error.to_dict()
        assert data["error_type"] == "IngestionError"
        assert data["error_code"] == ErrorCode.FEED_NETWORK_ERROR.value
        assert data["context"]["kind"] == "fetch"
        assert data["context"]["podcast_id"] == "p1"
        assert data["recoverable"] is True


class TestIngestionErrorWrap:
    """Test tagging of arbitrary exceptions."""

    def test_wrap_untagged_exception_uses_stage_kind(self):
        cause = RuntimeError("unexpected")
        error = IngestionError.wrap(ErrorKind.PUBLISH, cause)
        assert error.kind == ErrorKind.PUBLISH
        assert error.cause is cause

    def test_wrap_passes_tagged_error_through(self):
        original = IngestionError(ErrorKind.FETCH, "HTTP 500")
        assert IngestionError.wrap(ErrorKind.PERSISTENCE, original) is original

    def test_database_error_is_always_persistence(self):
        db_error = DatabaseError("locked", error_code=ErrorCode.DATABASE_ERROR)
        error = IngestionError.wrap(ErrorKind.PUBLISH, db_error)
        assert error.kind == ErrorKind.PERSISTENCE
        assert error.recoverable

    def test_validation_error_stays_non_retryable(self):
        error = IngestionError.wrap(ErrorKind.FETCH, ValidationError("bad url", field_name="url"))
        assert error.kind == ErrorKind.VALIDATION
        assert not error.recoverable


class TestRetryClassification:
    """Test which errors the queue retries."""

    def test_recoverable_flag_decides_for_castfeed_errors(self):
        assert is_retryable_error(CastFeedError("x", recoverable=True))
        assert not is_retryable_error(CastFeedError("x", recoverable=False))

    def test_database_errors_default_to_retryable(self):
        assert is_retryable_error(DatabaseError("busy"))

    def test_untagged_errors_are_retried(self):
        assert is_retryable_error(sqlite3.OperationalError("database is locked"))
        assert is_retryable_error(KeyError("x"))


class TestBackoffDelay:
    """Test delay calculation between attempts."""

    def test_fixed_delay(self):
        config = RetryConfig(strategy=RetryStrategy.FIXED_DELAY, base_delay=2.0)
        assert [calculate_delay(n, config) for n in (1, 2, 3)] == [2.0, 2.0, 2.0]

    def test_exponential_delay(self):
        config = RetryConfig(strategy=RetryStrategy.EXPONENTIAL_BACKOFF, base_delay=1.0)
        assert [calculate_delay(n, config) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_linear_delay(self):
        config = RetryConfig(strategy=RetryStrategy.LINEAR_BACKOFF, base_delay=1.5)
        assert [calculate_delay(n, config) for n in (1, 2, 3)] == [1.5, 3.0, 4.5]

    def test_fibonacci_delay(self):
        config = RetryConfig(strategy=RetryStrategy.FIBONACCI, base_delay=1.0)
        assert [calculate_delay(n, config) for n in (1, 2, 3, 4, 5)] == [1.0, 1.0, 2.0, 3.0, 5.0]

    def test_delay_is_capped(self):
        config = RetryConfig(base_delay=10.0, max_delay=25.0)
        assert calculate_delay(5, config) == 25.0

    def test_zero_base_delay(self):
        assert calculate_delay(3, RetryConfig(base_delay=0.0)) == 0.0

    def test_jittered_delay_stays_in_range(self):
        config = RetryConfig(strategy=RetryStrategy.JITTERED_EXPONENTIAL, base_delay=4.0)
        for _ in range(20):
            assert 0.0 <= calculate_delay(2, config) <= 8.0


class TestCircuitBreaker:
    """Test circuit breaker state transitions."""

    @pytest.fixture
    def breaker(self):
        return CircuitBreaker(
            RetryConfig(circuit_failure_threshold=3, circuit_recovery_timeout=30.0),
            name="test",
        )

    def test_opens_after_threshold(self, breaker):
        for _ in range(3):
            assert breaker.can_execute()
            breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert not breaker.can_execute()

    def test_success_resets_failure_count(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_after_recovery_timeout(self, breaker):
        with patch("castfeed.recovery.retry_logic.time.monotonic", return_value=100.0):
            for _ in range(3):
                breaker.record_failure()

        with patch("castfeed.recovery.retry_logic.time.monotonic", return_value=131.0):
            assert breaker.can_execute()
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_failure_in_half_open_reopens(self, breaker):
        with patch("castfeed.recovery.retry_logic.time.monotonic", return_value=100.0):
            for _ in range(3):
                breaker.record_failure()

        with patch("castfeed.recovery.retry_logic.time.monotonic", return_value=200.0):
            assert breaker.can_execute()
            breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
