"""
CastFeed Retry Logic and Circuit Breaker
=======================================

Backoff delay calculation used by the job queue between delivery attempts,
and the circuit breaker that guards calls to the activity-feed service.
"""

import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..utils.logging import get_logger_for_component


class RetryStrategy(Enum):
    """Different retry strategy types."""
    FIXED_DELAY = "fixed_delay"              # Fixed interval between retries
    EXPONENTIAL_BACKOFF = "exponential"     # Exponentially increasing delays
    LINEAR_BACKOFF = "linear"               # Linearly increasing delays
    JITTERED_EXPONENTIAL = "jittered"       # Exponential with random jitter
    FIBONACCI = "fibonacci"                 # Fibonacci sequence delays


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"                       # Normal operation
    OPEN = "open"                           # Failing, requests rejected
    HALF_OPEN = "half_open"                 # Testing if recovery is possible


@dataclass
class RetryConfig:
    """Configuration for retry and circuit breaker behavior."""
    max_attempts: int = 3
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF
    base_delay: float = 1.0                 # Base delay in seconds
    max_delay: float = 60.0                 # Maximum delay in seconds
    jitter: bool = False                    # Add +/-25% randomization
    exponential_base: float = 2.0

    circuit_failure_threshold: int = 5      # Failures before circuit opens
    circuit_recovery_timeout: float = 30.0  # Seconds before trying half-open
    circuit_success_threshold: int = 1      # Successes needed to close circuit


def _fibonacci(n: int) -> int:
    if n <= 1:
        return n
    a, b = 0, 1
    for _ in range(2, n + 1):
        a, b = b, a + b
    return b


_DELAY_CALCULATORS: Dict[RetryStrategy, Callable[[int, RetryConfig], float]] = {
    RetryStrategy.FIXED_DELAY: lambda attempt, config: config.base_delay,
    RetryStrategy.EXPONENTIAL_BACKOFF: lambda attempt, config: (
        config.base_delay * (config.exponential_base ** (attempt - 1))
    ),
    RetryStrategy.LINEAR_BACKOFF: lambda attempt, config: config.base_delay * attempt,
    RetryStrategy.JITTERED_EXPONENTIAL: lambda attempt, config: random.uniform(
        0, config.base_delay * (config.exponential_base ** (attempt - 1))
    ),
    RetryStrategy.FIBONACCI: lambda attempt, config: config.base_delay * _fibonacci(attempt),
}


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before the retry that follows failed attempt number ``attempt``.

    Args:
        attempt: 1-based number of the attempt that just failed
        config: Retry configuration

    Returns:
        Delay in seconds, capped at ``config.max_delay``
    """
    calculator = _DELAY_CALCULATORS.get(
        config.strategy, _DELAY_CALCULATORS[RetryStrategy.EXPONENTIAL_BACKOFF]
    )
    delay = min(calculator(max(attempt, 1), config), config.max_delay)

    if config.jitter and config.strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
        jitter_amount = delay * 0.25
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


class CircuitBreaker:
    """Circuit breaker implementation for fault tolerance."""

    def __init__(self, config: RetryConfig, name: str = "default"):
        self.config = config
        self.name = name
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.logger = get_logger_for_component('circuit_breaker')

    def can_execute(self) -> bool:
        """Check if execution is allowed based on circuit state."""
        if self.state == CircuitState.OPEN:
            elapsed = time.monotonic() - (self.last_failure_time or 0.0)
            if elapsed >= self.config.circuit_recovery_timeout:
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
                self.logger.info(f"Circuit breaker {self.name} transitioning to HALF_OPEN")
                return True
            return False

        return True

    def record_success(self) -> None:
        """Record a successful operation."""
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.circuit_success_threshold:
                self.state = CircuitState.CLOSED
                self.failure_count = 0
                self.logger.info(f"Circuit breaker {self.name} closed after successful recovery")
        elif self.state == CircuitState.CLOSED:
            self.failure_count = 0

    def record_failure(self) -> None:
        """Record a failed operation."""
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == CircuitState.CLOSED:
            if self.failure_count >= self.config.circuit_failure_threshold:
                self.state = CircuitState.OPEN
                self.logger.warning(
                    f"Circuit breaker {self.name} opened after {self.failure_count} failures"
                )
        elif self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            self.logger.warning(f"Circuit breaker {self.name} reopened during half-open test")

    def get_state_info(self) -> Dict[str, Any]:
        """Get current circuit breaker state information."""
        return {
            'name': self.name,
            'state': self.state.value,
            'failure_count': self.failure_count,
            'success_count': self.success_count,
        }
