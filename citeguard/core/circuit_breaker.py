"""Circuit breaker for verdict provider calls.

Implements the Circuit Breaker pattern so a failing LLM endpoint stops
receiving traffic from every panel agent at once, and gives callers a
bounded retry loop with exponential backoff.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from .exceptions import CiteguardError


class CircuitState(Enum):
    """Circuit breaker states.

    CLOSED: Normal operation, calls pass through
    OPEN: Service failing, calls rejected immediately
    HALF_OPEN: Testing recovery, limited calls allowed
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(CiteguardError):
    """Raised when a call is rejected because the circuit is open."""

    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CircuitBreaker:
    """Circuit breaker for fault tolerance.

    Opens after ``failure_threshold`` consecutive failures, then lets a single
    trial call through (HALF_OPEN) once ``timeout`` seconds have passed.

    Example:
        >>> breaker = CircuitBreaker(failure_threshold=5, timeout=60.0)
        >>> result = await breaker.call(provider.complete, prompt)

    Attributes:
        failure_threshold: Number of failures before opening circuit
        timeout: Seconds before testing recovery (HALF_OPEN)
    """

    failure_threshold: int = 5
    timeout: float = 60.0  # Seconds

    state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    failure_count: int = field(default=0, init=False)
    last_failure_time: datetime | None = field(default=None, init=False)

    async def call(self, func: Callable, *args: Any, **kwargs: Any) -> Any:
        """Execute function with circuit breaker protection.

        Args:
            func: Async function to call
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Function result if successful

        Raises:
            CircuitBreakerOpenError: If the circuit is open
            Exception: Whatever func raises
        """
        self._before_call()

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    async def call_with_retries(
        self,
        func: Callable,
        *args: Any,
        retries: int = 3,
        backoff_base: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 10.0,
        retry_if: Callable[[BaseException], bool] | None = None,
        jitter: bool = True,
        **kwargs: Any,
    ) -> Any:
        """Execute function with circuit breaker protection and retries.

        Args:
            func: Async function to call
            *args: Positional args for func
            retries: Max retries on failure (default 3)
            backoff_base: Initial delay in seconds (default 1.0)
            backoff_factor: Exponential multiplier (default 2.0)
            max_delay: Upper bound for a single delay (default 10.0)
            retry_if: Predicate deciding whether an error is worth retrying;
                non-retryable errors are raised immediately
            jitter: Whether to add jitter to delays (default True)
            **kwargs: Keyword args for func

        Returns:
            Result of func

        Raises:
            CircuitBreakerOpenError: If the circuit is open
            Exception: Last error once retries are exhausted
        """
        delay = backoff_base
        attempts = retries + 1  # initial attempt + retries

        for attempt in range(attempts):
            self._before_call()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                self._on_failure()
                retryable = retry_if(e) if retry_if is not None else True
                if not retryable or attempt >= attempts - 1:
                    raise
                await self._sleep(min(delay, max_delay), jitter=jitter)
                delay *= backoff_factor
                continue

            self._on_success()
            return result

        raise CircuitBreakerOpenError("Retry loop exited without a result")  # pragma: no cover

    def _before_call(self) -> None:
        """Fail fast while OPEN, or move to HALF_OPEN once the timeout elapsed."""
        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self.state = CircuitState.HALF_OPEN
            else:
                raise CircuitBreakerOpenError("Circuit breaker open - service unavailable")

    async def _sleep(self, delay: float, jitter: bool = True) -> None:
        """Async sleep helper with optional jitter."""
        actual = delay * (1.0 + random.random()) if jitter else delay
        await asyncio.sleep(actual)

    def _on_success(self) -> None:
        """Handle successful call - reset state to CLOSED."""
        self.failure_count = 0
        self.state = CircuitState.CLOSED

    def _on_failure(self) -> None:
        """Handle failed call - increment count and possibly OPEN circuit."""
        self.failure_count += 1
        self.last_failure_time = _utcnow()

        if self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN

    def _should_attempt_reset(self) -> bool:
        """Check if timeout elapsed to test recovery.

        Returns:
            True if enough time has passed to try HALF_OPEN state
        """
        if not self.last_failure_time:
            return True

        elapsed = _utcnow() - self.last_failure_time
        return elapsed >= timedelta(seconds=self.timeout)
