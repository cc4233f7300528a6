"""Exponential backoff retry."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from loguru import logger

from tickersync.core.exceptions import TransientFetchError

T = TypeVar("T")

AsyncSleep = Callable[[float], Awaitable[None]]
SyncSleep = Callable[[float], None]


class RetryState(Enum):
    """Retry state."""

    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RetryConfig:
    """Retry configuration.

    ``max_retries`` counts retries after the first attempt, so a call is
    attempted at most ``max_retries + 1`` times.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    retry_on_exceptions: list[type[BaseException]] = field(default_factory=lambda: [TransientFetchError])

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


class ExponentialBackoffRetry:
    """Runs a callable, retrying retryable failures with exponential backoff."""

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        sleep: AsyncSleep | None = None,
        sync_sleep: SyncSleep | None = None,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep or asyncio.sleep
        self._sync_sleep = sync_sleep or time.sleep
        self.attempt_count = 0
        self.total_delay = 0.0
        self.state = RetryState.READY
        self.last_exception: BaseException | None = None

    def _should_retry(self, exc: BaseException) -> bool:
        return any(isinstance(exc, exc_type) for exc_type in self.config.retry_on_exceptions)

    def calculate_delay(self, retry_number: int, retry_after: float | None = None) -> float:
        """Delay before retry ``retry_number`` (1-based).

        ``base_delay * exponential_base ** (retry_number - 1)`` capped at
        ``max_delay``. A longer server ``retry_after`` replaces it uncapped.
        """
        if retry_number < 1:
            return 0.0
        backoff = self.config.base_delay * (self.config.exponential_base ** (retry_number - 1))
        delay = min(backoff, self.config.max_delay)
        if retry_after is not None and retry_after > delay:
            return retry_after
        return delay

    def _begin(self) -> None:
        self.state = RetryState.RUNNING
        self.attempt_count = 0
        self.total_delay = 0.0
        self.last_exception = None

    def _next_delay(self, exc: BaseException) -> float | None:
        """Record a failure; return the delay before the next attempt or ``None`` to give up."""
        self.last_exception = exc
        if not self._should_retry(exc) or self.attempt_count >= self.config.max_attempts:
            self.state = RetryState.FAILED
            return None
        delay = self.calculate_delay(self.attempt_count, getattr(exc, "retry_after", None))
        logger.debug(
            "Attempt {} failed, retrying in {:.2f}s: {}",
            self.attempt_count,
            delay,
            exc,
        )
        self.total_delay += delay
        return delay

    async def execute(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``func`` until it succeeds or the retry budget is spent.

        Raises:
            Exception: the last exception once retries are exhausted or when it is not retryable
        """
        self._begin()
        while True:
            self.attempt_count += 1
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                delay = self._next_delay(exc)
                if delay is None:
                    raise
                await self._sleep(delay)
                continue
            self.state = RetryState.COMPLETED
            return result

    def execute_sync(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Blocking counterpart of :meth:`execute`."""
        self._begin()
        while True:
            self.attempt_count += 1
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                delay = self._next_delay(exc)
                if delay is None:
                    raise
                self._sync_sleep(delay)
                continue
            self.state = RetryState.COMPLETED
            return result

    def get_stats(self) -> dict[str, Any]:
        """Return retry statistics."""
        return {
            "attempts": self.attempt_count,
            "max_attempts": self.config.max_attempts,
            "total_delay": self.total_delay,
            "state": self.state.value,
            "last_exception": str(self.last_exception) if self.last_exception else None,
        }


__all__ = ["ExponentialBackoffRetry", "RetryConfig", "RetryState"]
