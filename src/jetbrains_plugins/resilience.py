"""Resilience patterns for plugin crawl tasks.

Key Components:
    Deadline: Per-attempt time budget that bounds every blocking call
    RetryPolicy: Exponential backoff for transient failures
    SupervisedTask: A unit of work run under a deadline and retry policy

Worker threads cannot be interrupted from outside, so a task's timeout is
enforced cooperatively: each blocking operation (HTTP request, subprocess)
is given at most the time left on the attempt's Deadline, and the task
checks the deadline between steps. An expired deadline raises
TaskTimeoutError, which the retry policy treats like any other transient
failure.

Retry Timeline (default config, no jitter):
    - Attempt 1: Immediate
    - Attempt 2: 0.25s delay
    - Attempt 3: 0.5s delay
    - Attempt 4: 1s delay

Example:
    >>> policy = RetryPolicy(RetryConfig(max_attempts=3))
    >>> task = SupervisedTask("my-plugin", process, timeout_seconds=60, policy=policy)
    >>> task.run()  # raises TaskFailedError once attempts are exhausted
"""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable
from typing import Generic, TypeVar

import httpx
import structlog

from jetbrains_plugins.errors import (
    CrawlAbortedError,
    GeneratorError,
    TaskFailedError,
    TaskTimeoutError,
)
from jetbrains_plugins.schemas import RetryConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Deadline:
    """Time budget for one attempt of a task.

    Example:
        >>> deadline = Deadline(30.0)
        >>> client.get(url, timeout=deadline.bound(600.0))
    """

    def __init__(
        self,
        timeout_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Start a deadline that expires ``timeout_seconds`` from now.

        Args:
            timeout_seconds: Length of the budget in seconds.
            clock: Monotonic clock, injectable for tests.
        """
        self._timeout = timeout_seconds
        self._clock = clock
        self._expires_at = clock() + timeout_seconds

    @property
    def timeout_seconds(self) -> float:
        """Return the total length of the budget."""
        return self._timeout

    def remaining(self) -> float:
        """Return seconds left, never negative."""
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        """Check whether the budget is used up."""
        return self.remaining() <= 0.0

    def check(self) -> None:
        """Raise TaskTimeoutError if the budget is used up."""
        if self.expired:
            raise TaskTimeoutError(self._timeout)

    def bound(self, timeout: float) -> float:
        """Clamp an operation timeout to the time left.

        Args:
            timeout: The operation's own timeout in seconds.

        Returns:
            The smaller of ``timeout`` and the remaining budget.

        Raises:
            TaskTimeoutError: If the budget is already used up.
        """
        self.check()
        return min(timeout, self.remaining())


class RetryPolicy:
    """Retry policy with exponential backoff and optional jitter.

    GeneratorError subclasses decide for themselves through their
    ``retryable`` attribute; other exceptions are retried when they are
    network errors or timeouts.

    Attributes:
        config: RetryConfig with max_attempts, delays, and jitter settings.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        retryable_exceptions: tuple[type[BaseException], ...] | None = None,
    ) -> None:
        """Initialize RetryPolicy.

        Args:
            config: Retry configuration. Uses defaults if None.
            retryable_exceptions: Non-GeneratorError exception types to retry on.
                Defaults to (httpx.HTTPError, ConnectionError, TimeoutError).
        """
        self._config = config or RetryConfig()
        self._retryable_exceptions = retryable_exceptions or (
            httpx.HTTPError,
            ConnectionError,
            TimeoutError,
        )

    @property
    def config(self) -> RetryConfig:
        """Return the retry configuration."""
        return self._config

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay before the retry following ``attempt``.

        Uses exponential backoff: delay = initial * (multiplier ^ attempt),
        capped at max_delay_ms. Jitter adds up to ±25%.

        Args:
            attempt: Attempt that just failed (0-indexed).

        Returns:
            Delay in seconds.
        """
        delay_ms = min(
            self._config.initial_delay_ms * (self._config.backoff_multiplier**attempt),
            self._config.max_delay_ms,
        )
        if self._config.jitter:
            jitter_range = delay_ms * 0.25
            delay_ms += random.uniform(-jitter_range, jitter_range)
        return max(0.0, delay_ms / 1000.0)

    def should_retry(self, exception: BaseException) -> bool:
        """Check if an exception is retryable."""
        if isinstance(exception, GeneratorError):
            return exception.retryable
        return isinstance(exception, self._retryable_exceptions)


class SupervisedTask(Generic[T]):
    """A unit of work run under a per-attempt deadline and a retry policy.

    Each attempt gets a fresh Deadline. A retryable failure (including a
    deadline overrun) is logged and retried after the backoff delay; a
    non-retryable failure or the last failed attempt raises TaskFailedError.
    Setting the shared ``abort`` event stops the task before its next
    attempt and interrupts a backoff wait.

    Example:
        >>> def work(deadline: Deadline) -> None:
        ...     fetch(timeout=deadline.bound(600))
        >>> SupervisedTask("plugin-id", work, timeout_seconds=1200).run()
    """

    def __init__(
        self,
        name: str,
        work: Callable[[Deadline], T],
        *,
        timeout_seconds: float,
        policy: RetryPolicy | None = None,
        abort: threading.Event | None = None,
    ) -> None:
        """Initialize SupervisedTask.

        Args:
            name: Task name used in logs and errors.
            work: Callable doing one attempt, given that attempt's deadline.
            timeout_seconds: Deadline length for each attempt.
            policy: Retry policy. Uses defaults if None.
            abort: Event signalling that the whole run is aborting.
        """
        self._name = name
        self._work = work
        self._timeout = timeout_seconds
        self._policy = policy or RetryPolicy()
        self._abort = abort

    @property
    def name(self) -> str:
        """Return the task name."""
        return self._name

    def _aborted(self) -> bool:
        return self._abort is not None and self._abort.is_set()

    def _wait(self, delay: float) -> None:
        if self._abort is None:
            time.sleep(delay)
        elif self._abort.wait(delay):
            raise CrawlAbortedError(self._name)

    def run(self) -> T:
        """Run the work until it succeeds or fails terminally.

        Returns:
            The work's result.

        Raises:
            TaskFailedError: If the work failed non-retryably or on every attempt.
            CrawlAbortedError: If the run was aborted by another task.
        """
        max_attempts = self._policy.config.max_attempts
        log = logger.bind(task=self._name)

        for attempt in range(max_attempts):
            if self._aborted():
                raise CrawlAbortedError(self._name)

            try:
                return self._work(Deadline(self._timeout))
            except CrawlAbortedError:
                raise
            except Exception as e:
                if not self._policy.should_retry(e):
                    log.error(
                        "task_failed",
                        attempt=attempt + 1,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise TaskFailedError(self._name, attempt + 1, e) from e

                if attempt + 1 >= max_attempts:
                    log.error(
                        "retry_exhausted",
                        attempts=max_attempts,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise TaskFailedError(self._name, max_attempts, e) from e

                delay = self._policy.calculate_delay(attempt)
                log.warning(
                    "task_attempt_failed",
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    delay_seconds=delay,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self._wait(delay)

        # max_attempts >= 1, so the loop always returns or raises
        raise RuntimeError("Retry loop exited without result")


__all__ = [
    "Deadline",
    "RetryPolicy",
    "SupervisedTask",
]
