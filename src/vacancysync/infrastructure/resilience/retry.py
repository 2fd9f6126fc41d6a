"""
Exponential backoff retry.

``execute_with_retry`` calls an operation at most ``retry_count + 1``
times. The delay doubles after each failure and is capped at
``max_delay``. Errors flagged ``retryable=False`` propagate immediately.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from vacancysync.domain.config.settings import RetrySettings
from vacancysync.domain.errors import (
    OperationCancelledError,
    RetryExhaustedError,
    VacancySyncError,
)
from vacancysync.infrastructure.resilience.cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, VacancySyncError):
        return error.retryable
    return True


def backoff_delays(retry_count: int, initial_delay: float, max_delay: float) -> list[float]:
    """Delays slept between attempts, in order."""
    delays = []
    delay = initial_delay
    for _ in range(retry_count):
        delays.append(min(delay, max_delay))
        delay = min(delay * 2, max_delay)
    return delays


def execute_with_retry(
    operation: Callable[[], T],
    retry_count: int = 3,
    initial_delay: float = 0.2,
    max_delay: float = 5.0,
    *,
    operation_name: str = "operation",
    cancel_token: CancellationToken | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation`` with exponential backoff.

    Args:
        operation: Zero-argument callable
        retry_count: Number of retries after the first attempt
        initial_delay: Seconds before the first retry
        max_delay: Upper bound for any single delay
        operation_name: Label used in log records and errors
        cancel_token: When given, delays wait on the token instead of ``sleep``
        sleep: Sleep function (injectable for tests)

    Returns:
        The operation's result

    Raises:
        RetryExhaustedError: All attempts failed (last error chained)
        OperationCancelledError: Cancelled between attempts
        VacancySyncError: Non-retryable domain error, unchanged
    """
    if retry_count < 0:
        raise ValueError("retry_count must be >= 0")

    attempts = retry_count + 1
    delay = initial_delay
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            return operation()
        except OperationCancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-except
            if not _is_retryable(e):
                logger.debug("%s failed with non-retryable error: %s", operation_name, e)
                raise
            last_error = e
            if attempt == attempts:
                break
            wait = min(delay, max_delay)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                operation_name,
                attempt,
                attempts,
                wait,
                e,
            )
            if cancel_token is not None:
                if cancel_token.wait(wait):
                    raise OperationCancelledError(
                        cancel_token.reason, timed_out=cancel_token.timed_out
                    ) from e
            else:
                sleep(wait)
            delay = min(delay * 2, max_delay)

    assert last_error is not None
    logger.error("%s failed after %d attempts: %s", operation_name, attempts, last_error)
    raise RetryExhaustedError(operation_name, attempts, last_error) from last_error


class RetryPolicy:
    """Reusable retry configuration."""

    def __init__(
        self,
        retry_count: int = 3,
        initial_delay: float = 0.2,
        max_delay: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.retry_count = retry_count
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: RetrySettings, **kwargs) -> RetryPolicy:
        return cls(
            settings.retry_count,
            settings.initial_delay_seconds,
            settings.max_delay_seconds,
            **kwargs,
        )

    def execute(
        self,
        operation: Callable[[], T],
        operation_name: str = "operation",
        cancel_token: CancellationToken | None = None,
    ) -> T:
        return execute_with_retry(
            operation,
            self.retry_count,
            self.initial_delay,
            self.max_delay,
            operation_name=operation_name,
            cancel_token=cancel_token,
            sleep=self._sleep,
        )

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(retry_count={self.retry_count}, "
            f"initial_delay={self.initial_delay}, max_delay={self.max_delay})"
        )


def wait_until(
    condition: Callable[[], bool],
    timeout: float,
    interval: float = 0.1,
    cancel_token: CancellationToken | None = None,
) -> bool:
    """
    Poll ``condition`` until it holds or ``timeout`` passes.

    Returns:
        True if the condition held in time
    """
    deadline = time.monotonic() + timeout
    while True:
        if condition():
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        pause = min(interval, remaining)
        if cancel_token is not None:
            if cancel_token.wait(pause):
                return False
        else:
            time.sleep(pause)
