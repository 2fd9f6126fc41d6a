"""
Bounded parallel executor.

Runs a worker over a collection with at most ``max_concurrency`` items in
flight. One item's failure never stops its siblings; failures are raised
together once every item has finished.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Iterable, TypeVar

from vacancysync.domain.errors import OperationCancelledError, ParallelProcessingError
from vacancysync.infrastructure.resilience.cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

PROGRESS_EVERY = 100


def process_all(
    items: Iterable[T],
    worker: Callable[[T], R],
    max_concurrency: int = 4,
    *,
    operation_name: str = "parallel batch",
    cancel_token: CancellationToken | None = None,
) -> list[R]:
    """
    Apply ``worker`` to every item with bounded concurrency.

    Args:
        items: Inputs; consumed lazily as slots free up
        worker: Callable applied to each item
        max_concurrency: Upper bound on items in flight
        operation_name: Label for progress logs and errors
        cancel_token: Stops launching new items once cancelled

    Returns:
        Results of successful items, in completion order

    Raises:
        ParallelProcessingError: One or more items failed (partial results attached)
        OperationCancelledError: Cancelled before every item was launched
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be >= 1")

    pending = list(items)
    total = len(pending)
    if total == 0:
        return []

    results: list[R] = []
    errors: list[BaseException] = []
    completed = 0
    launched = 0
    in_flight: set[Future] = set()

    with ThreadPoolExecutor(max_workers=max_concurrency, thread_name_prefix="vs-worker") as executor:
        while launched < total or in_flight:
            while (
                launched < total
                and len(in_flight) < max_concurrency
                and not (cancel_token is not None and cancel_token.cancelled)
            ):
                in_flight.add(executor.submit(worker, pending[launched]))
                launched += 1

            if not in_flight:
                break

            done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in done:
                completed += 1
                try:
                    results.append(future.result())
                except Exception as e:  # pylint: disable=broad-except
                    errors.append(e)
                    logger.debug("%s: item failed: %s", operation_name, e)
                if completed % PROGRESS_EVERY == 0 or completed == total:
                    logger.debug("%s: %d/%d completed", operation_name, completed, total)

    if launched < total and cancel_token is not None:
        logger.info(
            "%s cancelled after %d/%d items (%s)",
            operation_name,
            completed,
            total,
            cancel_token.reason,
        )
        raise OperationCancelledError(cancel_token.reason, timed_out=cancel_token.timed_out)

    if errors:
        raise ParallelProcessingError(operation_name, errors, results)
    return results
