"""
Resilience primitives: retry, TTL cache, bounded parallelism, lock probe
and cooperative cancellation.
"""

from vacancysync.infrastructure.resilience.cancellation import CancellationToken
from vacancysync.infrastructure.resilience.file_lock import FileLockProbe, is_lock_marker
from vacancysync.infrastructure.resilience.parallel import process_all
from vacancysync.infrastructure.resilience.retry import (
    RetryPolicy,
    backoff_delays,
    execute_with_retry,
    wait_until,
)
from vacancysync.infrastructure.resilience.ttl_cache import CacheStats, TTLCache

__all__ = [
    "CancellationToken",
    "FileLockProbe",
    "is_lock_marker",
    "process_all",
    "RetryPolicy",
    "backoff_delays",
    "execute_with_retry",
    "wait_until",
    "CacheStats",
    "TTLCache",
]
