"""
Tests for the resilience primitives: retry, cancellation, TTL cache,
bounded parallel executor and file-lock probe.
"""

import threading
import time

import pytest

from vacancysync.domain.errors import (
    OperationCancelledError,
    ParallelProcessingError,
    RetryExhaustedError,
    WorkbookAccessError,
    WorkbookFormatError,
)
from vacancysync.infrastructure.resilience.cancellation import CancellationToken
from vacancysync.infrastructure.resilience.file_lock import FileLockProbe, is_lock_marker
from vacancysync.infrastructure.resilience.parallel import process_all
from vacancysync.infrastructure.resilience.retry import (
    RetryPolicy,
    backoff_delays,
    execute_with_retry,
    wait_until,
)
from vacancysync.infrastructure.resilience.ttl_cache import TTLCache


class Flaky:
    """Callable failing ``failures`` times before succeeding."""

    def __init__(self, failures, error=None):
        self.failures = failures
        self.error = error or WorkbookAccessError("share hiccup")
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


# =============================================================================
# Backoff retry
# =============================================================================


class TestExecuteWithRetry:
    def test_success_after_transient_failures(self):
        op = Flaky(2)
        sleeps = []
        assert execute_with_retry(op, 3, 0.1, 1.0, sleep=sleeps.append) == "ok"
        assert op.calls == 3
        assert sleeps == [0.1, 0.2]

    @pytest.mark.parametrize("retry_count", [0, 1, 3, 5])
    def test_at_most_n_plus_one_calls(self, retry_count):
        op = Flaky(100)
        with pytest.raises(RetryExhaustedError) as exc_info:
            execute_with_retry(op, retry_count, 0.01, 0.02, sleep=lambda _: None)
        assert op.calls == retry_count + 1
        assert exc_info.value.attempts == retry_count + 1
        assert exc_info.value.__cause__ is op.error

    def test_delay_never_exceeds_cap(self):
        sleeps = []
        with pytest.raises(RetryExhaustedError):
            execute_with_retry(Flaky(100), 8, 0.5, 2.0, sleep=sleeps.append)
        assert sleeps == [0.5, 1.0, 2.0, 2.0, 2.0, 2.0, 2.0, 2.0]
        assert max(sleeps) <= 2.0

    def test_backoff_delays_helper_matches(self):
        assert backoff_delays(4, 1.0, 5.0) == [1.0, 2.0, 4.0, 5.0]

    def test_non_retryable_error_propagates_immediately(self):
        op = Flaky(5, WorkbookFormatError("bad sheet", "x.xlsm"))
        with pytest.raises(WorkbookFormatError):
            execute_with_retry(op, 3, 0.0, 0.0, sleep=lambda _: None)
        assert op.calls == 1

    def test_retry_is_logged_as_warning(self, caplog):
        with caplog.at_level("WARNING"):
            execute_with_retry(Flaky(1), 2, 0.0, 0.0, operation_name="listing", sleep=lambda _: None)
        assert any("listing failed (attempt 1/3)" in r.getMessage() for r in caplog.records)

    def test_cancelled_token_stops_retrying(self):
        token = CancellationToken()
        token.cancel("shutdown")
        op = Flaky(1)
        with pytest.raises(OperationCancelledError):
            execute_with_retry(op, 3, 0.0, 0.0, cancel_token=token)
        assert op.calls == 0

    def test_negative_retry_count_rejected(self):
        with pytest.raises(ValueError):
            execute_with_retry(lambda: None, -1)

    def test_policy_object(self):
        sleeps = []
        policy = RetryPolicy(2, 0.3, 0.4, sleep=sleeps.append)
        op = Flaky(2)
        assert policy.execute(op, "policy op") == "ok"
        assert sleeps == [0.3, 0.4]


class TestWaitUntil:
    def test_condition_met(self):
        state = {"n": 0}

        def condition():
            state["n"] += 1
            return state["n"] >= 3

        assert wait_until(condition, timeout=1.0, interval=0.001)

    def test_timeout(self):
        assert not wait_until(lambda: False, timeout=0.05, interval=0.01)


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellationToken:
    def test_parent_cancels_child(self):
        parent = CancellationToken()
        child = CancellationToken.linked(parent)
        parent.cancel("shutdown")
        assert child.cancelled
        assert child.reason == "shutdown"
        assert not child.timed_out

    def test_child_timeout_does_not_cancel_parent(self):
        parent = CancellationToken()
        child = CancellationToken.linked(parent, timeout=0.01)
        time.sleep(0.03)
        assert child.cancelled
        assert child.timed_out
        assert not parent.cancelled

    def test_linking_to_cancelled_parent(self):
        parent = CancellationToken()
        parent.cancel("already")
        assert CancellationToken.linked(parent).cancelled

    def test_wait_returns_early_on_cancel(self):
        token = CancellationToken()
        threading.Timer(0.02, token.cancel).start()
        started = time.monotonic()
        assert token.wait(5.0)
        assert time.monotonic() - started < 2.0

    def test_wait_without_cancel(self):
        assert not CancellationToken().wait(0.01)

    def test_raise_if_cancelled(self):
        token = CancellationToken(timeout=0.0)
        with pytest.raises(OperationCancelledError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.timed_out


# =============================================================================
# TTL cache
# =============================================================================


class ManualClock:
    def __init__(self):
        self.value = 0.0

    def __call__(self):
        return self.value


class TestTTLCache:
    def test_get_set_and_expiry(self):
        clock = ManualClock()
        cache = TTLCache("t", default_ttl=10, clock=clock)
        cache.set("a", 1)
        assert cache.get("a") == 1
        clock.value = 10.0
        assert cache.get("a") is None
        assert "a" not in cache

    def test_per_entry_ttl(self):
        clock = ManualClock()
        cache = TTLCache("t", default_ttl=10, clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2)
        clock.value = 5
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_eviction_keeps_recently_accessed(self):
        clock = ManualClock()
        cache = TTLCache("t", default_ttl=100, max_items=3, clock=clock)
        for i, key in enumerate("abc"):
            clock.value = float(i)
            cache.set(key, i)
        clock.value = 5.0
        cache.get("a")
        clock.value = 6.0
        cache.set("d", 3)
        assert len(cache) == 3
        assert "b" not in cache
        assert all(k in cache for k in "acd")
        assert cache.stats.evictions == 1

    def test_sweep_removes_expired(self):
        clock = ManualClock()
        cache = TTLCache("t", default_ttl=1, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2, ttl=50)
        clock.value = 2
        assert cache.sweep() == 1
        assert len(cache) == 1

    def test_remove_and_clear(self):
        cache = TTLCache("t")
        cache.set("a", 1)
        assert cache.remove("a")
        assert not cache.remove("a")
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0

    def test_stats(self):
        cache = TTLCache("t")
        cache.get("missing")
        cache.set("a", 1)
        cache.get("a")
        stats = cache.stats
        assert (stats.hits, stats.misses, stats.puts) == (1, 1, 1)
        assert stats.get_hit_rate() == 0.5

    def test_get_or_add_invokes_factory_once_under_contention(self):
        cache = TTLCache("t")
        calls = []
        barrier = threading.Barrier(8)

        def factory():
            calls.append(1)
            time.sleep(0.02)
            return "value"

        def worker():
            barrier.wait()
            assert cache.get_or_add("k", factory) == "value"

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(calls) == 1

    def test_get_or_add_caches_none(self):
        cache = TTLCache("t")
        calls = []

        def factory():
            calls.append(1)

        assert cache.get_or_add("k", factory) is None
        assert cache.get_or_add("k", factory) is None
        assert len(calls) == 1
        assert cache.stats.hits == 1

    def test_sweeper_thread_starts_and_stops(self):
        clock = ManualClock()
        cache = TTLCache("t", default_ttl=1, cleanup_interval=0.01, clock=clock)
        cache.set("a", 1)
        clock.value = 5
        cache.start_sweeper()
        assert wait_until(lambda: len(cache) == 0, timeout=2.0, interval=0.01)
        cache.close()
        assert cache._sweeper is None


# =============================================================================
# Bounded parallel executor
# =============================================================================


class TestProcessAll:
    def test_all_items_processed(self):
        assert sorted(process_all(range(20), lambda x: x * 2, 4)) == [x * 2 for x in range(20)]

    def test_empty_input(self):
        assert process_all([], lambda x: x) == []

    def test_one_failure_does_not_stop_siblings(self):
        def worker(x):
            if x == 3:
                raise ValueError("bad item")
            return x

        with pytest.raises(ParallelProcessingError) as exc_info:
            process_all(range(10), worker, 3, operation_name="batch")
        error = exc_info.value
        assert len(error.errors) == 1
        assert sorted(error.results) == [0, 1, 2, 4, 5, 6, 7, 8, 9]

    def test_concurrency_is_bounded(self):
        lock = threading.Lock()
        state = {"active": 0, "peak": 0}

        def worker(_):
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.01)
            with lock:
                state["active"] -= 1

        process_all(range(16), worker, 2)
        assert state["peak"] <= 2

    def test_cancellation_stops_launching(self):
        token = CancellationToken()
        started = []

        def worker(x):
            started.append(x)
            token.cancel("stop")
            return x

        with pytest.raises(OperationCancelledError):
            process_all(range(50), worker, 1, cancel_token=token)
        assert len(started) < 50

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            process_all([1], lambda x: x, 0)


# =============================================================================
# File-lock probe
# =============================================================================


class TestFileLockProbe:
    def test_lock_markers(self):
        assert is_lock_marker("/share/~$ふじみの.xlsm")
        assert is_lock_marker("/share/.~lock.ふじみの.xlsm#")
        assert not is_lock_marker("/share/ふじみの.xlsm")

    def test_unlocked_file(self, share, file_system, lock_probe):
        path = share / "a.xlsx"
        path.write_bytes(b"data")
        assert lock_probe.is_unlocked(str(path))

    def test_locked_file(self, share, file_system, lock_probe):
        path = share / "a.xlsx"
        path.write_bytes(b"data")
        file_system.locked.add(str(path))
        assert not lock_probe.is_unlocked(str(path))

    def test_missing_file(self, share, lock_probe):
        assert not lock_probe.is_unlocked(str(share / "nope.xlsx"))

    def test_marker_rejected_without_io(self, share, file_system):
        path = share / "~$a.xlsx"
        path.write_bytes(b"owner")
        assert not FileLockProbe(file_system).is_unlocked(str(path))

    def test_locked_file_logs_nothing_above_debug(self, share, file_system, lock_probe, caplog):
        path = share / "a.xlsx"
        path.write_bytes(b"data")
        file_system.locked.add(str(path))
        with caplog.at_level("DEBUG"):
            lock_probe.is_unlocked(str(path))
        assert all(r.levelname == "DEBUG" for r in caplog.records)

    def test_unlocked_files_filters_and_sorts(self, share, file_system, lock_probe):
        paths = []
        for name in ("c.xlsx", "a.xlsx", "b.xlsx"):
            p = share / name
            p.write_bytes(b"x")
            paths.append(str(p))
        file_system.locked.add(str(share / "b.xlsx"))
        assert lock_probe.unlocked_files(paths) == [str(share / "a.xlsx"), str(share / "c.xlsx")]
