"""
Change detection for workbooks on the shared store.

A workbook is reported as changed when it is new to the fingerprint cache
or its content hash differs from the cached one. An unchanged modification
time short-circuits hashing; the hash is authoritative otherwise.
A cancelled scan forgets the fingerprints it recorded so the files are
reported again by the next scan.
"""

from __future__ import annotations

import hashlib
import logging

from vacancysync.domain.config.settings import WorkbookSettings
from vacancysync.domain.errors import (
    OperationCancelledError,
    ParallelProcessingError,
    WorkbookAccessError,
)
from vacancysync.domain.models import FileFingerprint
from vacancysync.infrastructure.filesystem import FileSystem
from vacancysync.infrastructure.resilience.cancellation import CancellationToken
from vacancysync.infrastructure.resilience.file_lock import FileLockProbe, is_lock_marker
from vacancysync.infrastructure.resilience.parallel import process_all
from vacancysync.infrastructure.resilience.retry import RetryPolicy
from vacancysync.infrastructure.resilience.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 64 * 1024


class ChangeDetector:
    """
    Detect new or modified workbooks.

    Args:
        settings: Workbook location and pattern
        file_system: Accessor for the share
        lock_probe: Probe used to skip files held open elsewhere
        cache: Fingerprint cache keyed by path (created if omitted)
        retry_policy: Wraps the whole scan (3 retries, 1s to 5s by default)
    """

    def __init__(
        self,
        settings: WorkbookSettings,
        file_system: FileSystem,
        lock_probe: FileLockProbe,
        cache: TTLCache[str, FileFingerprint] | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.settings = settings
        self.file_system = file_system
        self.lock_probe = lock_probe
        self.cache = cache if cache is not None else TTLCache("file-fingerprints", 3600.0, 900.0, 1000)
        self.retry_policy = retry_policy or RetryPolicy(3, 1.0, 5.0)

    def detect_changes(
        self,
        base_path: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> bool:
        """Return True if at least one workbook changed since the last scan."""
        return bool(self.scan(base_path, cancel_token))

    def scan(
        self,
        base_path: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[str]:
        """
        Scan the share and return the paths of changed workbooks.

        Raises:
            RetryExhaustedError: Enumeration kept failing
            OperationCancelledError: Cancelled mid-scan
        """
        base = base_path or self.settings.base_path
        changed = self.retry_policy.execute(
            lambda: self._scan_once(base, cancel_token),
            operation_name="change detection",
            cancel_token=cancel_token,
        )
        if changed:
            logger.info("Detected %d changed workbook(s)", len(changed))
        else:
            logger.debug("No workbook changes under %s", base)
        return changed

    def _scan_once(self, base: str, cancel_token: CancellationToken | None) -> list[str]:
        if not base or not self.file_system.is_dir(base):
            raise WorkbookAccessError.base_path_missing(base)
        try:
            files = self.file_system.list_files(base, self.settings.file_pattern)
        except OSError as e:
            raise WorkbookAccessError(f"Failed to enumerate {base}: {e}", path=base) from e

        candidates = [f for f in files if not is_lock_marker(f)]
        logger.debug("Scanning %d workbook(s) under %s", len(candidates), base)

        recorded: list[str] = []
        try:
            outcomes = process_all(
                candidates,
                lambda path: self._check_file(path, recorded),
                self.settings.max_parallel_files,
                operation_name="change detection",
                cancel_token=cancel_token,
            )
        except OperationCancelledError:
            self.invalidate(recorded)
            raise
        except ParallelProcessingError as e:
            for error in e.errors:
                logger.warning("Fingerprint failed: %s", error)
            outcomes = e.results

        return sorted(path for path in outcomes if path)

    def _check_file(self, path: str, recorded: list[str]) -> str | None:
        if not self.lock_probe.is_unlocked(path, self.settings.lock_timeout_seconds):
            logger.debug("Skipping locked workbook: %s", path)
            return None

        modified = self.file_system.modified_time(path)
        cached = self.cache.get(path)
        if cached is not None and cached.last_modified == modified:
            self.cache.set(path, cached)
            return None

        digest = self.compute_hash(path)
        self.cache.set(path, FileFingerprint(path, modified, digest))

        if cached is None:
            logger.info("New workbook detected: %s", path)
            recorded.append(path)
            return path
        if cached.content_hash != digest:
            logger.info("Workbook modified: %s", path)
            recorded.append(path)
            return path
        logger.debug("Timestamp changed but content identical: %s", path)
        return None

    def compute_hash(self, path: str) -> str:
        """SHA-256 of the file content as lowercase hex."""
        sha = hashlib.sha256()
        with self.file_system.open_binary(path) as handle:
            for chunk in iter(lambda: handle.read(HASH_CHUNK_SIZE), b""):
                sha.update(chunk)
        return sha.hexdigest()

    def fingerprint(self, path: str) -> FileFingerprint | None:
        """Cached fingerprint of ``path``, if any."""
        return self.cache.get(path)

    def invalidate(self, paths: list[str]) -> None:
        """Forget fingerprints so the next scan reports ``paths`` again."""
        for path in paths:
            self.cache.remove(path)
        if paths:
            logger.debug("Invalidated %d fingerprint(s) for reprocessing", len(paths))

    def close(self) -> None:
        self.cache.close()
