"""
File-lock probe.

Decides whether a workbook can be read right now. A file another process
holds open exclusively (or an office lock marker) reads as "locked". The
probe never raises and logs at DEBUG only, so locked files stay out of
error reporting.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Iterable

from vacancysync.infrastructure.filesystem import FileSystem
from vacancysync.infrastructure.resilience.parallel import process_all

logger = logging.getLogger(__name__)

LOCK_MARKERS = ("~$",)
LOCK_PREFIXES = (".~lock.",)


def is_lock_marker(path: str) -> bool:
    """Office owner files (``~$Book.xlsm``, ``.~lock.Book.xlsm#``)."""
    name = os.path.basename(path)
    return any(m in name for m in LOCK_MARKERS) or name.startswith(LOCK_PREFIXES)


class FileLockProbe:
    """
    Probe files for readability with short linear backoff.

    Args:
        file_system: Accessor used to open files
        max_attempts: Open attempts per probe
        backoff: Base delay; attempt ``n`` waits ``backoff * n``
    """

    def __init__(self, file_system: FileSystem, max_attempts: int = 3, backoff: float = 0.1) -> None:
        self.file_system = file_system
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff

    def is_unlocked(self, path: str, timeout: float = 1.0) -> bool:
        """
        Check whether ``path`` can be opened for shared reading.

        Args:
            path: File to probe
            timeout: Overall bound on the probe in seconds

        Returns:
            True if readable; False if locked, missing or inaccessible
        """
        if is_lock_marker(path):
            logger.debug("Skipping lock marker file: %s", path)
            return False

        deadline = time.monotonic() + timeout
        for attempt in range(1, self.max_attempts + 1):
            try:
                if not self.file_system.exists(path):
                    logger.debug("File not found while probing lock: %s", path)
                    return False
                with self.file_system.open_binary(path) as handle:
                    handle.read(1)
                return True
            except OSError as e:
                logger.debug("File locked (attempt %d/%d): %s - %s", attempt, self.max_attempts, path, e)

            if attempt == self.max_attempts:
                break
            pause = self.backoff * attempt
            if time.monotonic() + pause > deadline:
                logger.debug("Lock probe timed out after %.2fs: %s", timeout, path)
                break
            time.sleep(pause)

        return False

    def unlocked_files(
        self,
        paths: Iterable[str],
        max_concurrency: int = 4,
        timeout: float = 1.0,
    ) -> list[str]:
        """Probe ``paths`` in parallel and return the readable ones, sorted."""

        def probe(path: str) -> tuple[str, bool]:
            return path, self.is_unlocked(path, timeout)

        outcomes = process_all(
            list(paths), probe, max_concurrency, operation_name="lock probe"
        )
        return sorted(path for path, ok in outcomes if ok)
