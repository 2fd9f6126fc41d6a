"""
Reservation extraction from facility workbooks.

Each workbook belongs to one facility (matched by filename substring).
Its worksheet lists one row per date with the day's reservation count;
rows of the current year are grouped into one record per month.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable

from vacancysync.domain.change_types import FileOutcome
from vacancysync.domain.config.settings import WorkbookSettings
from vacancysync.domain.errors import WorkbookAccessError
from vacancysync.domain.models import MonthlyReservationRecord, days_in_month
from vacancysync.domain.ports import Clock, SystemClock
from vacancysync.infrastructure.excel.workbook_reader import (
    open_workbook,
    read_date_count_pairs,
    select_worksheet,
    worksheet_names,
)
from vacancysync.infrastructure.filesystem import FileSystem
from vacancysync.infrastructure.resilience.cancellation import CancellationToken
from vacancysync.infrastructure.resilience.file_lock import FileLockProbe, is_lock_marker
from vacancysync.infrastructure.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)

RECHECK_LOCK_TIMEOUT = 0.5


@dataclass
class ExtractionResult:
    """Records of one extraction pass plus the outcome of every file."""

    records: list[MonthlyReservationRecord] = field(default_factory=list)
    outcomes: dict[str, FileOutcome] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes.values() if o is FileOutcome.EXTRACTED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes.values() if o is FileOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes.values() if o.is_skip)

    def __len__(self) -> int:
        return len(self.records)


def build_monthly_records(
    pairs: Iterable[tuple[date, int]],
    tenant_id: int,
    facility_id: int,
    year: int,
) -> list[MonthlyReservationRecord]:
    """
    Group (date, count) pairs of ``year`` into per-month records.

    Days without a row are "0"; a later row for the same day wins.
    """
    months: dict[int, list[str]] = {}
    for day, count in pairs:
        if day.year != year:
            continue
        slots = months.get(day.month)
        if slots is None:
            slots = months[day.month] = ["0"] * days_in_month(year, day.month)
        slots[day.day - 1] = str(count)

    return [
        MonthlyReservationRecord(tenant_id, facility_id, year, month, tuple(slots))
        for month, slots in sorted(months.items())
    ]


class ReservationExtractor:
    """
    Extract monthly reservation records from every readable workbook.

    Workbook opens are serialized behind one lock; lock probing runs in
    parallel beforehand.
    """

    def __init__(
        self,
        settings: WorkbookSettings,
        file_system: FileSystem,
        lock_probe: FileLockProbe,
        clock: Clock | None = None,
        facility_map: dict[str, int] | None = None,
        retry_policy: RetryPolicy | None = None,
        workbook_opener: Callable[[str], Any] = open_workbook,
    ) -> None:
        self.settings = settings
        self.file_system = file_system
        self.lock_probe = lock_probe
        self.clock = clock or SystemClock()
        self.facility_map = dict(facility_map if facility_map is not None else settings.facility_map)
        self.retry_policy = retry_policy or RetryPolicy(3, 1.0, 5.0)
        self._open = workbook_opener
        self._workbook_lock = threading.Lock()
        self._active_workbook: Any = None

    def facility_id_for(self, filename: str) -> int | None:
        """First mapping key contained in ``filename`` wins."""
        name = os.path.basename(filename)
        for fragment, facility_id in self.facility_map.items():
            if fragment in name:
                return facility_id
        return None

    def _enumerate(self) -> list[str]:
        base = self.settings.base_path

        def list_workbooks() -> list[str]:
            if not base or not self.file_system.is_dir(base):
                raise WorkbookAccessError.base_path_missing(base)
            try:
                return self.file_system.list_files(base, self.settings.file_pattern)
            except OSError as e:
                raise WorkbookAccessError(f"Failed to enumerate {base}: {e}", path=base) from e

        files = self.retry_policy.execute(list_workbooks, operation_name="workbook enumeration")
        return [f for f in files if not is_lock_marker(f)]

    def extract(self, cancel_token: CancellationToken | None = None) -> ExtractionResult:
        """
        Extract records from all unlocked workbooks.

        Per-file failures are logged and recorded as ``FAILED``; the batch
        continues.
        """
        result = ExtractionResult()
        files = self._enumerate()
        unlocked = set(
            self.lock_probe.unlocked_files(
                files,
                self.settings.max_parallel_files,
                self.settings.lock_timeout_seconds,
            )
        )
        year = self.clock.now().year

        for path in files:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if path not in unlocked:
                logger.debug("Skipping locked workbook: %s", path)
                result.outcomes[path] = FileOutcome.SKIPPED_LOCKED
                continue
            try:
                outcome, records = self._extract_file(path, year)
            except Exception as e:  # pylint: disable=broad-except
                logger.error("Failed to extract %s: %s", path, e)
                outcome, records = FileOutcome.FAILED, []
            result.outcomes[path] = outcome
            result.records.extend(records)

        logger.info(
            "Extraction finished: %d record(s), %d file(s) ok, %d failed, %d skipped",
            len(result.records),
            result.succeeded,
            result.failed,
            result.skipped,
        )
        return result

    def _extract_file(self, path: str, year: int) -> tuple[FileOutcome, list[MonthlyReservationRecord]]:
        facility_id = self.facility_id_for(path)
        if facility_id is None:
            logger.warning("No facility mapping for workbook, skipping: %s", os.path.basename(path))
            return FileOutcome.SKIPPED_UNMAPPED, []

        self._workbook_lock.acquire()
        try:
            if not self.lock_probe.is_unlocked(path, RECHECK_LOCK_TIMEOUT):
                logger.debug("Workbook locked before open, skipping: %s", path)
                return FileOutcome.SKIPPED_LOCKED, []

            workbook = self._open(path)
            self._active_workbook = workbook
            worksheet, exact = select_worksheet(workbook, self.settings.sheet_name)
            if worksheet is None:
                logger.warning("Workbook has no worksheets: %s", path)
                return FileOutcome.SKIPPED_NO_SHEET, []
            if not exact:
                logger.warning(
                    "Worksheet '%s' not found in %s, using '%s' (available: %s)",
                    self.settings.sheet_name,
                    os.path.basename(path),
                    worksheet.title,
                    ", ".join(workbook.sheetnames),
                )

            pairs = read_date_count_pairs(worksheet, self.settings.date_column, self.settings.count_column)
            records = build_monthly_records(pairs, self.settings.tenant_id, facility_id, year)
            logger.debug("Extracted %d month(s) for facility %d from %s", len(records), facility_id, path)
            return FileOutcome.EXTRACTED, records
        finally:
            self._close_active()
            self._release_lock()

    def _close_active(self) -> None:
        workbook, self._active_workbook = self._active_workbook, None
        if workbook is None:
            return
        try:
            workbook.close()
        except Exception as e:  # pylint: disable=broad-except
            logger.warning("Failed to close workbook: %s", e)

    def _release_lock(self) -> None:
        try:
            self._workbook_lock.release()
        except RuntimeError:
            logger.debug("Workbook lock already released")

    def release_resources(self) -> None:
        """Force-close any open workbook and free the workbook lock."""
        self._close_active()
        if self._workbook_lock.locked():
            self._release_lock()
            logger.info("Workbook lock force-released")

    def list_worksheets(self) -> dict[str, list[str]]:
        """Worksheet names of every workbook under the base path."""
        sheets: dict[str, list[str]] = {}
        for path in self._enumerate():
            try:
                sheets[path] = worksheet_names(path)
            except Exception as e:  # pylint: disable=broad-except
                logger.warning("Cannot read worksheet names of %s: %s", path, e)
                sheets[path] = []
        return sheets
