"""
Shared fixtures and fakes for the vacancysync test-suite.

Fakes stand in for the injected collaborators (clock, file system,
remote store, notifier); workbooks are real openpyxl files in tmp_path.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterable

import pytest
from openpyxl import Workbook

from vacancysync.domain.config.settings import (
    AppSettings,
    LineWorksSettings,
    ProofListSettings,
    RemoteStoreSettings,
    WorkbookSettings,
)
from vacancysync.domain.errors import NotificationError, RemoteStoreError
from vacancysync.domain.models import CompositeKey, MonthlyReservationRecord, StoredReservationRow
from vacancysync.infrastructure.filesystem import LocalFileSystem
from vacancysync.infrastructure.resilience.file_lock import FileLockProbe
from vacancysync.infrastructure.resilience.retry import RetryPolicy


# =============================================================================
# Fakes
# =============================================================================


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = datetime(2024, 6, 15, 9, 0, 0)):
        self._now = now
        self._mono = 1000.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._mono += seconds


class LockingFileSystem(LocalFileSystem):
    """Local file system where selected paths behave as exclusively locked."""

    def __init__(self):
        self.locked: set[str] = set()

    def open_binary(self, path: str):
        if path in self.locked:
            raise PermissionError(13, "The process cannot access the file", path)
        return super().open_binary(path)


class FakeStore:
    """In-memory ReservationStore. Seed rows may have any array length."""

    def __init__(self, records: Iterable[MonthlyReservationRecord | StoredReservationRow] = ()):
        self.rows: dict[CompositeKey, MonthlyReservationRecord | StoredReservationRow] = {r.key: r for r in records}
        self.inserts: list[MonthlyReservationRecord] = []
        self.updates: list[MonthlyReservationRecord] = []
        self.upserts: list[list[MonthlyReservationRecord]] = []
        self.fail_keys: set[CompositeKey] = set()
        self.upsert_error_status: int | None = None
        self.close_calls = 0

    @staticmethod
    def _stored(row):
        return StoredReservationRow(*row.key, tuple(row.reservation_counts))

    def fetch(self, key):
        if key in self.fail_keys:
            raise RemoteStoreError.data_operation_error("fake://store", "rejected", 400)
        row = self.rows.get(key)
        return None if row is None else self._stored(row)

    def insert(self, record):
        self.rows[record.key] = record
        self.inserts.append(record)

    def update(self, record):
        self.rows[record.key] = record
        self.updates.append(record)

    def upsert(self, records):
        if self.upsert_error_status is not None:
            raise RemoteStoreError.data_operation_error("fake://store", "rejected", self.upsert_error_status)
        records = list(records)
        self.upserts.append(records)
        for record in records:
            self.rows[record.key] = record

    def fetch_all(self, year=None):
        rows = [self._stored(r) for r in self.rows.values() if year is None or r.year == year]
        return sorted(rows, key=lambda r: r.key)

    def close(self):
        self.close_calls += 1


class FakeNotifier:
    """Notifier that records every message."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.texts: list[str] = []
        self.summaries: list[tuple[str, str | None]] = []
        self.errors: list[tuple[str, int]] = []
        self.alerts: list[tuple[int, str]] = []
        self.closed = False

    def _check(self):
        if self.fail:
            raise NotificationError("channel down")

    def send_text(self, text):
        self._check()
        self.texts.append(text)

    def send_change_summary(self, summary, proof_file=None):
        self._check()
        self.summaries.append((summary, proof_file))

    def send_error(self, message, error_count=1):
        self.errors.append((message, error_count))

    def send_critical_alert(self, error_count, last_error):
        self._check()
        self.alerts.append((error_count, last_error))

    def close(self):
        self.closed = True


# =============================================================================
# Helpers
# =============================================================================


def make_workbook(
    path: Path,
    rows: Iterable[tuple[date, int]],
    sheet_name: str = "予約表",
    extra_sheets: Iterable[str] = (),
) -> Path:
    """Write a workbook with a header row, dates in A and counts in B."""
    path.parent.mkdir(parents=True, exist_ok=True)
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name
    ws.append(["日付", "予約数"])
    for day, count in rows:
        ws.append([day, count])
    for name in extra_sheets:
        wb.create_sheet(name)
    wb.save(path)
    return path


def full_month(year: int, month: int, *head: str) -> tuple[str, ...]:
    """Daily array starting with ``head`` and padded with "0"."""
    record = MonthlyReservationRecord.empty(1, 7, year, month)
    return tuple(head) + record.reservation_counts[len(head):]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def share(tmp_path) -> Path:
    directory = tmp_path / "share"
    directory.mkdir()
    return directory


@pytest.fixture
def file_system() -> LockingFileSystem:
    return LockingFileSystem()


@pytest.fixture
def lock_probe(file_system) -> FileLockProbe:
    return FileLockProbe(file_system, max_attempts=2, backoff=0.0)


@pytest.fixture
def no_wait_retry() -> RetryPolicy:
    return RetryPolicy(retry_count=2, initial_delay=0.0, max_delay=0.0, sleep=lambda _: None)


@pytest.fixture
def workbook_settings(share) -> WorkbookSettings:
    return WorkbookSettings(
        base_path=str(share),
        file_pattern="*.xlsx",
        count_column="B",
        lock_timeout_seconds=0.2,
        max_parallel_files=2,
    )


@pytest.fixture
def app_settings(tmp_path, workbook_settings) -> AppSettings:
    return AppSettings(
        workbook=workbook_settings,
        remote_store=RemoteStoreSettings(url="https://example.supabase.co", key="secret-key"),
        lineworks=LineWorksSettings(bot_id="bot-1", client_id="client", client_secret="s3cret"),
        proof_list=ProofListSettings(output_directory=str(tmp_path / "proofs")),
    )
