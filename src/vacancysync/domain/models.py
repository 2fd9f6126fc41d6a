"""
Core domain models for reservation synchronization.

Pure data definitions with no I/O. Records flow one way per cycle:
Extractor -> Sync Engine -> report/notification.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

CompositeKey = tuple[int, int, int, int]  # (tenant_id, facility_id, year, month)


def days_in_month(year: int, month: int) -> int:
    """Number of calendar days in (year, month), leap years included."""
    return calendar.monthrange(year, month)[1]


@dataclass(frozen=True, slots=True)
class MonthlyReservationRecord:
    """
    Daily reservation counts of one facility for one calendar month.

    Identity is the composite key (tenant, facility, year, month).
    ``reservation_counts`` holds one string slot per day of the month.
    """

    tenant_id: int
    facility_id: int
    year: int
    month: int
    reservation_counts: tuple[str, ...]

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month out of range: {self.month}")
        # Callers may hand in a list; store it immutably
        if not isinstance(self.reservation_counts, tuple):
            object.__setattr__(self, "reservation_counts", tuple(self.reservation_counts))
        expected = days_in_month(self.year, self.month)
        if len(self.reservation_counts) != expected:
            raise ValueError(
                f"reservation_counts for {self.year}-{self.month:02d} must have "
                f"{expected} entries, got {len(self.reservation_counts)}"
            )

    @property
    def key(self) -> CompositeKey:
        return (self.tenant_id, self.facility_id, self.year, self.month)

    @property
    def period_label(self) -> str:
        return f"{self.year}-{self.month:02d}"

    @property
    def period_start(self) -> date:
        return date(self.year, self.month, 1)

    def to_row(self) -> dict[str, Any]:
        """Column mapping of the remote table."""
        return {
            "tenant_id": self.tenant_id,
            "facility_id": self.facility_id,
            "year": self.year,
            "month": self.month,
            "reservation_counts": list(self.reservation_counts),
        }

    @classmethod
    def empty(cls, tenant_id: int, facility_id: int, year: int, month: int) -> MonthlyReservationRecord:
        """Record with every day set to "0"."""
        return cls(tenant_id, facility_id, year, month, ("0",) * days_in_month(year, month))

    def __str__(self) -> str:
        return f"facility {self.facility_id} {self.period_label} (tenant {self.tenant_id})"


@dataclass(frozen=True, slots=True)
class StoredReservationRow:
    """
    A row as the remote store holds it.

    The daily array is taken as stored; rows written by other clients may
    not match the month length and are still compared and overwritten.
    """

    tenant_id: int
    facility_id: int
    year: int
    month: int
    reservation_counts: tuple[str, ...]

    @property
    def key(self) -> CompositeKey:
        return (self.tenant_id, self.facility_id, self.year, self.month)

    @property
    def period_label(self) -> str:
        return f"{self.year}-{self.month:02d}"

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> StoredReservationRow:
        """
        Parse one JSON row.

        Raises:
            KeyError: A key column is missing
            TypeError, ValueError: A key column is not an integer
        """
        counts = row.get("reservation_counts") or []
        return cls(
            tenant_id=int(row["tenant_id"]),
            facility_id=int(row["facility_id"]),
            year=int(row["year"]),
            month=int(row["month"]),
            reservation_counts=tuple("" if c is None else str(c) for c in counts),
        )

    @classmethod
    def of(cls, record: MonthlyReservationRecord) -> StoredReservationRow:
        """Row the store holds after ``record`` was written."""
        return cls(*record.key, record.reservation_counts)


@dataclass(frozen=True, slots=True)
class FileFingerprint:
    """Last observed (modification time, content hash) of a workbook."""

    path: str
    last_modified: float
    content_hash: str


@dataclass
class PipelineHealth:
    """
    In-memory counters of the orchestration loop. Never persisted.

    Only the orchestrator mutates this object.
    """

    consecutive_failures: int = 0
    last_success_at: datetime | None = None
    last_health_check_at: datetime | None = None
    last_failure_notification_at: datetime | None = None
    last_cleanup_date: date | None = None
    total_cycles: int = 0
    history: list[str] = field(default_factory=list)

    def record_success(self, now: datetime) -> int:
        """Reset the failure counter. Returns the count before the reset."""
        previous = self.consecutive_failures
        self.consecutive_failures = 0
        self.last_success_at = now
        self.total_cycles += 1
        return previous

    def record_failure(self, reason: str = "") -> int:
        """Increment the failure counter. Returns the new count."""
        self.consecutive_failures += 1
        self.total_cycles += 1
        if reason:
            self.history.append(reason)
            del self.history[:-20]
        return self.consecutive_failures
