"""
Change types and per-file outcomes for the sync engine.

This module defines:
- ChangeKind: classification of a record-level difference
- ChangeRecord: one line of the proof list
- FileOutcome: explicit status of a workbook after extraction
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class ChangeKind(str, Enum):
    """Kind of change written to the remote store."""

    NEW = "New"  # (none) -> record
    CHANGED = "Changed"  # record -> different record
    DELETED = "Deleted"  # record -> (none), reported only

    @property
    def is_write(self) -> bool:
        """Check if this kind results in a remote write."""
        return self in (ChangeKind.NEW, ChangeKind.CHANGED)


class FileOutcome(str, Enum):
    """Result of processing one workbook during extraction."""

    EXTRACTED = "extracted"
    SKIPPED_LOCKED = "skipped_locked"
    SKIPPED_UNMAPPED = "skipped_unmapped"
    SKIPPED_NO_SHEET = "skipped_no_sheet"
    FAILED = "failed"

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("skipped")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ChangeRecord:
    # pylint: disable=too-many-instance-attributes
    """
    A single audited change.

    Attributes:
        kind: New / Changed / Deleted
        facility_id: Facility identifier as shown in the proof list
        date: First day of the affected month
        time_slot: Period label ``YYYY-MM``
        old_value: Previous daily-array length (if applicable)
        new_value: Current daily-array length (if applicable)
        updated_at: When the change was applied
    """

    kind: ChangeKind
    facility_id: str
    date: date
    time_slot: str
    old_value: int | None = None
    new_value: int | None = None
    updated_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def new(
        cls,
        facility_id: str,
        period_start: date,
        time_slot: str,
        new_value: int,
        updated_at: datetime | None = None,
    ) -> ChangeRecord:
        return cls(
            ChangeKind.NEW,
            facility_id,
            period_start,
            time_slot,
            None,
            new_value,
            updated_at or datetime.now(),
        )

    @classmethod
    def changed(
        cls,
        facility_id: str,
        period_start: date,
        time_slot: str,
        old_value: int,
        new_value: int,
        updated_at: datetime | None = None,
    ) -> ChangeRecord:
        return cls(
            ChangeKind.CHANGED,
            facility_id,
            period_start,
            time_slot,
            old_value,
            new_value,
            updated_at or datetime.now(),
        )

    @classmethod
    def deleted(
        cls,
        facility_id: str,
        period_start: date,
        time_slot: str,
        old_value: int,
        updated_at: datetime | None = None,
    ) -> ChangeRecord:
        return cls(
            ChangeKind.DELETED,
            facility_id,
            period_start,
            time_slot,
            old_value,
            None,
            updated_at or datetime.now(),
        )
