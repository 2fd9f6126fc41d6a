"""
Record diff classification.

Pure functions; no I/O. The composite key identifies a record, the daily
array decides whether it changed. Stored arrays of any length compare
element-wise against the extracted one.
"""

from __future__ import annotations

from datetime import datetime

from vacancysync.domain.change_types import ChangeKind, ChangeRecord
from vacancysync.domain.models import MonthlyReservationRecord, StoredReservationRow


def classify(
    existing: StoredReservationRow | None,
    incoming: MonthlyReservationRecord,
) -> ChangeKind | None:
    """
    Classify how ``incoming`` differs from the stored record.

    Returns:
        NEW when nothing is stored, CHANGED when any day differs,
        None when the arrays are identical
    """
    if existing is None:
        return ChangeKind.NEW
    if tuple(existing.reservation_counts) != tuple(incoming.reservation_counts):
        return ChangeKind.CHANGED
    return None


def build_change(
    kind: ChangeKind,
    record: MonthlyReservationRecord,
    existing: StoredReservationRow | None,
    now: datetime,
) -> ChangeRecord:
    """Proof-list line for an applied change (array lengths as values)."""
    facility = str(record.facility_id)
    new_len = len(record.reservation_counts)
    if kind is ChangeKind.NEW:
        return ChangeRecord.new(facility, record.period_start, record.period_label, new_len, now)
    if kind is ChangeKind.CHANGED:
        old_len = len(existing.reservation_counts) if existing is not None else 0
        return ChangeRecord.changed(
            facility, record.period_start, record.period_label, old_len, new_len, now
        )
    return ChangeRecord.deleted(facility, record.period_start, record.period_label, new_len, now)
