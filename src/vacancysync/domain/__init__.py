"""
Domain layer package.

Contains pure data models with no I/O dependencies.
"""

from vacancysync.domain.models import (
    CompositeKey,
    FileFingerprint,
    MonthlyReservationRecord,
    PipelineHealth,
    StoredReservationRow,
    days_in_month,
)
from vacancysync.domain.change_types import (
    ChangeKind,
    ChangeRecord,
    FileOutcome,
)
from vacancysync.domain.state_machine import (
    PipelineState,
    can_transition,
    transition,
)

__all__ = [
    "CompositeKey",
    "FileFingerprint",
    "MonthlyReservationRecord",
    "PipelineHealth",
    "StoredReservationRow",
    "days_in_month",
    "ChangeKind",
    "ChangeRecord",
    "FileOutcome",
    "PipelineState",
    "can_transition",
    "transition",
]
