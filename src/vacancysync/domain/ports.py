"""
Ports (structural interfaces) the application layer depends on.

Infrastructure adapters implement these; tests substitute fakes.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Iterable, Protocol, runtime_checkable

from vacancysync.domain.models import CompositeKey, MonthlyReservationRecord, StoredReservationRow


@runtime_checkable
class Clock(Protocol):
    """Wall clock plus a monotonic source for durations."""

    def now(self) -> datetime: ...

    def monotonic(self) -> float: ...


class SystemClock:
    """Clock backed by the host system."""

    def now(self) -> datetime:
        return datetime.now()

    def monotonic(self) -> float:
        return time.monotonic()


@runtime_checkable
class ReservationStore(Protocol):
    """Remote relational store keyed by the composite key."""

    def fetch(self, key: CompositeKey) -> StoredReservationRow | None: ...

    def insert(self, record: MonthlyReservationRecord) -> None: ...

    def update(self, record: MonthlyReservationRecord) -> None: ...

    def upsert(self, records: Iterable[MonthlyReservationRecord]) -> None: ...

    def fetch_all(self, year: int | None = None) -> list[StoredReservationRow]: ...

    def close(self) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    """Chat notification channel."""

    def send_text(self, text: str) -> None: ...

    def send_change_summary(self, summary: str, proof_file: str | None = None) -> None: ...

    def send_error(self, message: str, error_count: int = 1) -> None: ...

    def send_critical_alert(self, error_count: int, last_error: str) -> None: ...

    def close(self) -> None: ...
