"""
Reservation sync service.

Applies extracted records to the remote store in fixed-size batches:
fetch by composite key, insert when absent, update when the daily array
differs, skip when identical. Each applied write yields one ChangeRecord.
Per-record failures are logged and counted; the batch continues.
``push_all`` skips the diff and upserts whole batches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Iterator, Sequence

from vacancysync.application.sync.differ import build_change, classify
from vacancysync.domain.change_types import ChangeKind, ChangeRecord
from vacancysync.domain.config.settings import RemoteStoreSettings
from vacancysync.domain.errors import OperationCancelledError
from vacancysync.domain.models import CompositeKey, MonthlyReservationRecord
from vacancysync.domain.ports import Clock, ReservationStore, SystemClock
from vacancysync.infrastructure.resilience.cancellation import CancellationToken
from vacancysync.infrastructure.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """
    Outcome of one sync run.

    Iterating yields the applied changes.
    """

    changes: list[ChangeRecord] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed_keys: list[CompositeKey] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.inserted + self.updated + self.unchanged + len(self.failed_keys)

    @property
    def all_failed(self) -> bool:
        return self.attempted > 0 and len(self.failed_keys) == self.attempted

    def __iter__(self) -> Iterator[ChangeRecord]:
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)


def batched(records: Sequence[MonthlyReservationRecord], size: int) -> Iterator[Sequence[MonthlyReservationRecord]]:
    for start in range(0, len(records), size):
        yield records[start:start + size]


class ReservationSyncService:
    """Diff extracted records against the store and apply the differences."""

    def __init__(
        self,
        store: ReservationStore,
        settings: RemoteStoreSettings,
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock or SystemClock()
        self.retry_policy = retry_policy or RetryPolicy(3, 1.0, 5.0)

    def sync(
        self,
        records: Sequence[MonthlyReservationRecord],
        cancel_token: CancellationToken | None = None,
    ) -> SyncResult:
        """
        Apply ``records`` to the store.

        Args:
            records: Extracted monthly records
            cancel_token: Checked between records

        Returns:
            SyncResult with the applied changes and counters
        """
        result = SyncResult()
        records = list(records)
        batch_size = self.settings.batch_size

        for index, batch in enumerate(batched(records, batch_size), start=1):
            logger.debug("Syncing batch %d (%d record(s))", index, len(batch))
            try:
                for record in batch:
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    self._sync_record(record, result, cancel_token)
            finally:
                self.store.close()

        logger.info(
            "Sync finished: %d inserted, %d updated, %d unchanged, %d failed",
            result.inserted,
            result.updated,
            result.unchanged,
            len(result.failed_keys),
        )
        return result

    def _sync_record(
        self,
        record: MonthlyReservationRecord,
        result: SyncResult,
        cancel_token: CancellationToken | None,
    ) -> None:
        try:
            existing = self.retry_policy.execute(
                lambda: self.store.fetch(record.key),
                operation_name=f"fetch {record}",
                cancel_token=cancel_token,
            )
            kind = classify(existing, record)
            if kind is None:
                result.unchanged += 1
                return

            if kind is ChangeKind.NEW:
                self.retry_policy.execute(
                    lambda: self.store.insert(record),
                    operation_name=f"insert {record}",
                    cancel_token=cancel_token,
                )
                result.inserted += 1
            else:
                self.retry_policy.execute(
                    lambda: self.store.update(record),
                    operation_name=f"update {record}",
                    cancel_token=cancel_token,
                )
                result.updated += 1

            change = build_change(kind, record, existing, self.clock.now())
            result.changes.append(change)
            logger.info("%s: %s", kind.value, record)
        except OperationCancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Failed to sync record %s (key %s): %s", record, record.key, e)
            result.failed_keys.append(record.key)

    def push_all(
        self,
        records: Sequence[MonthlyReservationRecord],
        cancel_token: CancellationToken | None = None,
    ) -> int:
        """
        Upsert every record batch by batch without diffing.

        Rebuilds remote rows from the workbooks. No ChangeRecords are
        produced.

        Returns:
            Number of rows written

        Raises:
            RetryExhaustedError: A batch kept failing
            RemoteStoreError: A batch failed with a non-retryable error
        """
        records = list(records)
        written = 0
        for index, batch in enumerate(batched(records, self.settings.batch_size), start=1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            try:
                self.retry_policy.execute(
                    partial(self.store.upsert, batch),
                    operation_name=f"upsert batch {index}",
                    cancel_token=cancel_token,
                )
            finally:
                self.store.close()
            written += len(batch)

        logger.info("Pushed %d record(s) to the remote store", written)
        return written
