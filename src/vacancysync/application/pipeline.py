"""
One sync cycle: detect -> extract -> sync -> report -> notify.

Stages run strictly in order; sync starts only after extraction has fully
returned. Report and notification are best effort. A changed workbook
whose edit did not reach the store (locked, unreadable, failed sync or an
aborted cycle) has its fingerprint forgotten so the next cycle picks it up
again.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator

from vacancysync.application.change_detector import ChangeDetector
from vacancysync.application.extractor import ExtractionResult, ReservationExtractor
from vacancysync.application.sync.service import ReservationSyncService, SyncResult
from vacancysync.domain.change_types import FileOutcome
from vacancysync.domain.errors import NotificationError, RemoteStoreError
from vacancysync.domain.ports import Notifier
from vacancysync.infrastructure.report.proof_list import ProofListWriter
from vacancysync.infrastructure.resilience.cancellation import CancellationToken

logger = logging.getLogger(__name__)

# Outcomes after which the workbook's current content needs no further work
SETTLED_OUTCOMES = frozenset(
    {FileOutcome.EXTRACTED, FileOutcome.SKIPPED_UNMAPPED, FileOutcome.SKIPPED_NO_SHEET}
)


class CycleStatus(str, Enum):
    """How far a cycle got."""

    NO_CHANGES = "no_changes"
    NOTHING_EXTRACTED = "nothing_extracted"
    NO_DIFFERENCES = "no_differences"
    SYNCED = "synced"


@dataclass
class CycleReport:
    """What one cycle observed and did."""

    status: CycleStatus = CycleStatus.NO_CHANGES
    changed_files: list[str] = field(default_factory=list)
    extraction: ExtractionResult | None = None
    sync_result: SyncResult | None = None
    proof_file: Path | None = None
    notified: bool = False
    timings: dict[str, int] = field(default_factory=dict)  # stage -> duration_ms

    @property
    def change_count(self) -> int:
        return len(self.sync_result) if self.sync_result is not None else 0

    def unsettled_files(self) -> list[str]:
        """Changed workbooks whose extraction did not settle their content."""
        outcomes = self.extraction.outcomes if self.extraction is not None else {}
        return [path for path in self.changed_files if outcomes.get(path) not in SETTLED_OUTCOMES]


class SyncPipeline:
    """Wire the cycle stages together."""

    def __init__(
        self,
        detector: ChangeDetector,
        extractor: ReservationExtractor,
        sync_service: ReservationSyncService,
        proof_writer: ProofListWriter,
        notifier: Notifier,
    ) -> None:
        self.detector = detector
        self.extractor = extractor
        self.sync_service = sync_service
        self.proof_writer = proof_writer
        self.notifier = notifier

    def run_cycle(self, cancel_token: CancellationToken | None = None) -> CycleReport:
        """
        Run one cycle.

        Raises:
            RetryExhaustedError: Change detection kept failing
            RemoteStoreError: Every record failed to sync
            OperationCancelledError: Shutdown or cycle timeout observed
        """
        token = cancel_token or CancellationToken()
        report = CycleReport()
        start = time.perf_counter()

        try:
            with self._timed(report, "detect"):
                report.changed_files = self.detector.scan(cancel_token=token)
            if not report.changed_files:
                return report

            try:
                return self._process(report, token)
            except Exception:
                # Fingerprints were already recorded; make the files visible again
                self.detector.invalidate(report.changed_files)
                raise
        finally:
            logger.debug(
                "Cycle finished in %d ms (%s)",
                int((time.perf_counter() - start) * 1000),
                ", ".join(f"{stage} {ms} ms" for stage, ms in report.timings.items()) or "no stages",
            )

    @contextmanager
    def _timed(self, report: CycleReport, stage: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            report.timings[stage] = int((time.perf_counter() - start) * 1000)
            logger.debug("Stage %s took %d ms", stage, report.timings[stage])

    def _process(self, report: CycleReport, token: CancellationToken) -> CycleReport:
        token.raise_if_cancelled()
        with self._timed(report, "extract"):
            report.extraction = self.extractor.extract(token)

        unsettled = report.unsettled_files()
        if unsettled:
            logger.info("%d changed workbook(s) deferred to the next cycle", len(unsettled))
            self.detector.invalidate(unsettled)

        if not report.extraction.records:
            logger.info("Changed workbooks yielded no records")
            report.status = CycleStatus.NOTHING_EXTRACTED
            return report

        token.raise_if_cancelled()
        with self._timed(report, "sync"):
            result = self.sync_service.sync(report.extraction.records, token)
        report.sync_result = result
        if result.all_failed:
            raise RemoteStoreError(f"All {len(result.failed_keys)} record(s) failed to sync")
        if result.failed_keys:
            self.detector.invalidate(report.changed_files)

        if not result.changes:
            logger.info("Remote store already up to date")
            report.status = CycleStatus.NO_DIFFERENCES
            return report

        report.status = CycleStatus.SYNCED
        with self._timed(report, "report"):
            self._report(report, result)
        return report

    def _report(self, report: CycleReport, result: SyncResult) -> None:
        try:
            report.proof_file = self.proof_writer.write(result.changes)
        except OSError as e:
            logger.error("Failed to write proof list: %s", e)

        summary = self.proof_writer.summarize(result.changes)
        proof_name = report.proof_file.name if report.proof_file is not None else None
        try:
            self.notifier.send_change_summary(summary, proof_name)
            report.notified = True
        except NotificationError as e:
            logger.warning("Change notification not delivered: %s", e)
