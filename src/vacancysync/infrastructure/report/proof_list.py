"""
Proof list (audit CSV) writer.

One ``{YYYYMMDD_HHMMSS}_proof.csv`` per cycle that applied changes,
UTF-8 with BOM so spreadsheet tools detect the encoding.
"""

from __future__ import annotations

import csv
import logging
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Sequence

from vacancysync.domain.change_types import ChangeKind, ChangeRecord
from vacancysync.domain.config.settings import ProofListSettings
from vacancysync.domain.ports import Clock, SystemClock

logger = logging.getLogger(__name__)

HEADER = ["ChangeType", "FacilityId/StoreId", "Date", "TimeSlot", "OldValue", "NewValue", "UpdatedAt"]
FILE_SUFFIX = "_proof.csv"


def _cell(value: int | None) -> str:
    return "" if value is None else str(value)


def to_csv_row(change: ChangeRecord) -> list[str]:
    return [
        change.kind.value,
        change.facility_id,
        change.date.strftime("%Y-%m-%d"),
        change.time_slot,
        _cell(change.old_value),
        _cell(change.new_value),
        change.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
    ]


class ProofListWriter:
    """Write, summarize and purge proof lists."""

    def __init__(self, settings: ProofListSettings, clock: Clock | None = None) -> None:
        self.settings = settings
        self.clock = clock or SystemClock()

    @property
    def output_directory(self) -> Path:
        return Path(self.settings.output_directory)

    def write(self, changes: Iterable[ChangeRecord]) -> Path:
        """
        Write ``changes`` to a new timestamped CSV.

        Returns:
            Path of the written file
        """
        self.output_directory.mkdir(parents=True, exist_ok=True)
        timestamp = self.clock.now().strftime("%Y%m%d_%H%M%S")
        path = self.output_directory / f"{timestamp}{FILE_SUFFIX}"

        count = 0
        with path.open("w", encoding="utf-8-sig", newline="") as handle:
            writer = csv.writer(handle)
            writer.writerow(HEADER)
            for change in changes:
                writer.writerow(to_csv_row(change))
                count += 1

        logger.info("Proof list written: %s (%d change(s))", path, count)
        return path

    def summarize(self, changes: Sequence[ChangeRecord]) -> str:
        """Human-readable count summary for notifications."""
        counts = {kind: 0 for kind in ChangeKind}
        for change in changes:
            counts[change.kind] += 1
        facilities = len({c.facility_id for c in changes})
        lines = [
            "📊 Reservation data update summary",
            f"🆕 New: {counts[ChangeKind.NEW]}",
            f"🔄 Changed: {counts[ChangeKind.CHANGED]}",
            f"🗑️ Deleted: {counts[ChangeKind.DELETED]}",
            f"📈 Total: {len(changes)}",
            f"🏢 Facilities: {facilities}",
            f"⏰ Updated at: {self.clock.now():%Y-%m-%d %H:%M:%S}",
        ]
        return "\n".join(lines)

    def cleanup(self, retention_days: int | None = None) -> int:
        """
        Delete proof lists older than the retention period.

        Returns:
            Number of files deleted
        """
        days = retention_days if retention_days is not None else self.settings.retention_days
        directory = self.output_directory
        if not directory.is_dir():
            return 0

        cutoff = (self.clock.now() - timedelta(days=days)).timestamp()
        deleted = 0
        for path in directory.glob(f"*{FILE_SUFFIX}"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted += 1
                    logger.debug("Deleted old proof list: %s", path)
            except OSError as e:
                logger.warning("Failed to delete proof list %s: %s", path, e)

        if deleted:
            logger.info("Proof list cleanup removed %d file(s) older than %d days", deleted, days)
        return deleted
