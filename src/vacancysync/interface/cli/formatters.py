"""
Rich tables for CLI output.

Builders return a ``Table`` so commands only decide what to print.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Mapping

from rich.table import Table

from vacancysync.application.health_check import HealthCheckResult
from vacancysync.domain.change_types import ChangeRecord
from vacancysync.domain.models import StoredReservationRow, days_in_month


def _blank_if_none(value: int | None) -> str:
    return "" if value is None else str(value)


def changes_table(changes: Iterable[ChangeRecord]) -> Table:
    """Applied changes of one cycle, one row per change."""
    table = Table(title="Applied changes")
    table.add_column("Change", style="cyan")
    table.add_column("Facility")
    table.add_column("Period")
    table.add_column("Old", justify="right")
    table.add_column("New", justify="right")
    for change in changes:
        table.add_row(
            change.kind.value,
            change.facility_id,
            change.time_slot,
            _blank_if_none(change.old_value),
            _blank_if_none(change.new_value),
        )
    return table


def health_table(result: HealthCheckResult) -> Table:
    table = Table(title="Health check")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    for name, detail in result.details.items():
        status = "[red]FAIL[/red]" if name in result.failed_checks else "[green]OK[/green]"
        table.add_row(name, status, detail)
    return table


def worksheets_table(
    listing: Mapping[str, list[str]],
    facility_for: Callable[[str], int | None],
) -> Table:
    table = Table(title="Worksheets")
    table.add_column("Workbook", style="cyan")
    table.add_column("Facility", justify="right")
    table.add_column("Sheets")
    for path, names in listing.items():
        facility = facility_for(path)
        table.add_row(
            Path(path).name,
            "-" if facility is None else str(facility),
            ", ".join(names) or "(unreadable)",
        )
    return table


def stored_rows_table(rows: Iterable[StoredReservationRow]) -> Table:
    """
    Remote rows with their daily totals.

    Rows whose array length does not match the month are flagged.
    """
    table = Table(title="Stored reservations")
    table.add_column("Facility", justify="right", style="cyan")
    table.add_column("Period")
    table.add_column("Days", justify="right")
    table.add_column("Total", justify="right")
    for row in rows:
        expected = days_in_month(row.year, row.month) if 1 <= row.month <= 12 else None
        days = str(len(row.reservation_counts))
        if expected != len(row.reservation_counts):
            days = f"[yellow]{days} ≠ {expected}[/yellow]"
        total = sum(int(c) for c in row.reservation_counts if c.strip().isdigit())
        table.add_row(str(row.facility_id), row.period_label, days, str(total))
    return table
