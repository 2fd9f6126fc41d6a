"""
Workbook reading helpers.

Thin layer over openpyxl's read-only mode: open, pick a worksheet, and
iterate (date, count) pairs from two columns. Cell values are coerced
leniently; rows whose date or count cannot be interpreted are skipped.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator

from openpyxl import load_workbook
from openpyxl.utils import column_index_from_string
from openpyxl.workbook.workbook import Workbook

logger = logging.getLogger(__name__)


def open_workbook(path: str | Path) -> Workbook:
    """Open a workbook read-only with cached formula values."""
    return load_workbook(Path(path), read_only=True, data_only=True)


def select_worksheet(workbook: Workbook, name: str) -> tuple[Any, bool]:
    """
    Find a worksheet by name, falling back to the first one.

    Returns:
        (worksheet, exact) where ``exact`` is False for the fallback,
        or (None, False) when the workbook has no worksheets
    """
    if name and name in workbook.sheetnames:
        return workbook[name], True
    if not workbook.worksheets:
        return None, False
    return workbook.worksheets[0], False


def worksheet_names(path: str | Path) -> list[str]:
    """Sheet names of a workbook, in order."""
    wb = open_workbook(path)
    try:
        return list(wb.sheetnames)
    finally:
        wb.close()


def coerce_date(value: Any) -> date | None:
    """Interpret a cell value as a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip().replace("/", "-")
        if not text:
            return None
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return None
    return None


def coerce_count(value: Any) -> int | None:
    """Interpret a cell value as an integer count."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    return None


def read_date_count_pairs(
    worksheet: Any,
    date_column: str = "A",
    count_column: str | None = None,
) -> Iterator[tuple[date, int]]:
    """
    Yield (date, count) for every used row with both values interpretable.

    Args:
        worksheet: openpyxl worksheet (regular or read-only)
        date_column: Column letter of the date
        count_column: Column letter of the count; None means the next column
    """
    date_idx = column_index_from_string(date_column)
    count_idx = column_index_from_string(count_column) if count_column else date_idx + 1
    low, high = min(date_idx, count_idx), max(date_idx, count_idx)

    skipped = 0
    for row in worksheet.iter_rows(min_col=low, max_col=high, values_only=True):
        if not row:
            continue
        day = coerce_date(row[date_idx - low]) if len(row) > date_idx - low else None
        count = coerce_count(row[count_idx - low]) if len(row) > count_idx - low else None
        if day is None or count is None:
            if any(v is not None for v in row):
                skipped += 1
            continue
        yield day, count

    if skipped:
        logger.debug("Skipped %d rows without a usable date/count in '%s'", skipped, worksheet.title)
