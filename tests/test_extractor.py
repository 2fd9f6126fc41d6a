"""
Tests for ReservationExtractor and monthly grouping.
"""

import logging
from datetime import date

import pytest
from conftest import full_month, make_workbook

from vacancysync.application.extractor import ReservationExtractor, build_monthly_records
from vacancysync.domain.change_types import FileOutcome
from vacancysync.infrastructure.excel.workbook_reader import coerce_count, coerce_date, open_workbook


class ClosingSpy:
    """Workbook proxy that records ``close``."""

    def __init__(self, workbook):
        self.workbook = workbook
        self.closed = False

    def __getattr__(self, name):
        return getattr(self.workbook, name)

    def __getitem__(self, key):
        return self.workbook[key]

    def close(self):
        self.closed = True
        self.workbook.close()


@pytest.fixture
def extractor(workbook_settings, file_system, lock_probe, clock, no_wait_retry):
    return ReservationExtractor(workbook_settings, file_system, lock_probe, clock, retry_policy=no_wait_retry)


JANUARY_ROWS = [
    (date(2024, 1, 1), 5),
    (date(2024, 1, 2), 3),
    (date(2024, 2, 10), 4),
    (date(2023, 12, 31), 9),
]


class TestBuildMonthlyRecords:
    def test_groups_by_month_and_zero_fills(self):
        records = build_monthly_records(JANUARY_ROWS, 1, 7, 2024)
        assert [(r.year, r.month) for r in records] == [(2024, 1), (2024, 2)]
        assert records[0].reservation_counts == full_month(2024, 1, "5", "3")
        assert len(records[1].reservation_counts) == 29
        assert records[1].reservation_counts[9] == "4"

    def test_other_years_ignored(self):
        assert build_monthly_records([(date(2023, 5, 1), 2)], 1, 7, 2024) == []

    def test_later_row_for_same_day_wins(self):
        records = build_monthly_records([(date(2024, 3, 1), 1), (date(2024, 3, 1), 6)], 1, 7, 2024)
        assert records[0].reservation_counts[0] == "6"


class TestCellCoercion:
    @pytest.mark.parametrize(
        "value, expected",
        [("2024/01/05", date(2024, 1, 5)), ("2024-01-05", date(2024, 1, 5)), ("日付", None), ("", None), (42, None)],
    )
    def test_coerce_date(self, value, expected):
        assert coerce_date(value) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [(3, 3), (3.0, 3), (2.5, None), ("12", 12), (" 7 ", 7), ("abc", None), (True, None), (None, None)],
    )
    def test_coerce_count(self, value, expected):
        assert coerce_count(value) == expected


class TestFacilityMapping:
    def test_substring_match(self, extractor):
        assert extractor.facility_id_for("/share/2024_ふじみの予約.xlsx") == 7
        assert extractor.facility_id_for("/share/いちかわ.xlsx") == 14
        assert extractor.facility_id_for("/share/unknown.xlsx") is None

    def test_first_match_wins(self, workbook_settings, file_system, lock_probe, clock):
        extractor = ReservationExtractor(
            workbook_settings, file_system, lock_probe, clock, facility_map={"みさと": 10, "みさと東": 11}
        )
        assert extractor.facility_id_for("みさと東.xlsx") == 10


class TestExtract:
    def test_extracts_current_year_records(self, extractor, share):
        make_workbook(share / "ふじみの.xlsx", JANUARY_ROWS)
        result = extractor.extract()

        assert result.succeeded == 1
        assert len(result) == 2
        january = result.records[0]
        assert january.key == (1, 7, 2024, 1)
        assert january.reservation_counts == full_month(2024, 1, "5", "3")

    def test_fallback_sheet_is_used_with_warning(self, extractor, share, caplog):
        make_workbook(share / "みさと.xlsx", [(date(2024, 6, 1), 2)], sheet_name="Sheet1")
        with caplog.at_level(logging.WARNING):
            result = extractor.extract()
        assert result.records[0].facility_id == 10
        assert any("not found" in r.getMessage() for r in caplog.records)

    def test_unmapped_workbook_is_skipped(self, extractor, share, caplog):
        path = make_workbook(share / "unknown.xlsx", [(date(2024, 6, 1), 2)])
        with caplog.at_level(logging.WARNING):
            result = extractor.extract()
        assert result.outcomes[str(path)] is FileOutcome.SKIPPED_UNMAPPED
        assert result.records == []
        assert any("No facility mapping" in r.getMessage() for r in caplog.records)

    def test_locked_workbook_is_skipped_without_errors(self, extractor, share, file_system, caplog):
        locked = make_workbook(share / "ふじみの.xlsx", JANUARY_ROWS)
        make_workbook(share / "いちかわ.xlsx", [(date(2024, 6, 1), 1)])
        file_system.locked.add(str(locked))

        with caplog.at_level(logging.DEBUG):
            result = extractor.extract()

        assert result.outcomes[str(locked)] is FileOutcome.SKIPPED_LOCKED
        assert [r.facility_id for r in result.records] == [14]
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    def test_corrupted_workbook_fails_alone(self, extractor, share, caplog):
        broken = share / "みさと.xlsx"
        broken.write_bytes(b"this is not a zip archive")
        make_workbook(share / "ふじみの.xlsx", JANUARY_ROWS)

        with caplog.at_level(logging.ERROR):
            result = extractor.extract()

        assert result.outcomes[str(broken)] is FileOutcome.FAILED
        assert result.failed == 1
        assert result.succeeded == 1
        assert {r.facility_id for r in result.records} == {7}
        assert any("Failed to extract" in r.getMessage() for r in caplog.records)

    def test_workbook_closed_and_lock_released(self, workbook_settings, file_system, lock_probe, clock, share):
        opened = []

        def opener(path):
            spy = ClosingSpy(open_workbook(path))
            opened.append(spy)
            return spy

        extractor = ReservationExtractor(workbook_settings, file_system, lock_probe, clock, workbook_opener=opener)
        make_workbook(share / "ふじみの.xlsx", JANUARY_ROWS)
        extractor.extract()

        assert opened and all(spy.closed for spy in opened)
        assert not extractor._workbook_lock.locked()

    def test_release_resources_frees_stuck_lock(self, extractor):
        class Stuck:
            closed = False

            def close(self):
                self.closed = True

        stuck = Stuck()
        extractor._workbook_lock.acquire()
        extractor._active_workbook = stuck

        extractor.release_resources()

        assert stuck.closed
        assert not extractor._workbook_lock.locked()


class TestListWorksheets:
    def test_lists_sheet_names(self, extractor, share):
        path = make_workbook(share / "ふじみの.xlsx", [], extra_sheets=["集計"])
        assert extractor.list_worksheets() == {str(path): ["予約表", "集計"]}

    def test_unreadable_workbook_has_empty_list(self, extractor, share):
        broken = share / "broken.xlsx"
        broken.write_bytes(b"garbage")
        assert extractor.list_worksheets() == {str(broken): []}
