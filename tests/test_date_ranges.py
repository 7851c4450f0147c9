"""
Unit tests for date range expansion.

Tests cover:
- Weekday filtering (Sunday-first checkbox order)
- Single-day ranges
- Ranges whose start date falls after the end date
- The maximum range guard rail
"""

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from date_ranges import compute_dates, day_of_week_index  # noqa: E402
from selection import DateRangeSelection  # noqa: E402

WEEKDAYS = (False, True, True, True, True, True, False)
NO_DAYS = (False,) * 7
ALL_DAYS = (True,) * 7


def _selection(start: str, end: str, days=ALL_DAYS) -> DateRangeSelection:
    return DateRangeSelection(date=end, start_date=start, days_of_the_week=days)


class TestDayOfWeekIndex:
    def test_sunday_is_zero(self):
        assert day_of_week_index(date(2023, 3, 5)) == 0

    def test_saturday_is_six(self):
        assert day_of_week_index(date(2023, 3, 11)) == 6

    def test_monday_is_one(self):
        assert day_of_week_index(date(2023, 3, 6)) == 1


class TestComputeDates:
    def test_work_week(self):
        selection = _selection("2023-03-06", "2023-03-10", WEEKDAYS)
        assert compute_dates(selection, 90) == [
            "2023-03-06",
            "2023-03-07",
            "2023-03-08",
            "2023-03-09",
            "2023-03-10",
        ]

    def test_weekend_excluded(self):
        # Saturday 4th through Sunday 12th
        selection = _selection("2023-03-04", "2023-03-12", WEEKDAYS)
        result = compute_dates(selection, 90)
        assert result[0] == "2023-03-06"
        assert result[-1] == "2023-03-10"
        assert len(result) == 5

    @pytest.mark.parametrize("day", ["2023-03-05", "2023-03-08", "2023-03-11"])
    def test_single_day(self, day):
        selection = _selection(day, day)
        assert compute_dates(selection, 1) == [day]
        assert compute_dates(selection, 90) == [day]

    def test_single_day_filtered_out(self):
        # Sunday with only weekdays checked
        selection = _selection("2023-03-05", "2023-03-05", WEEKDAYS)
        assert compute_dates(selection, 90) == []

    def test_no_days_checked(self):
        selection = _selection("2023-01-01", "2023-03-01", NO_DAYS)
        assert compute_dates(selection, 90) == []

    def test_start_after_end_walks_forward_from_start(self):
        selection = _selection("2023-03-10", "2023-03-08")
        assert compute_dates(selection, 90) == [
            "2023-03-10",
            "2023-03-11",
            "2023-03-12",
        ]

    def test_start_after_end_never_includes_end_anchor(self):
        selection = _selection("2023-03-20", "2023-03-01")
        result = compute_dates(selection, 90)
        assert "2023-03-01" not in result
        assert result[0] == "2023-03-20"

    def test_max_days_clamps_span(self):
        selection = _selection("2023-01-01", "2023-12-31")
        result = compute_dates(selection, 90)
        assert len(result) == 90
        assert result[0] == "2023-01-01"
        assert result[-1] == (date(2023, 1, 1) + timedelta(days=89)).isoformat()

    def test_max_days_one(self):
        selection = _selection("2023-03-06", "2023-03-10")
        assert compute_dates(selection, 1) == ["2023-03-06"]

    def test_results_respect_flags_and_limit(self):
        tuesdays_only = (False, False, True, False, False, False, False)
        selection = _selection("2023-01-01", "2023-06-30", tuesdays_only)
        result = compute_dates(selection, 30)
        assert len(result) <= 30
        assert result
        for value in result:
            assert day_of_week_index(date.fromisoformat(value)) == 2

    def test_crosses_month_and_year(self):
        selection = _selection("2022-12-30", "2023-01-02")
        assert compute_dates(selection, 90) == [
            "2022-12-30",
            "2022-12-31",
            "2023-01-01",
            "2023-01-02",
        ]

    def test_repeat_calls_match(self):
        selection = _selection("2023-03-01", "2023-03-31", WEEKDAYS)
        assert compute_dates(selection, 90) == compute_dates(selection, 90)

    def test_missing_end_date(self):
        assert compute_dates(DateRangeSelection(date=None), 90) == []

    def test_missing_start_date_is_single_day(self):
        selection = DateRangeSelection(date="2023-03-08", start_date=None)
        assert compute_dates(selection, 90) == ["2023-03-08"]
