"""Expansion of a date range selection into the calendar dates to query."""
from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional

from metrics_config import MAX_DATE_RANGE
from selection import DateRangeSelection


def day_of_week_index(day: date) -> int:
    """Sunday=0 .. Saturday=6, matching the order of the day-of-week checkboxes."""
    return (day.weekday() + 1) % 7


def compute_dates(selection: DateRangeSelection, max_days: Optional[int] = None) -> List[str]:
    """
    Expand a date range selection into the list of dates to query.

    The walk always starts at ``start_date``, even when it falls after
    ``date``: the span is the distance between the anchors plus one, so a
    reversed range yields the same number of days counted forward from
    ``start_date``. The span is clamped to ``max_days``. Only dates whose
    day-of-week checkbox is set are returned, oldest first, as YYYY-MM-DD.
    """
    if max_days is None:
        max_days = MAX_DATE_RANGE
    if selection.date is None:
        return []

    end = date.fromisoformat(selection.date)
    start = date.fromisoformat(selection.start_date) if selection.start_date else end

    delta_days = (end - start).days
    span = abs(delta_days) + 1  # include the end date itself

    if span > max_days:
        # guard rail against unbounded backend load
        span = max_days

    dates: List[str] = []
    current = start
    for _ in range(span):
        if selection.days_of_the_week[day_of_week_index(current)]:
            dates.append(current.isoformat())
        current += timedelta(days=1)
    return dates
