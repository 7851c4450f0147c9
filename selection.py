"""Selection parameters chosen by the user: agency, route, stops and date ranges."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple


ALL_DAYS_OF_THE_WEEK: Tuple[bool, ...] = (True,) * 7


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_days_of_the_week(value: Any) -> Tuple[bool, ...]:
    if value is None:
        return ALL_DAYS_OF_THE_WEEK
    if isinstance(value, Mapping):
        # UI payloads sometimes key the checkboxes by index ("0".."6")
        flags = [bool(value.get(str(i), value.get(i, False))) for i in range(7)]
    else:
        flags = [bool(v) for v in value]
    if len(flags) != 7:
        raise ValueError(f"daysOfTheWeek must have 7 entries, got {len(flags)}")
    return tuple(flags)


def _validate_date(value: Optional[str], name: str) -> Optional[str]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise ValueError(f"{name} must be a YYYY-MM-DD date, got {value!r}") from exc


@dataclass(frozen=True)
class DateRangeSelection:
    """A date range chosen in the UI.

    ``date`` anchors the end of the range and ``start_date`` its start; either
    may come first chronologically. ``days_of_the_week`` is indexed Sunday=0
    through Saturday=6.
    """
    date: Optional[str]
    start_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    days_of_the_week: Tuple[bool, ...] = ALL_DAYS_OF_THE_WEEK

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "DateRangeSelection":
        end = _validate_date(_clean_text(raw.get("date")), "date")
        start = _validate_date(_clean_text(raw.get("startDate")), "startDate")
        return cls(
            date=end,
            start_date=start if start is not None else end,
            start_time=_clean_text(raw.get("startTime")),
            end_time=_clean_text(raw.get("endTime")),
            days_of_the_week=_parse_days_of_the_week(raw.get("daysOfTheWeek")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "startDate": self.start_date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "daysOfTheWeek": list(self.days_of_the_week),
        }


@dataclass(frozen=True)
class SelectionParams:
    """Graph parameters for one user interaction. Replaced wholesale, never mutated."""
    agency_id: Optional[str] = None
    route_id: Optional[str] = None
    direction_id: Optional[str] = None
    start_stop_id: Optional[str] = None
    end_stop_id: Optional[str] = None
    first_date_range: DateRangeSelection = field(
        default_factory=lambda: DateRangeSelection(date=None)
    )
    second_date_range: Optional[DateRangeSelection] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SelectionParams":
        first_raw = raw.get("firstDateRange") or {}
        second_raw = raw.get("secondDateRange")
        if not isinstance(first_raw, Mapping):
            raise ValueError("firstDateRange must be an object")
        if second_raw is not None and not isinstance(second_raw, Mapping):
            raise ValueError("secondDateRange must be an object")
        return cls(
            agency_id=_clean_text(raw.get("agencyId")),
            route_id=_clean_text(raw.get("routeId")),
            direction_id=_clean_text(raw.get("directionId")),
            start_stop_id=_clean_text(raw.get("startStopId")),
            end_stop_id=_clean_text(raw.get("endStopId")),
            first_date_range=DateRangeSelection.from_dict(first_raw),
            second_date_range=(
                DateRangeSelection.from_dict(second_raw) if second_raw else None
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agencyId": self.agency_id,
            "routeId": self.route_id,
            "directionId": self.direction_id,
            "startStopId": self.start_stop_id,
            "endStopId": self.end_stop_id,
            "firstDateRange": self.first_date_range.to_dict(),
            "secondDateRange": (
                self.second_date_range.to_dict() if self.second_date_range else None
            ),
        }

    def identity(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """(date, route, agency): the selection state the arrival archive belongs to."""
        return (self.first_date_range.date, self.route_id, self.agency_id)

    def missing_trip_fields(self) -> List[str]:
        missing: List[str] = []
        for name in ("agency_id", "route_id", "direction_id", "start_stop_id", "end_stop_id"):
            if not getattr(self, name):
                missing.append(name)
        return missing
