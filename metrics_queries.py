"""
GraphQL documents and variable bindings for the metrics backend.

Three scopes are queried: a trip between two stops, a whole route, and every
route of an agency. Documents are sent with whitespace runs collapsed to a
single space, and variables are serialized compactly in a fixed field order
so the serialized form can be compared for equality (the request fingerprint).
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from date_ranges import compute_dates
from metrics_config import AGENCY_ID, MAX_DATE_RANGE
from selection import SelectionParams


_WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(document: str) -> str:
    return _WHITESPACE_RE.sub(" ", document)


def variables_fingerprint(variables: Dict[str, Any]) -> str:
    """Compact JSON of the bindings in insertion order; unset (None) values are left out."""
    present = {key: value for key, value in variables.items() if value is not None}
    return json.dumps(present, separators=(",", ":"), ensure_ascii=False)


TRIP_METRICS_QUERY = collapse_whitespace("""
fragment intervalFields on TripIntervalMetrics {
      departures
      scheduledDepartures
      arrivals
      scheduledArrivals
      headways {
        count median max
        histogram { binStart binEnd count }
      }
      headwayScheduleDeltas {
          count
          histogram { binStart binEnd count }
      }
      scheduledHeadways {
        count median max
        histogram { binStart binEnd count }
      }
      tripTimes {
        count median max
        percentiles(percentiles:[90]) { percentile value }
        histogram { binStart binEnd count }
      }
      scheduledTripTimes {
        count median max
        percentiles(percentiles:[90]) { percentile value }
        histogram { binStart binEnd count }
      }
      waitTimes {
        median max
        percentiles(percentiles:[90]) { percentile value }
        histogram { binStart binEnd count }
      }
      scheduledWaitTimes {
        median max
        percentiles(percentiles:[90]) { percentile value }
        histogram { binStart binEnd count }
      }
      departureScheduleAdherence {
        onTimeCount
        scheduledCount
        closestDeltas {
          histogram(min:-5, max:15, binSize:1) { binStart binEnd count }
          count
        }
      }
      arrivalScheduleAdherence {
        onTimeCount
        scheduledCount
      }
}
fragment timeRangeFields on TripIntervalMetrics {
  startTime endTime
  waitTimes {
    percentiles(percentiles:[50,90]) { percentile value }
  }
  tripTimes {
    percentiles(percentiles:[50,90]) { percentile value }
  }
  scheduledWaitTimes {
    percentiles(percentiles:[50,90]) { percentile value }
  }
  scheduledTripTimes {
    percentiles(percentiles:[50,90]) { percentile value }
  }
  headways {
    median
  }
  scheduledHeadways {
    median
  }
  departureScheduleAdherence {
    onTimeCount
    scheduledCount
  }
  arrivalScheduleAdherence {
    onTimeCount
    scheduledCount
  }
}

query($agencyId:String!, $routeId:String!,
      $startStopId:String!, $endStopId:String, $directionId:String,
      $dates:[String!], $startTime:String, $endTime:String,
      $dates2:[String!], $startTime2:String, $endTime2:String,
      $includeByDay:Boolean!,
      $includeTimeRanges:Boolean!, $includeTimeRanges2:Boolean!,
      $dualDateRange:Boolean!) {
  agency(agencyId:$agencyId) {
    route(routeId:$routeId) {
      trip(startStopId:$startStopId, endStopId:$endStopId, directionId:$directionId) {
        interval(dates:$dates, startTime:$startTime, endTime:$endTime) {
          ...intervalFields
        }
        interval2: interval(dates:$dates2, startTime:$startTime2, endTime:$endTime2) @include(if: $dualDateRange) {
          ...intervalFields
        }
        timeRanges(dates:$dates) @include(if: $includeTimeRanges) {
          ...timeRangeFields
        }
        timeRanges2: timeRanges(dates:$dates2) @include(if: $includeTimeRanges2) {
          ...timeRangeFields
        }
        byDay(dates:$dates, startTime:$startTime, endTime:$endTime) @include(if: $includeByDay) {
          dates
          startTime
          endTime
          headways {
            median
          }
          scheduledHeadways {
            median
          }
          tripTimes {
            median
            percentiles(percentiles:[90]) { percentile value }
          }
          waitTimes {
            median
            percentiles(percentiles:[90]) { percentile value }
          }
          scheduledTripTimes {
            median
            percentiles(percentiles:[90]) { percentile value }
          }
          scheduledWaitTimes {
            median
            percentiles(percentiles:[90]) { percentile value }
          }
          departureScheduleAdherence {
            onTimeCount
            scheduledCount
          }
          arrivalScheduleAdherence {
            onTimeCount
            scheduledCount
          }
        }
      }
    }
  }
}
""")

ROUTE_METRICS_QUERY = collapse_whitespace("""
fragment intervalFields on RouteIntervalMetrics {
  directions {
    directionId
    medianHeadway
    medianWaitTime
    averageSpeed(units:"mph")
    completedTrips
    onTimeRate
    scheduledMedianHeadway
    scheduledMedianWaitTime
    scheduledAverageSpeed(units:"mph")
    scheduledCompletedTrips
    segments {
      fromStopId
      toStopId
      medianTripTime
      trips
    }
    cumulativeSegments {
      fromStopId
      toStopId
      medianTripTime
      scheduledMedianTripTime
      trips
      scheduledTrips
    }
  }
}

query($agencyId:String!, $routeId:String!,
    $dates:[String!], $startTime:String, $endTime:String,
    $dates2:[String!], $startTime2:String, $endTime2:String,
    $dualDateRange:Boolean!
) {
  agency(agencyId:$agencyId) {
    route(routeId:$routeId) {
      interval(dates:$dates, startTime:$startTime, endTime:$endTime) {
         ...intervalFields
      }
      interval2: interval(dates:$dates2, startTime:$startTime2, endTime:$endTime2) @include(if: $dualDateRange) {
         ...intervalFields
      }
    }
  }
}""")

AGENCY_METRICS_QUERY = collapse_whitespace("""query($agencyId:String!, $dates:[String!], $startTime:String, $endTime:String) {
  agency(agencyId:$agencyId) {
    agencyId
    interval(dates:$dates, startTime:$startTime, endTime:$endTime) {
      routes {
        routeId
        directions {
          directionId
          medianHeadway
          medianWaitTime
          averageSpeed(units:"mph")
          onTimeRate
        }
      }
    }
  }
}""")


@dataclass(frozen=True)
class MetricsQuery:
    document: str
    variables: Dict[str, Any]

    @property
    def variables_json(self) -> str:
        return variables_fingerprint(self.variables)


def _add_second_range(variables: Dict[str, Any], params: SelectionParams, max_days: int) -> None:
    second = params.second_date_range
    if second is None:
        return
    variables["dates2"] = compute_dates(second, max_days)
    variables["startTime2"] = second.start_time
    variables["endTime2"] = second.end_time


def build_trip_metrics_query(params: SelectionParams, max_days: int = MAX_DATE_RANGE) -> MetricsQuery:
    first = params.first_date_range
    second = params.second_date_range
    dates = compute_dates(first, max_days)
    variables: Dict[str, Any] = {
        "agencyId": params.agency_id,
        "routeId": params.route_id,
        "directionId": params.direction_id,
        "startStopId": params.start_stop_id,
        "endStopId": params.end_stop_id,
        "dates": dates,
        "startTime": first.start_time,
        "endTime": first.end_time,
        # no explicit start time means the whole day, split into time ranges
        "includeTimeRanges": not first.start_time,
        "includeByDay": second is None and len(dates) > 1,
        "includeTimeRanges2": second is not None and not second.start_time,
        "dualDateRange": second is not None,
    }
    _add_second_range(variables, params, max_days)
    return MetricsQuery(TRIP_METRICS_QUERY, variables)


def build_route_metrics_query(
    params: SelectionParams,
    max_days: int = MAX_DATE_RANGE,
    default_agency_id: str = AGENCY_ID,
) -> MetricsQuery:
    first = params.first_date_range
    variables: Dict[str, Any] = {
        "agencyId": params.agency_id or default_agency_id,
        "routeId": params.route_id,
        "dates": compute_dates(first, max_days),
        "startTime": first.start_time,
        "endTime": first.end_time,
        "dualDateRange": params.second_date_range is not None,
    }
    _add_second_range(variables, params, max_days)
    return MetricsQuery(ROUTE_METRICS_QUERY, variables)


def build_agency_metrics_query(
    params: SelectionParams,
    max_days: int = MAX_DATE_RANGE,
    default_agency_id: str = AGENCY_ID,
) -> MetricsQuery:
    first = params.first_date_range
    variables: Dict[str, Any] = {
        "agencyId": params.agency_id or default_agency_id,
        "dates": compute_dates(first, max_days),
        "startTime": first.start_time,
        "endTime": first.end_time,
    }
    return MetricsQuery(AGENCY_METRICS_QUERY, variables)


def build_download_variables(
    params: SelectionParams,
    max_days: int = MAX_DATE_RANGE,
    default_agency_id: str = AGENCY_ID,
) -> Dict[str, Any]:
    first = params.first_date_range
    return {
        "agencyId": params.agency_id or default_agency_id,
        "routeId": params.route_id,
        "dates": compute_dates(first, max_days),
        "directionId": params.direction_id,
        "startStopId": params.start_stop_id,
        "endStopId": params.end_stop_id,
        "startTime": first.start_time,
        "endTime": first.end_time,
        "dualDateRange": params.second_date_range is not None,
    }


def extract_path(payload: Any, *path: str) -> Optional[Any]:
    """Walk ``payload["data"]`` down ``path``; any missing level yields None."""
    node = payload.get("data") if isinstance(payload, dict) else None
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node
