"""
In-process application state for fetched metrics.

Modeled as a single document updated only through ``dispatch(action)``. Each
fetchable scope (trip, route, agency and arrival archive) owns a
``MetricsResult`` recording its lifecycle, the fingerprint of the request that
produced it, and the data or error it ended with.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from selection import SelectionParams


SCOPE_TRIP = "trip"
SCOPE_ROUTE = "route"
SCOPE_AGENCY = "agency"
SCOPE_ARRIVALS = "arrivals"
SCOPES = (SCOPE_TRIP, SCOPE_ROUTE, SCOPE_AGENCY, SCOPE_ARRIVALS)

STATUS_IDLE = "idle"
STATUS_REQUESTING = "requesting"
STATUS_RECEIVED = "received"
STATUS_ERROR = "error"

# Action types carry the scope in their name: REQUEST_TRIP_METRICS, ...
_ACTION_SUFFIX = {
    SCOPE_TRIP: "TRIP_METRICS",
    SCOPE_ROUTE: "ROUTE_METRICS",
    SCOPE_AGENCY: "AGENCY_METRICS",
    SCOPE_ARRIVALS: "ARRIVALS",
}

RECEIVED_GRAPH_PARAMS = "RECEIVED_GRAPH_PARAMS"
REQUEST_ROUTES = "REQUEST_ROUTES"
RECEIVED_ROUTES = "RECEIVED_ROUTES"
ERROR_ROUTES = "ERROR_ROUTES"
RECEIVED_SPIDER_MAP_CLICK = "RECEIVED_SPIDER_MAP_CLICK"
UPDATE_LOCATION = "UPDATE_LOCATION"


def request_type(scope: str) -> str:
    return f"REQUEST_{_ACTION_SUFFIX[scope]}"


def received_type(scope: str) -> str:
    return f"RECEIVED_{_ACTION_SUFFIX[scope]}"


def error_type(scope: str) -> str:
    return f"ERROR_{_ACTION_SUFFIX[scope]}"


def reset_type(scope: str) -> str:
    return f"RESET_{_ACTION_SUFFIX[scope]}"


@dataclass(frozen=True)
class Action:
    type: str
    fingerprint: Optional[str] = None
    data: Any = None
    error: Optional[str] = None
    params: Optional[SelectionParams] = None
    agency_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MetricsResult:
    status: str = STATUS_IDLE
    fingerprint: Optional[str] = None
    data: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "fingerprint": self.fingerprint,
            "data": self.data,
            "error": self.error,
        }


@dataclass
class RoutesResult:
    status: str = STATUS_IDLE
    agency_id: Optional[str] = None
    data: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "agency_id": self.agency_id,
            "data": self.data,
            "error": self.error,
        }


@dataclass
class MetricsState:
    graph_params: SelectionParams = field(default_factory=SelectionParams)
    results: Dict[str, MetricsResult] = field(
        default_factory=lambda: {scope: MetricsResult() for scope in SCOPES}
    )
    routes: RoutesResult = field(default_factory=RoutesResult)
    spider_map: Dict[str, Any] = field(default_factory=lambda: {"nearby_lines": [], "lat_lng": None})
    location: Dict[str, Any] = field(
        default_factory=lambda: {"type": "DASHBOARD", "payload": {}, "query": {}}
    )

    def result(self, scope: str) -> MetricsResult:
        return self.results[scope]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "graph_params": self.graph_params.to_dict(),
            "trip_metrics": self.results[SCOPE_TRIP].to_dict(),
            "route_metrics": self.results[SCOPE_ROUTE].to_dict(),
            "agency_metrics": self.results[SCOPE_AGENCY].to_dict(),
            "arrivals": self.results[SCOPE_ARRIVALS].to_dict(),
            "routes": self.routes.to_dict(),
            "spider_map": dict(self.spider_map),
            "location": copy.deepcopy(self.location),
        }


Listener = Callable[[Action], None]

_SCOPE_BY_ACTION: Dict[str, tuple] = {}
for _scope in SCOPES:
    _SCOPE_BY_ACTION[request_type(_scope)] = (_scope, STATUS_REQUESTING)
    _SCOPE_BY_ACTION[received_type(_scope)] = (_scope, STATUS_RECEIVED)
    _SCOPE_BY_ACTION[error_type(_scope)] = (_scope, STATUS_ERROR)
    _SCOPE_BY_ACTION[reset_type(_scope)] = (_scope, STATUS_IDLE)


def _reduce_scope(result: MetricsResult, status: str, action: Action) -> MetricsResult:
    if status == STATUS_REQUESTING:
        # keep the previous data on screen until the new response lands
        return MetricsResult(
            status=STATUS_REQUESTING,
            fingerprint=action.fingerprint,
            data=result.data,
            error=None,
        )
    if status == STATUS_IDLE:
        return MetricsResult()
    if status == STATUS_RECEIVED:
        return MetricsResult(
            status=STATUS_RECEIVED,
            fingerprint=action.fingerprint,
            data=action.data,
            error=None,
        )
    return MetricsResult(
        status=STATUS_ERROR,
        fingerprint=result.fingerprint,
        data=None,
        error=action.error,
    )


class MetricsStore:
    """Synchronous dispatch/read store. All updates run on the event loop thread."""

    def __init__(self, initial: Optional[MetricsState] = None) -> None:
        self._state = initial if initial is not None else MetricsState()
        self._listeners: List[Listener] = []

    def get_state(self) -> MetricsState:
        """Deep snapshot of the whole document, fetched data included."""
        return copy.deepcopy(self._state)

    # Cheap reads for the fetch path; none of these copy fetched data.
    def fingerprint(self, scope: str) -> Optional[str]:
        return self._state.results[scope].fingerprint

    def routes_agency_id(self) -> Optional[str]:
        return self._state.routes.agency_id

    def graph_params(self) -> SelectionParams:
        # frozen, safe to share
        return self._state.graph_params

    def location(self) -> Dict[str, Any]:
        return copy.deepcopy(self._state.location)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def dispatch(self, action: Action) -> None:
        self._state = self._reduce(self._state, action)
        for listener in list(self._listeners):
            listener(action)

    def _reduce(self, state: MetricsState, action: Action) -> MetricsState:
        scoped = _SCOPE_BY_ACTION.get(action.type)
        if scoped is not None:
            scope, status = scoped
            state.results[scope] = _reduce_scope(state.results[scope], status, action)
            return state

        if action.type == RECEIVED_GRAPH_PARAMS and action.params is not None:
            state.graph_params = action.params
        elif action.type == REQUEST_ROUTES:
            state.routes = RoutesResult(
                status=STATUS_REQUESTING,
                agency_id=action.agency_id,
                data=state.routes.data,
            )
        elif action.type == RECEIVED_ROUTES:
            state.routes = RoutesResult(
                status=STATUS_RECEIVED,
                agency_id=action.agency_id,
                data=action.data,
            )
        elif action.type == ERROR_ROUTES:
            state.routes = RoutesResult(
                status=STATUS_ERROR,
                agency_id=state.routes.agency_id,
                error=action.error,
            )
        elif action.type == RECEIVED_SPIDER_MAP_CLICK:
            state.spider_map = {
                "nearby_lines": list(action.extra.get("nearby_lines") or []),
                "lat_lng": action.extra.get("lat_lng"),
            }
        elif action.type == UPDATE_LOCATION:
            state.location = {
                "type": action.extra.get("type", state.location.get("type")),
                "payload": dict(action.extra.get("payload") or {}),
                "query": dict(action.extra.get("query") or {}),
            }
        return state
