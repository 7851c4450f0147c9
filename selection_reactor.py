"""
Reacts to each replacement of the graph parameters.

Rules, evaluated in order on every selection:

1. Store the new parameters.
2. If the (date, route, agency) triple changed, clear the arrival archive so
   archive data for the old selection is never shown beside new metrics.
3. With a primary date: fetch agency metrics.
4. With agency and route: fetch route metrics.
5. With agency, route, direction and both stops: fetch trip metrics;
   otherwise clear them.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence

from fetch_coordinator import FetchCoordinator
from metrics_store import (
    RECEIVED_GRAPH_PARAMS,
    RECEIVED_SPIDER_MAP_CLICK,
    UPDATE_LOCATION,
    Action,
    MetricsStore,
)
from selection import SelectionParams


class SelectionReactor:
    def __init__(self, store: MetricsStore, coordinator: FetchCoordinator) -> None:
        self._store = store
        self._coordinator = coordinator

    def handle_graph_params(self, params: SelectionParams) -> List[asyncio.Task]:
        """Apply a new selection and start the fetches it calls for.

        Must run on the event loop. Returns the network tasks that were
        started; duplicate requests start none.
        """
        old_params = self._store.graph_params()
        self._store.dispatch(Action(type=RECEIVED_GRAPH_PARAMS, params=params))
        graph_params = self._store.graph_params()

        if old_params.identity() != graph_params.identity():
            # Clear out stale data: arrivals belong to a different route, day, or agency.
            self._coordinator.reset_arrivals()

        tasks: List[Optional[asyncio.Task]] = []
        if graph_params.first_date_range.date:
            tasks.append(self._coordinator.fetch_agency_metrics(graph_params))

        if graph_params.agency_id and graph_params.route_id:
            tasks.append(self._coordinator.fetch_route_metrics(graph_params))

        missing = graph_params.missing_trip_fields()
        if not missing:
            tasks.append(self._coordinator.fetch_trip_metrics(graph_params))
        else:
            print(f"[selection] trip metrics cleared, missing {', '.join(missing)}")
            self._coordinator.reset_trip_metrics()

        return [task for task in tasks if task is not None]

    def handle_spider_map_click(
        self, nearby_lines: Sequence[Dict[str, Any]], lat_lng: Optional[Mapping[str, float]]
    ) -> None:
        self._store.dispatch(
            Action(
                type=RECEIVED_SPIDER_MAP_CLICK,
                extra={"nearby_lines": list(nearby_lines), "lat_lng": dict(lat_lng) if lat_lng else None},
            )
        )

    def update_query(self, query_params: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge ``query_params`` into the current location's query; returns the new location."""
        current = self._store.location()
        new_query = {**current.get("query", {}), **query_params}
        self._store.dispatch(
            Action(
                type=UPDATE_LOCATION,
                extra={
                    "type": current.get("type"),
                    "payload": current.get("payload", {}),
                    "query": new_query,
                },
            )
        )
        return self._store.location()
