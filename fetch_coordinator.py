"""
Deduplicated, staleness-aware fetches of metrics into the state store.

Every fetch follows the same protocol:

1. Serialize the request (variables JSON, or the archive URL) into a fingerprint.
2. If it equals the fingerprint already recorded for the scope, do nothing:
   the same request is in flight or already answered.
3. Otherwise dispatch ``REQUEST_*`` synchronously and schedule the network
   call on the running event loop.
4. When the response arrives, commit ``RECEIVED_*`` / ``ERROR_*`` only if the
   scope still records the same fingerprint. A response to a superseded
   request is discarded.

Failures never propagate out of a scope fetch; they end as an error state.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Set, Tuple

from metrics_client import MetricsClient, MetricsClientError
from metrics_config import MetricsSettings
from metrics_queries import (
    MetricsQuery,
    build_agency_metrics_query,
    build_download_variables,
    build_route_metrics_query,
    build_trip_metrics_query,
    extract_path,
    variables_fingerprint,
)
from metrics_store import (
    ERROR_ROUTES,
    RECEIVED_ROUTES,
    REQUEST_ROUTES,
    SCOPE_AGENCY,
    SCOPE_ARRIVALS,
    SCOPE_ROUTE,
    SCOPE_TRIP,
    Action,
    MetricsStore,
    error_type,
    received_type,
    request_type,
    reset_type,
)
from resource_urls import arrivals_download_filename, generate_arrivals_url, generate_routes_url
from selection import SelectionParams


NO_ARRIVALS_MESSAGE = "No data."
UNKNOWN_ERROR_MESSAGE = "Unknown error"

# Where each scope's metrics live inside the GraphQL ``data`` document.
RESULT_PATHS = {
    SCOPE_TRIP: ("agency", "route", "trip"),
    SCOPE_ROUTE: ("agency", "route"),
    SCOPE_AGENCY: ("agency",),
}


def _annotate_routes(payload: Any, agency_id: str) -> List[Dict[str, Any]]:
    routes = payload["routes"]
    if not isinstance(routes, list):
        raise TypeError("routes is not a list")
    annotated = []
    for index, route in enumerate(routes):
        if not isinstance(route, dict):
            raise TypeError(f"route {index} is not an object")
        entry = dict(route)
        entry["agencyId"] = agency_id
        entry["routeIndex"] = index
        annotated.append(entry)
    return annotated


def maybe_fetch(scope: str, fingerprint: str, prior_fingerprint: Optional[str]) -> Optional[Action]:
    """Return the REQUEST action to dispatch, or None when the request is a duplicate."""
    if fingerprint == prior_fingerprint:
        return None
    return Action(type=request_type(scope), fingerprint=fingerprint)


def backend_error_message(payload: Any) -> Optional[str]:
    """First message of a response-level ``errors`` list, if the payload has one."""
    if not isinstance(payload, dict) or not payload.get("errors"):
        return None
    errors = payload["errors"]
    first = errors[0] if isinstance(errors, list) else None
    if isinstance(first, dict) and first.get("message") is not None:
        return str(first["message"])
    return UNKNOWN_ERROR_MESSAGE


class FetchCoordinator:
    def __init__(
        self,
        store: MetricsStore,
        client: MetricsClient,
        settings: Optional[MetricsSettings] = None,
    ) -> None:
        self._store = store
        self._client = client
        self._settings = settings or client.settings
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Metrics scopes
    # ------------------------------------------------------------------
    def fetch_trip_metrics(self, params: SelectionParams) -> Optional[asyncio.Task]:
        query = build_trip_metrics_query(params, self._settings.max_date_range)
        return self._fetch_metrics(SCOPE_TRIP, query)

    def fetch_route_metrics(self, params: SelectionParams) -> Optional[asyncio.Task]:
        query = build_route_metrics_query(
            params, self._settings.max_date_range, self._settings.agency_id
        )
        return self._fetch_metrics(SCOPE_ROUTE, query)

    def fetch_agency_metrics(self, params: SelectionParams) -> Optional[asyncio.Task]:
        query = build_agency_metrics_query(
            params, self._settings.max_date_range, self._settings.agency_id
        )
        return self._fetch_metrics(SCOPE_AGENCY, query)

    def reset_trip_metrics(self) -> None:
        self._store.dispatch(Action(type=reset_type(SCOPE_TRIP)))

    def _fetch_metrics(self, scope: str, query: MetricsQuery) -> Optional[asyncio.Task]:
        fingerprint = query.variables_json
        prior = self._store.fingerprint(scope)
        action = maybe_fetch(scope, fingerprint, prior)
        if action is None:
            return None
        self._store.dispatch(action)
        return self._spawn(self._run_metrics_query(scope, query.document, fingerprint))

    async def _run_metrics_query(self, scope: str, document: str, fingerprint: str) -> None:
        try:
            payload = await self._client.query(document, fingerprint)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            print(f"[metrics] {scope} request failed: {message}")
            self._commit(scope, fingerprint, Action(type=error_type(scope), error=message))
            return

        message = backend_error_message(payload)
        if message is not None:
            # only the first error is surfaced
            print(f"[metrics] {scope} query error: {message}")
            self._commit(scope, fingerprint, Action(type=error_type(scope), error=message))
            return

        data = extract_path(payload, *RESULT_PATHS[scope])
        self._commit(
            scope,
            fingerprint,
            Action(type=received_type(scope), fingerprint=fingerprint, data=data),
        )

    # ------------------------------------------------------------------
    # Arrival archive
    # ------------------------------------------------------------------
    def arrivals_url(self, params: SelectionParams) -> Optional[str]:
        date_str = params.first_date_range.date
        if not date_str or not params.route_id:
            return None
        return generate_arrivals_url(
            params.agency_id or self._settings.agency_id,
            date_str,
            params.route_id,
            bucket=self._settings.s3_bucket,
            version=self._settings.arrivals_version,
        )

    def fetch_arrivals(self, params: SelectionParams) -> Optional[asyncio.Task]:
        url = self.arrivals_url(params)
        if url is None:
            return None
        prior = self._store.fingerprint(SCOPE_ARRIVALS)
        action = maybe_fetch(SCOPE_ARRIVALS, url, prior)
        if action is None:
            return None
        self._store.dispatch(action)
        return self._spawn(self._run_arrivals(url))

    async def _run_arrivals(self, url: str) -> None:
        try:
            data = await self._client.get_json(url)
        except Exception as exc:
            # a missing archive is routine (no service that day)
            print(f"[arrivals] {url} unavailable: {exc}")
            self._commit(
                SCOPE_ARRIVALS,
                url,
                Action(type=error_type(SCOPE_ARRIVALS), error=NO_ARRIVALS_MESSAGE),
            )
            return
        self._commit(
            SCOPE_ARRIVALS,
            url,
            Action(type=received_type(SCOPE_ARRIVALS), fingerprint=url, data=data),
        )

    def reset_arrivals(self) -> None:
        self._store.dispatch(Action(type=reset_type(SCOPE_ARRIVALS)))

    # ------------------------------------------------------------------
    # Route catalog
    # ------------------------------------------------------------------
    def fetch_routes(self) -> Optional[asyncio.Task]:
        agency_id = self._settings.agency_id
        if self._store.routes_agency_id() == agency_id:
            return None
        self._store.dispatch(Action(type=REQUEST_ROUTES, agency_id=agency_id))
        return self._spawn(self._run_routes(agency_id))

    async def _run_routes(self, agency_id: str) -> None:
        url = generate_routes_url(
            agency_id,
            bucket=self._settings.s3_bucket,
            version=self._settings.routes_version,
        )
        try:
            payload = await self._client.get_json(url)
            annotated = _annotate_routes(payload, agency_id)
        except MetricsClientError as exc:
            error = str(exc)
        except (KeyError, TypeError, ValueError) as exc:
            error = f"invalid route catalog: {exc}"
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
        else:
            if self._store.routes_agency_id() != agency_id:
                print(f"[routes] discarding stale catalog for {agency_id}")
                return
            self._store.dispatch(Action(type=RECEIVED_ROUTES, agency_id=agency_id, data=annotated))
            return

        print(f"[routes] failed to load catalog for {agency_id}: {error}")
        if self._store.routes_agency_id() == agency_id:
            self._store.dispatch(Action(type=ERROR_ROUTES, agency_id=agency_id, error=error))

    # ------------------------------------------------------------------
    # CSV download
    # ------------------------------------------------------------------
    async def fetch_download(self, params: SelectionParams) -> Optional[Tuple[str, bytes]]:
        """Fetch the arrivals CSV for the selection.

        Returns ``(filename, content)``, or None when the range expands to no
        dates. Client errors propagate to the caller; downloads do not touch
        the state store.
        """
        variables = build_download_variables(
            params, self._settings.max_date_range, self._settings.agency_id
        )
        dates = variables["dates"]
        if not dates:
            print(f"[download] no dates selected for route {params.route_id}")
            return None
        filename = arrivals_download_filename(params.route_id, dates)
        print(
            f"[download] route={params.route_id} direction={params.direction_id} "
            f"dates={len(dates)} -> {filename}"
        )
        content = await self._client.download_arrivals(variables_fingerprint(variables))
        return filename, content

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    def _commit(self, scope: str, fingerprint: str, action: Action) -> None:
        current = self._store.fingerprint(scope)
        if current != fingerprint:
            print(f"[metrics] discarding stale {scope} response")
            return
        self._store.dispatch(action)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until every fetch scheduled so far has committed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
