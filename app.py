"""
Transit Metrics Orchestrator (FastAPI)

Purpose
=======
Turn the dashboard's date-range/route/stop selection into metrics queries,
fetch them from the metrics backend without issuing duplicate requests, and
expose the resulting state to the dashboard.

Key features
------------
- Agency, route and trip metrics fetched per selection, deduplicated on the
  serialized query variables; stale responses are dropped.
- Per-day arrival archives from S3, cleared whenever date, route or agency changes.
- Route catalog and arrivals CSV download proxies.

Run
---
$ uvicorn app:app --reload --port 8080

Environment
-----------
- PYTHON >= 3.10
- pip install fastapi uvicorn httpx
- METRICS_BASE_URL, S3_BUCKET, ROUTES_VERSION, ARRIVALS_VERSION, AGENCY_ID,
  MAX_DATE_RANGE, METRICS_HTTP_TIMEOUT_S (see metrics_config.py)
"""

from __future__ import annotations
from typing import Any, Dict, Optional
import asyncio
from urllib.parse import quote

from fastapi import Body, FastAPI, HTTPException, Response

from fetch_coordinator import FetchCoordinator
from metrics_client import MetricsClient, MetricsClientError
from metrics_config import MetricsSettings
from metrics_store import MetricsStore
from selection import SelectionParams
from selection_reactor import SelectionReactor


# ---------------------------
# App & state
# ---------------------------
app = FastAPI(title="Transit Metrics Orchestrator")


def _build_services(client: MetricsClient) -> None:
    app.state.metrics_client = client
    app.state.store = MetricsStore()
    app.state.coordinator = FetchCoordinator(app.state.store, client)
    app.state.reactor = SelectionReactor(app.state.store, app.state.coordinator)


@app.on_event("startup")
async def init_metrics_services() -> None:
    if getattr(app.state, "metrics_client", None) is not None:
        return
    try:
        settings = MetricsSettings.from_env()
    except RuntimeError as exc:
        print(f"[startup] invalid metrics configuration, using defaults: {exc}")
        settings = MetricsSettings()
    _build_services(MetricsClient(settings=settings))
    print(f"[startup] metrics backend {settings.base_url}, agency {settings.agency_id}")


@app.on_event("shutdown")
async def shutdown_metrics_client() -> None:
    client: Optional[MetricsClient] = getattr(app.state, "metrics_client", None)
    if client is not None:
        await client.aclose()
    app.state.metrics_client = None


def _parse_selection(payload: Optional[Dict[str, Any]]) -> SelectionParams:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="invalid payload")
    try:
        return SelectionParams.from_dict(payload)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _state_payload() -> Dict[str, Any]:
    return app.state.store.get_state().to_dict()


@app.get("/api/state")
async def api_state():
    return _state_payload()


@app.post("/api/graph-params")
async def api_graph_params(payload: Optional[Dict[str, Any]] = Body(None)):
    params = _parse_selection(payload)
    tasks = app.state.reactor.handle_graph_params(params)
    if tasks:
        await asyncio.gather(*tasks)
    return _state_payload()


@app.post("/api/query")
async def api_update_query(payload: Optional[Dict[str, Any]] = Body(None)):
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="invalid payload")
    return {"location": app.state.reactor.update_query(payload)}


@app.post("/api/spider-map/click")
async def api_spider_map_click(payload: Optional[Dict[str, Any]] = Body(None)):
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="invalid payload")
    nearby_lines = payload.get("nearbyLines") or []
    if not isinstance(nearby_lines, list):
        raise HTTPException(status_code=400, detail="nearbyLines must be a list")
    app.state.reactor.handle_spider_map_click(nearby_lines, payload.get("latLng"))
    return {"spider_map": app.state.store.get_state().spider_map}


@app.post("/api/arrivals")
async def api_fetch_arrivals():
    graph_params = app.state.store.graph_params()
    if app.state.coordinator.arrivals_url(graph_params) is None:
        raise HTTPException(status_code=400, detail="date and routeId are required")
    task = app.state.coordinator.fetch_arrivals(graph_params)
    if task is not None:
        await task
    return {"arrivals": app.state.store.get_state().results["arrivals"].to_dict()}


@app.get("/api/routes")
async def api_routes():
    task = app.state.coordinator.fetch_routes()
    if task is not None:
        await task
    return app.state.store.get_state().routes.to_dict()


@app.get("/api/arrivals/download")
async def api_arrivals_download():
    graph_params = app.state.store.graph_params()
    if not graph_params.route_id:
        raise HTTPException(status_code=400, detail="routeId is required")
    try:
        result = await app.state.coordinator.fetch_download(graph_params)
    except MetricsClientError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    if result is None:
        raise HTTPException(status_code=404, detail="no dates selected")
    filename, content = result
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{quote(filename)}\""},
    )
