import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from metrics_client import MetricsClient, TransportError  # noqa: E402
from metrics_config import MetricsSettings  # noqa: E402


SETTINGS = MetricsSettings(base_url="https://metrics.example.com", agency_id="sf-muni")


def _client(handler) -> MetricsClient:
    return MetricsClient(settings=SETTINGS, transport=httpx.MockTransport(handler))


def _run(client: MetricsClient, call):
    async def main():
        try:
            return await call(client)
        finally:
            await client.aclose()

    return asyncio.run(main())


def test_query_sends_document_and_variables():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["query"] = request.url.params["query"]
        seen["variables"] = request.url.params["variables"]
        return httpx.Response(200, json={"data": {"agency": {"agencyId": "sf-muni"}}})

    client = _client(handler)
    payload = _run(client, lambda c: c.query("query { agency }", '{"agencyId":"sf-muni"}'))

    assert payload == {"data": {"agency": {"agencyId": "sf-muni"}}}
    assert seen["path"] == "/api/graphql"
    assert seen["query"] == "query { agency }"
    assert json.loads(seen["variables"]) == {"agencyId": "sf-muni"}


def test_query_returns_error_list_unchanged():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": [{"message": "bad route"}]})

    client = _client(handler)
    payload = _run(client, lambda c: c.query("q", "{}"))
    assert payload == {"errors": [{"message": "bad route"}]}


def test_http_error_uses_backend_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"errors": [{"message": "Unknown route 99"}]})

    client = _client(handler)
    with pytest.raises(TransportError) as excinfo:
        _run(client, lambda c: c.query("q", "{}"))
    assert str(excinfo.value) == "Unknown route 99"
    assert excinfo.value.status_code == 400


def test_http_error_without_body_uses_transport_text():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream down")

    client = _client(handler)
    with pytest.raises(TransportError) as excinfo:
        _run(client, lambda c: c.query("q", "{}"))
    assert "503" in str(excinfo.value)
    assert excinfo.value.status_code == 503


def test_network_error_becomes_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(TransportError) as excinfo:
        _run(client, lambda c: c.query("q", "{}"))
    assert "connection refused" in str(excinfo.value)
    assert excinfo.value.status_code is None


def test_get_json_missing_archive():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, text="<Error><Code>AccessDenied</Code></Error>")

    client = _client(handler)
    with pytest.raises(TransportError):
        _run(client, lambda c: c.get_json("https://bucket.s3.amazonaws.com/arrivals/x.json.gz?aj"))


def test_get_json_invalid_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    client = _client(handler)
    with pytest.raises(TransportError):
        _run(client, lambda c: c.get_json("https://bucket.s3.amazonaws.com/routes/x.json.gz?x"))


def test_download_arrivals_returns_bytes():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["variables"] = request.url.params["variables"]
        return httpx.Response(200, content=b"route,stop\n12,4015\n")

    client = _client(handler)
    content = _run(client, lambda c: c.download_arrivals('{"routeId":"12"}'))
    assert content == b"route,stop\n12,4015\n"
    assert seen["path"] == "/api/arrival_download"
    assert seen["variables"] == '{"routeId":"12"}'
