"""Async client for the metrics GraphQL backend and the S3 data archives."""
from __future__ import annotations

from typing import Any, Optional

import httpx

from metrics_config import ARRIVAL_DOWNLOAD_PATH, GRAPHQL_PATH, MetricsSettings


class MetricsClientError(RuntimeError):
    """Raised when a request to the metrics backend or archive cannot be completed."""


class TransportError(MetricsClientError):
    """Network failure or non-2xx response.

    ``str(exc)`` is the backend's first structured error message when the
    response body carried one, otherwise the transport error text.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _first_error_message(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    errors = payload.get("errors")
    if not isinstance(errors, list) or not errors:
        return None
    first = errors[0]
    if isinstance(first, dict) and first.get("message") is not None:
        return str(first["message"])
    return None


def _error_body_message(response: httpx.Response) -> Optional[str]:
    try:
        return _first_error_message(response.json())
    except ValueError:
        return None


class MetricsClient:
    """Minimal client for the metrics API; one ``httpx.AsyncClient`` shared by every call."""

    def __init__(
        self,
        settings: Optional[MetricsSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings or MetricsSettings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_env(cls) -> "MetricsClient":
        return cls(settings=MetricsSettings.from_env())

    @property
    def settings(self) -> MetricsSettings:
        return self._settings

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.http_timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, url: str, params: Optional[dict] = None) -> httpx.Response:
        client = await self._ensure_client()
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = _error_body_message(exc.response) or str(exc)
            raise TransportError(message, status_code=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        return response

    async def query(self, document: str, variables_json: str) -> Any:
        """Run a GraphQL query; returns the parsed ``{"data": ..., "errors": ...}`` payload."""
        response = await self._get(
            f"{self._settings.base_url}{GRAPHQL_PATH}",
            params={"query": document, "variables": variables_json},
        )
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"invalid JSON from metrics backend: {exc}") from exc

    async def get_json(self, url: str) -> Any:
        response = await self._get(url)
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"invalid JSON from {url}: {exc}") from exc

    async def download_arrivals(self, variables_json: str) -> bytes:
        response = await self._get(
            f"{self._settings.base_url}{ARRIVAL_DOWNLOAD_PATH}",
            params={"variables": variables_json},
        )
        return response.content
