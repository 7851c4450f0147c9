"""Environment configuration for the metrics orchestration service."""
from __future__ import annotations

import os
from dataclasses import dataclass

import httpx


# ---------------------------
# Config
# ---------------------------
METRICS_BASE_URL = os.getenv("METRICS_BASE_URL", "https://api.opentransit.city").rstrip("/")
S3_BUCKET = os.getenv("S3_BUCKET", "opentransit-data")
ROUTES_VERSION = os.getenv("ROUTES_VERSION", "v3")
ARRIVALS_VERSION = os.getenv("ARRIVALS_VERSION", "v1")
AGENCY_ID = os.getenv("AGENCY_ID", "sf-muni")
MAX_DATE_RANGE = int(os.getenv("MAX_DATE_RANGE", "90"))
METRICS_HTTP_TIMEOUT_S = float(os.getenv("METRICS_HTTP_TIMEOUT_S", "20"))

GRAPHQL_PATH = "/api/graphql"
ARRIVAL_DOWNLOAD_PATH = "/api/arrival_download"


@dataclass
class MetricsSettings:
    """Settings shared by the client, coordinator and resource locators."""
    base_url: str = METRICS_BASE_URL
    s3_bucket: str = S3_BUCKET
    routes_version: str = ROUTES_VERSION
    arrivals_version: str = ARRIVALS_VERSION
    agency_id: str = AGENCY_ID
    max_date_range: int = MAX_DATE_RANGE
    timeout_s: float = METRICS_HTTP_TIMEOUT_S

    @classmethod
    def from_env(cls) -> "MetricsSettings":
        """Build settings from the environment at call time.

        Recognized variables: ``METRICS_BASE_URL``, ``S3_BUCKET``,
        ``ROUTES_VERSION``, ``ARRIVALS_VERSION``, ``AGENCY_ID``,
        ``MAX_DATE_RANGE`` and ``METRICS_HTTP_TIMEOUT_S``.
        """
        max_days_raw = (os.getenv("MAX_DATE_RANGE") or "").strip()
        timeout_raw = (os.getenv("METRICS_HTTP_TIMEOUT_S") or "").strip()
        try:
            max_days = int(max_days_raw) if max_days_raw else MAX_DATE_RANGE
        except ValueError as exc:
            raise RuntimeError(f"MAX_DATE_RANGE must be an integer, got {max_days_raw!r}") from exc
        if max_days < 1:
            raise RuntimeError("MAX_DATE_RANGE must be at least 1")
        try:
            timeout_s = float(timeout_raw) if timeout_raw else METRICS_HTTP_TIMEOUT_S
        except ValueError as exc:
            raise RuntimeError(
                f"METRICS_HTTP_TIMEOUT_S must be a number, got {timeout_raw!r}"
            ) from exc

        return cls(
            base_url=(os.getenv("METRICS_BASE_URL") or METRICS_BASE_URL).strip().rstrip("/"),
            s3_bucket=(os.getenv("S3_BUCKET") or S3_BUCKET).strip(),
            routes_version=(os.getenv("ROUTES_VERSION") or ROUTES_VERSION).strip(),
            arrivals_version=(os.getenv("ARRIVALS_VERSION") or ARRIVALS_VERSION).strip(),
            agency_id=(os.getenv("AGENCY_ID") or AGENCY_ID).strip(),
            max_date_range=max_days,
            timeout_s=timeout_s,
        )

    @property
    def http_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout_s, connect=min(5.0, self.timeout_s))
