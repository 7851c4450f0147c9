"""S3 locations of the static route catalog and per-day arrival archives."""
from __future__ import annotations

from typing import Optional, Sequence

from metrics_config import ARRIVALS_VERSION, ROUTES_VERSION, S3_BUCKET


def generate_routes_url(
    agency_id: str,
    bucket: str = S3_BUCKET,
    version: str = ROUTES_VERSION,
) -> str:
    return f"https://{bucket}.s3.amazonaws.com/routes/{version}/routes_{version}_{agency_id}.json.gz?x"


def generate_arrivals_url(
    agency_id: str,
    date_str: str,
    route_id: str,
    bucket: str = S3_BUCKET,
    version: str = ARRIVALS_VERSION,
) -> str:
    """S3 url of one route's arrival history for one day.

    ``date_str`` is YYYY-MM-DD; its dashes become path separators.
    """
    date_path = date_str.replace("-", "/")
    return (
        f"https://{bucket}.s3.amazonaws.com/arrivals/{version}/{agency_id}/{date_path}"
        f"/arrivals_{version}_{agency_id}_{date_str}_{route_id}.json.gz?aj"
    )


def arrivals_download_filename(route_id: Optional[str], dates: Sequence[str]) -> str:
    if not dates:
        raise ValueError("cannot name a download without any dates")
    if len(dates) == 1:
        return f"arrivals_{route_id}_{dates[0]}.csv"
    # Only the first two expanded dates are named, however many the range holds.
    return f"arrivals_{route_id}_{dates[0]}_{dates[1]}.csv"
