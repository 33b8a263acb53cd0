"""NDVI time series for a single point."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone

from carbon_storage.earthengine.expressions import ndvi_time_series_expression
from carbon_storage.earthengine.jobs import ComputeJobPoller
from carbon_storage.errors import InvalidInputError, RemoteComputeError

LOGGER = logging.getLogger(__name__)

__all__ = ["NdviPoint", "fetch_ndvi_time_series", "parse_ndvi_features"]


@dataclass(frozen=True, slots=True)
class NdviPoint:
    """One NDVI observation."""

    timestamp: datetime
    ndvi: float

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.timestamp.date().isoformat(),
            "timestamp": int(self.timestamp.timestamp() * 1000),
            "ndvi": self.ndvi,
        }


def fetch_ndvi_time_series(
    poller: ComputeJobPoller,
    longitude: float,
    latitude: float,
    start: date,
    end: date,
) -> list[NdviPoint]:
    """Return the NDVI observations at a point between ``start`` and ``end``.

    Raises:
        InvalidInputError: If the point or date window is invalid.
        RemoteComputeError: If the job fails or returns an unexpected shape.
    """

    if not (-180.0 <= longitude <= 180.0 and -90.0 <= latitude <= 90.0):
        raise InvalidInputError("longitude/latitude outside the valid range")
    if end <= start:
        raise InvalidInputError("end date must be after start date")

    expression = ndvi_time_series_expression(longitude, latitude, start, end)
    job = poller.submit_and_await(expression)
    points = parse_ndvi_features(job.result)
    LOGGER.info(
        "NDVI time series retrieved",
        extra={"points": len(points), "job_name": job.job_name},
    )
    return points


def parse_ndvi_features(result: object) -> list[NdviPoint]:
    """Convert a feature collection payload into sorted NDVI points.

    Features without a numeric NDVI value are dropped.
    """

    if isinstance(result, dict):
        features = result.get("features", [])
    else:
        features = result
    if not isinstance(features, list):
        raise RemoteComputeError(
            "NDVI time series result has no feature list", detail=result
        )

    points: list[NdviPoint] = []
    for feature in features:
        properties = feature.get("properties") if isinstance(feature, dict) else None
        if not isinstance(properties, dict):
            continue
        value = properties.get("NDVI")
        millis = properties.get("system:time_start")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not math.isfinite(value):
            continue
        try:
            timestamp = datetime.fromtimestamp(int(millis) / 1000.0, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            continue
        points.append(NdviPoint(timestamp=timestamp, ndvi=float(value)))
    points.sort(key=lambda point: point.timestamp)
    return points
