"""Tests for the point NDVI time series."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone

import httpx
import pytest

from carbon_storage.earthengine import ComputeJobPoller, fetch_ndvi_time_series
from carbon_storage.earthengine.timeseries import parse_ndvi_features
from carbon_storage.errors import InvalidInputError, RemoteComputeError

JUNE_1 = 1_717_200_000_000
JUNE_11 = JUNE_1 + 10 * 86_400_000


def _feature(ndvi: object, millis: object) -> dict[str, object]:
    return {
        "type": "Feature",
        "geometry": None,
        "properties": {"NDVI": ndvi, "system:time_start": millis},
    }


def test_features_sorted_and_filtered() -> None:
    points = parse_ndvi_features(
        {
            "type": "FeatureCollection",
            "features": [
                _feature(0.55, JUNE_11),
                _feature(None, JUNE_1),
                _feature(0.42, JUNE_1),
                _feature(0.3, "not-a-time"),
                {"properties": None},
            ],
        }
    )

    assert [point.ndvi for point in points] == [0.42, 0.55]
    assert points[0].timestamp == datetime.fromtimestamp(JUNE_1 / 1000, tz=timezone.utc)
    assert points[0].to_dict() == {
        "date": "2024-06-01",
        "timestamp": JUNE_1,
        "ndvi": 0.42,
    }


def test_bare_feature_list_accepted() -> None:
    assert len(parse_ndvi_features([_feature(0.5, JUNE_1)])) == 1


def test_missing_feature_list_rejected() -> None:
    with pytest.raises(RemoteComputeError):
        parse_ndvi_features({"features": "nope"})


def test_fetch_submits_point_expression() -> None:
    expressions: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        expressions.append(json.loads(request.content)["expression"])
        return httpx.Response(200, json={"result": {"features": [_feature(0.6, JUNE_1)]}})

    poller = ComputeJobPoller(
        "token", client=httpx.Client(transport=httpx.MockTransport(handler))
    )
    points = fetch_ndvi_time_series(
        poller, -1.25, 51.75, date(2024, 1, 1), date(2024, 12, 31)
    )

    assert [point.ndvi for point in points] == [0.6]
    assert "ee.Geometry.Point([-1.25, 51.75])" in expressions[0]
    assert "'2024-01-01', '2024-12-31'" in expressions[0]


@pytest.mark.parametrize(
    ("lon", "lat", "start", "end"),
    [
        (181.0, 0.0, date(2024, 1, 1), date(2024, 2, 1)),
        (0.0, -91.0, date(2024, 1, 1), date(2024, 2, 1)),
        (0.0, 0.0, date(2024, 2, 1), date(2024, 2, 1)),
    ],
)
def test_invalid_requests_rejected(
    lon: float, lat: float, start: date, end: date
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    poller = ComputeJobPoller(
        "token", client=httpx.Client(transport=httpx.MockTransport(handler))
    )
    with pytest.raises(InvalidInputError):
        fetch_ndvi_time_series(poller, lon, lat, start, end)
