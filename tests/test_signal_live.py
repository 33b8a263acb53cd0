"""Tests for the Earth Engine backed vegetation signal."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import date

import httpx
import pytest

from carbon_storage.earthengine.auth import AccessToken, ServiceAccountCredential
from carbon_storage.earthengine.jobs import ComputeJobPoller
from carbon_storage.errors import (
    AuthenticationError,
    ConfigurationError,
    InvalidGeometryError,
    RemoteComputeError,
)
from carbon_storage.settings import CarbonStorageSettings
from carbon_storage.signal_provider import LiveSignalProvider
from carbon_storage.signal_provider.live import (
    histogram_to_percentages,
    parse_signal_result,
)
from conftest import square_ring

WINDOW = (date(2023, 7, 1), date(2024, 6, 30))
RESULT = {
    "ndvi_mean": 0.61234,
    "ndvi_std": 0.08,
    "cloud_coverage": 7.5,
    "image_count": 23,
    "land_cover": {"10": 600, "30": 300, "40": 100},
}


class FakeExchanger:
    def __init__(self) -> None:
        self.credentials: list[ServiceAccountCredential] = []

    def get_access_token(self, credential: ServiceAccountCredential) -> AccessToken:
        self.credentials.append(credential)
        return AccessToken(token="fake-token", expires_at=0.0)


class EarthEngineStub:
    """Route token and compute calls to canned answers."""

    def __init__(self, compute: Callable[[httpx.Request], httpx.Response]) -> None:
        self._compute = compute
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "live-token", "expires_in": 3600})
        return self._compute(request)


def test_parse_signal_result() -> None:
    signal = parse_signal_result(RESULT, WINDOW, source="gee-ndvi-landcover")

    assert signal.mean_index == 0.6123
    assert signal.index_std_dev == 0.08
    assert signal.cloud_coverage_percent == 7.5
    assert signal.satellite_images == 23
    assert signal.land_cover_breakdown == {
        "Forest": 60.0,
        "Grassland": 30.0,
        "Agricultural": 10.0,
    }
    assert signal.date_range == WINDOW
    assert signal.spatial_resolution == "10m"
    assert "COPERNICUS/S2_SR_HARMONIZED" in signal.datasets["ndvi"]


def test_missing_cloud_coverage_counts_as_clear() -> None:
    result = {key: value for key, value in RESULT.items() if key != "cloud_coverage"}
    assert parse_signal_result(result, WINDOW, source="x").cloud_coverage_percent == 0.0


@pytest.mark.parametrize(
    "mutation",
    [
        {"image_count": 0},
        {"ndvi_mean": None},
        {"ndvi_mean": "0.5"},
        {"ndvi_mean": 1.2},
        {"ndvi_std": -0.01},
        {"image_count": float("nan")},
        {"image_count": float("inf")},
        {"land_cover": {}},
        {"land_cover": None},
    ],
)
def test_unusable_results_rejected(mutation: dict[str, object]) -> None:
    result = {**RESULT, **mutation}
    with pytest.raises(RemoteComputeError):
        parse_signal_result(result, WINDOW, source="x")


def test_non_mapping_result_rejected() -> None:
    with pytest.raises(RemoteComputeError):
        parse_signal_result([0.5, 0.1], WINDOW, source="x")


def test_histogram_labels_unknown_classes() -> None:
    assert histogram_to_percentages({"10.0": 3, "254": 1}) == {
        "Forest": 75.0,
        "Class 254": 25.0,
    }


@pytest.mark.parametrize(
    "histogram",
    [
        {"10": 0},
        {"forest": 5},
        {"10": -1},
        {"10": "many"},
        {"Infinity": 5},
        {"NaN": 5},
        {"10": float("inf")},
    ],
)
def test_malformed_histograms_rejected(histogram: dict[str, object]) -> None:
    with pytest.raises(RemoteComputeError):
        histogram_to_percentages(histogram)


def test_provider_uses_injected_collaborators(
    credential: ServiceAccountCredential, make_settings
) -> None:
    submitted: list[object] = []

    def compute(request: httpx.Request) -> httpx.Response:
        submitted.append(json.loads(request.content)["expression"])
        return httpx.Response(200, json={"result": RESULT})

    exchanger = FakeExchanger()
    client = httpx.Client(transport=httpx.MockTransport(compute))
    tokens: list[AccessToken] = []

    def poller_factory(token: AccessToken) -> ComputeJobPoller:
        tokens.append(token)
        return ComputeJobPoller(token, client=client)

    provider = LiveSignalProvider(
        credential,
        settings=make_settings(),
        exchanger=exchanger,  # type: ignore[arg-type]
        poller_factory=poller_factory,
        today=lambda: date(2024, 6, 30),
    )

    signal = provider.estimate_signal(square_ring(10.0, 50.0, 0.01))

    assert exchanger.credentials == [credential]
    assert [token.token for token in tokens] == ["fake-token"]
    assert signal.source == "gee-ndvi-landcover"
    assert signal.date_range == (date(2023, 7, 1), date(2024, 6, 30))
    (expression,) = submitted
    assert "ee.Geometry.Polygon" in expression
    assert "'2023-07-01', '2024-06-30'" in expression


def test_provider_end_to_end_with_settings(
    service_account_json: str,
    make_settings: Callable[..., CarbonStorageSettings],
) -> None:
    job = "projects/demo-project/operations/op-7"
    polls = iter(
        [
            httpx.Response(200, json={"name": job, "done": False}),
            httpx.Response(200, json={"name": job, "done": True, "result": RESULT}),
        ]
    )

    def compute(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"name": job})
        return next(polls)

    stub = EarthEngineStub(compute)
    sleeps: list[float] = []
    provider = LiveSignalProvider(
        settings=make_settings(
            gee_service_account=service_account_json,
            gee_project="demo-project",
            poll_interval_seconds=1.5,
        ),
        client=httpx.Client(transport=httpx.MockTransport(stub)),
        sleep=sleeps.append,
    )

    signal = provider.estimate_signal(square_ring(), WINDOW)

    assert signal.mean_index == 0.6123
    assert sleeps == [1.5, 1.5]
    urls = [str(request.url) for request in stub.requests]
    assert urls[0] == "https://oauth2.googleapis.com/token"
    assert urls[1].endswith("/projects/demo-project/value:compute")
    assert stub.requests[1].headers["Authorization"] == "Bearer live-token"
    assert urls[2].endswith(job)


def test_missing_credential_is_configuration_error(make_settings) -> None:
    provider = LiveSignalProvider(settings=make_settings())
    with pytest.raises(ConfigurationError):
        provider.estimate_signal(square_ring())


def test_credential_read_from_environment(
    monkeypatch: pytest.MonkeyPatch, service_account_json: str
) -> None:
    monkeypatch.setenv("GEE_SERVICE_ACCOUNT", service_account_json)
    exchanger = FakeExchanger()
    provider = LiveSignalProvider(
        exchanger=exchanger,  # type: ignore[arg-type]
        poller_factory=lambda token: ComputeJobPoller(
            token,
            client=httpx.Client(
                transport=httpx.MockTransport(
                    lambda request: httpx.Response(200, json={"result": RESULT})
                )
            ),
        ),
    )

    provider.estimate_signal(square_ring())

    assert exchanger.credentials[0].project_id == "demo-project"


def test_rejected_token_propagates(
    service_account_json: str, make_settings
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    provider = LiveSignalProvider(
        service_account_json,
        settings=make_settings(),
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(AuthenticationError):
        provider.estimate_signal(square_ring())


def test_invalid_ring_rejected_before_network(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    provider = LiveSignalProvider(
        settings=make_settings(),
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(InvalidGeometryError):
        provider.estimate_signal([[0.0, 0.0], [0.0, 0.0], [0.0, 0.0], [0.0, 0.0]])
