"""Tests for the fallback chain and the provider factory."""

from __future__ import annotations

import logging
from datetime import date

import pytest

from carbon_storage.carbon_models import VegetationSignal
from carbon_storage.errors import (
    ConfigurationError,
    InvalidInputError,
    TransientError,
)
from carbon_storage.signal_provider import (
    FallbackSignalProvider,
    LiveSignalProvider,
    SimulatedSignalProvider,
    VegetationSignalProvider,
    build_signal_provider,
)
from conftest import square_ring


class _Failing(VegetationSignalProvider):
    method = "failing"

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = 0

    def _estimate(self, ring, date_range):
        self.calls += 1
        raise self.error


class _Fixed(VegetationSignalProvider):
    method = "fixed"

    def __init__(self) -> None:
        self.calls = 0

    def _estimate(self, ring, date_range):
        self.calls += 1
        return VegetationSignal(
            mean_index=0.5,
            index_std_dev=0.1,
            land_cover_breakdown={"Forest": 100.0},
            cloud_coverage_percent=3.0,
            source=self.method,
        )


def test_falls_through_signal_failures(caplog: pytest.LogCaptureFixture) -> None:
    failing = _Failing(TransientError("down"))
    fixed = _Fixed()
    chain = FallbackSignalProvider([failing, fixed])

    with caplog.at_level(logging.WARNING):
        signal = chain.estimate_signal(square_ring())

    assert signal.source == "fixed"
    assert (failing.calls, fixed.calls) == (1, 1)
    assert "Fallback provider invocation failed" in caplog.text


def test_stops_at_first_success() -> None:
    first, second = _Fixed(), _Fixed()
    FallbackSignalProvider([first, second]).estimate_signal(square_ring())
    assert (first.calls, second.calls) == (1, 0)


def test_raises_last_error_when_all_fail() -> None:
    last = ConfigurationError("no credentials")
    chain = FallbackSignalProvider([_Failing(TransientError("down")), _Failing(last)])
    with pytest.raises(ConfigurationError) as excinfo:
        chain.estimate_signal(square_ring())
    assert excinfo.value is last


def test_input_errors_are_not_swallowed() -> None:
    fixed = _Fixed()
    chain = FallbackSignalProvider([_Failing(InvalidInputError("bad")), fixed])
    with pytest.raises(InvalidInputError):
        chain.estimate_signal(square_ring())
    assert fixed.calls == 0


def test_empty_chain_rejected() -> None:
    with pytest.raises(ValueError):
        FallbackSignalProvider([])


def test_factory_simulated(make_settings) -> None:
    provider = build_signal_provider("simulated", make_settings())
    assert isinstance(provider, SimulatedSignalProvider)


def test_factory_live(make_settings) -> None:
    provider = build_signal_provider(" LIVE ", make_settings())
    assert isinstance(provider, LiveSignalProvider)


def test_factory_auto_degrades_to_simulation(make_settings) -> None:
    provider = build_signal_provider("auto", make_settings())

    assert isinstance(provider, FallbackSignalProvider)
    assert [type(p) for p in provider.providers] == [
        LiveSignalProvider,
        SimulatedSignalProvider,
    ]
    # No service account configured: the live leg fails and simulation answers.
    signal = provider.estimate_signal(
        square_ring(), (date(2024, 1, 1), date(2024, 12, 31))
    )
    assert signal.source == "simulated-ndvi-landcover"


def test_factory_defaults_to_settings(make_settings) -> None:
    provider = build_signal_provider(settings=make_settings(signal_source="auto"))
    assert isinstance(provider, FallbackSignalProvider)


def test_factory_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CARBON_STORAGE_SIGNAL_SOURCE", "live")
    assert isinstance(build_signal_provider(), LiveSignalProvider)


def test_factory_rejects_unknown_source(make_settings) -> None:
    with pytest.raises(ConfigurationError, match="Unknown signal source"):
        build_signal_provider("satellite-dish", make_settings())


def test_single_failing_provider_logs_and_reraises(caplog: pytest.LogCaptureFixture) -> None:
    error = TransientError("down")
    chain = FallbackSignalProvider([_Failing(error)])

    with caplog.at_level(logging.WARNING, logger="carbon_storage.signal_provider.fallback"):
        with pytest.raises(TransientError) as excinfo:
            chain.estimate_signal(square_ring())

    assert excinfo.value is error
    assert caplog.text.count("Fallback provider invocation failed") == 1
