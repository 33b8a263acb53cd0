"""Build the vegetation signal strategy named by configuration."""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from carbon_storage.errors import ConfigurationError
from carbon_storage.settings import CarbonStorageSettings, get_settings
from carbon_storage.signal_provider.base import VegetationSignalProvider
from carbon_storage.signal_provider.fallback import FallbackSignalProvider
from carbon_storage.signal_provider.live import LiveSignalProvider
from carbon_storage.signal_provider.simulated import SimulatedSignalProvider

LOGGER = logging.getLogger(__name__)

SIGNAL_SOURCES: tuple[str, ...] = ("simulated", "live", "auto")


def build_signal_provider(
    source: str | None = None,
    settings: CarbonStorageSettings | None = None,
    *,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] | None = None,
) -> VegetationSignalProvider:
    """Construct the provider for ``source``.

    Args:
        source: ``"simulated"``, ``"live"`` or ``"auto"`` (live, then
            simulated when the live path is unavailable). Defaults to
            ``settings.signal_source``.
        settings: Settings to read credentials and endpoints from.
        client: Optional shared HTTP client for the live provider.
        sleep: Optional sleep function used between job polls.

    Raises:
        ConfigurationError: If ``source`` names no known strategy.
    """

    settings_obj = settings or get_settings()
    name = (source or settings_obj.signal_source).strip().lower()

    if name == "simulated":
        return SimulatedSignalProvider()
    if name == "live":
        return LiveSignalProvider(settings=settings_obj, client=client, sleep=sleep)
    if name == "auto":
        return FallbackSignalProvider(
            [
                LiveSignalProvider(settings=settings_obj, client=client, sleep=sleep),
                SimulatedSignalProvider(),
            ]
        )
    LOGGER.warning("Unknown signal source", extra={"signal_source": name})
    raise ConfigurationError(
        f"Unknown signal source {name!r}; expected one of {', '.join(SIGNAL_SOURCES)}"
    )
