"""Vegetation signal provider implementations and abstractions."""

from __future__ import annotations

from carbon_storage.signal_provider.base import DateRange, VegetationSignalProvider
from carbon_storage.signal_provider.factory import SIGNAL_SOURCES, build_signal_provider
from carbon_storage.signal_provider.fallback import FallbackSignalProvider
from carbon_storage.signal_provider.live import LiveSignalProvider
from carbon_storage.signal_provider.simulated import SimulatedSignalProvider

__all__ = [
    "DateRange",
    "FallbackSignalProvider",
    "LiveSignalProvider",
    "SIGNAL_SOURCES",
    "SimulatedSignalProvider",
    "VegetationSignalProvider",
    "build_signal_provider",
]
