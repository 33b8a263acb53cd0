"""Offline vegetation signal derived from location and season."""

from __future__ import annotations

import math
import random
from collections.abc import Callable, Sequence
from datetime import date, timedelta
from typing import Final

from carbon_storage.carbon_models import VegetationSignal
from carbon_storage.geometry import centroid
from carbon_storage.signal_provider.base import DateRange, VegetationSignalProvider

__all__ = ["LATITUDE_BANDS", "SimulatedSignalProvider", "latitude_band"]

# Base land-cover weights per latitude band, before jitter.
LATITUDE_BANDS: Final[dict[str, dict[str, float]]] = {
    "tropical": {
        "Tropical Forest": 50.0,
        "Grassland": 15.0,
        "Agricultural": 20.0,
        "Shrubland": 5.0,
        "Wetland": 10.0,
    },
    "arid": {
        "Shrubland": 35.0,
        "Sparse Vegetation": 30.0,
        "Bare_soil": 20.0,
        "Grassland": 15.0,
    },
    "temperate": {
        "Temperate Forest": 45.0,
        "Grassland": 25.0,
        "Agricultural": 25.0,
        "Wetland": 5.0,
    },
    "mixed": {
        "Dense Forest": 40.0,
        "Grassland": 30.0,
        "Agricultural": 20.0,
        "Sparse Vegetation": 10.0,
    },
}

_INDEX_FLOOR = 0.3
_INDEX_CEILING = 0.9
_SEASONAL_AMPLITUDE = 0.1


def latitude_band(latitude: float) -> str:
    """Return the land-cover band name for ``latitude``."""

    magnitude = abs(latitude)
    if magnitude < 15:
        return "tropical"
    if magnitude < 35:
        return "arid"
    if magnitude < 55:
        return "temperate"
    return "mixed"


class SimulatedSignalProvider(VegetationSignalProvider):
    """Produce plausible vegetation statistics without any network access.

    The random source is seeded from the rounded centroid and the current
    year-month, so repeated requests for one parcel agree within a month.
    Passing ``rng`` overrides the seeding entirely.
    """

    method = "simulated-ndvi-landcover"

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._rng = rng
        self._today = today

    def _estimate(
        self, ring: Sequence[tuple[float, float]], date_range: DateRange | None
    ) -> VegetationSignal:
        longitude, latitude = centroid(ring)
        today = self._today()
        rng = self._rng or random.Random(self.seed_for(longitude, latitude, today))
        window = date_range or (today - timedelta(days=365), today)

        month = _window_month(window, today)
        lat_influence = abs(latitude) / 90.0
        base = 0.7 - lat_influence * 0.2
        seasonal = _SEASONAL_AMPLITUDE * lat_influence * _seasonal_phase(month, latitude)
        noise = (rng.random() - 0.5) * 0.2
        mean_index = min(_INDEX_CEILING, max(_INDEX_FLOOR, base + seasonal + noise))

        return VegetationSignal(
            mean_index=round(mean_index, 4),
            index_std_dev=round(0.12 + rng.random() * 0.08, 4),
            land_cover_breakdown=self._land_cover_mix(latitude, rng),
            cloud_coverage_percent=round(rng.random() * 12.0, 2),
            source=self.method,
            satellite_images=rng.randint(15, 34),
            date_range=window,
            spatial_resolution="10m",
            datasets={
                "ndvi": "Simulated Sentinel-2 NDVI",
                "land_cover": "Simulated land cover (latitude bands)",
                "soil_carbon": "IPCC Tier 1 default soil carbon stocks",
            },
        )

    @staticmethod
    def seed_for(longitude: float, latitude: float, today: date) -> str:
        """Return the RNG seed used for a parcel centroid in a given month."""

        return f"{longitude:.3f}:{latitude:.3f}:{today:%Y-%m}"

    @staticmethod
    def _land_cover_mix(latitude: float, rng: random.Random) -> dict[str, float]:
        weights = {
            label: weight * rng.uniform(0.5, 1.5)
            for label, weight in LATITUDE_BANDS[latitude_band(latitude)].items()
        }
        total = sum(weights.values())
        return {label: round(weight / total * 100.0, 2) for label, weight in weights.items()}


def _window_month(window: DateRange, today: date) -> int:
    start, end = window
    if start <= today <= end:
        return today.month
    midpoint = start + (end - start) / 2
    return midpoint.month


def _seasonal_phase(month: int, latitude: float) -> float:
    """Cosine in ``[-1, 1]`` peaking in July (north) or January (south)."""

    peak = 7 if latitude >= 0 else 1
    return math.cos(2.0 * math.pi * (month - peak) / 12.0)
