"""Carbon-related data models for the carbon storage toolkit.

:class:`VegetationSignal` is what a signal provider hands to the estimation
engine; :class:`CarbonEstimate` is what the engine returns. Both are frozen
and created once per calculation request.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import TypedDict


class DataQuality(str, Enum):
    """Confidence grade derived from cloud cover and index variability."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class CalculationDict(TypedDict):
    """Outbound ``calculation`` object returned to the caller."""

    total_co2e: float
    above_ground_biomass: float
    below_ground_biomass: float
    soil_organic_carbon: float
    calculation_method: str
    data_sources: dict[str, object]


@dataclass(frozen=True, slots=True)
class VegetationSignal:
    """Vegetation index statistics and land-cover mix for one parcel.

    Attributes:
        mean_index: Mean NDVI over the parcel, in ``[-1, 1]``.
        index_std_dev: Spatial standard deviation of the index.
        land_cover_breakdown: Cover label -> percentage (sums to ~100).
        cloud_coverage_percent: Mean cloud contamination, ``[0, 100]``.
        source: Method tag of the provider that produced the signal.
        satellite_images: Number of scenes behind the statistics, if known.
        date_range: Observation window, if known.
        spatial_resolution: Nominal resolution label (for example ``"10m"``).
        datasets: Human-readable dataset descriptions keyed by role.
    """

    mean_index: float
    index_std_dev: float
    land_cover_breakdown: Mapping[str, float]
    cloud_coverage_percent: float
    source: str = "unknown"
    satellite_images: int | None = None
    date_range: tuple[date, date] | None = None
    spatial_resolution: str | None = None
    datasets: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "land_cover_breakdown",
            MappingProxyType(dict(self.land_cover_breakdown)),
        )
        object.__setattr__(self, "datasets", MappingProxyType(dict(self.datasets)))

    @property
    def date_range_label(self) -> str | None:
        """Return ``"YYYY-MM-DD to YYYY-MM-DD"`` or ``None``."""

        if self.date_range is None:
            return None
        start, end = self.date_range
        return f"{start.isoformat()} to {end.isoformat()}"


@dataclass(frozen=True, slots=True)
class CarbonEstimate:
    """Pooled carbon estimate for a single parcel.

    Pools are tonnes of carbon; ``total_co2e`` is tonnes of CO2-equivalent.
    ``uncertainty_range`` always brackets ``total_co2e``.
    """

    total_co2e: float
    above_ground_biomass: float
    below_ground_biomass: float
    soil_organic_carbon: float
    calculation_method: str
    data_quality: DataQuality
    uncertainty_range: tuple[float, float]
    area_hectares: float
    dominant_cover: str | None = None
    meta: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta)))

    @property
    def carbon_tonnes(self) -> float:
        """Sum of the three carbon pools."""

        return (
            self.above_ground_biomass
            + self.below_ground_biomass
            + self.soil_organic_carbon
        )

    def to_calculation_dict(
        self, data_sources: Mapping[str, object] | None = None
    ) -> CalculationDict:
        """Return the outbound ``calculation`` shape."""

        return {
            "total_co2e": self.total_co2e,
            "above_ground_biomass": self.above_ground_biomass,
            "below_ground_biomass": self.below_ground_biomass,
            "soil_organic_carbon": self.soil_organic_carbon,
            "calculation_method": self.calculation_method,
            "data_sources": dict(data_sources or {}),
        }
