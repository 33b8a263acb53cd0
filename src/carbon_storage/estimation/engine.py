"""Core carbon estimation engine.

Turns a :class:`~carbon_storage.carbon_models.VegetationSignal` and a parcel
area into pooled carbon stocks. The engine is a pure function of its inputs
and the coefficient table it was built with; it performs no I/O.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from carbon_storage.carbon_models import CarbonEstimate, DataQuality, VegetationSignal
from carbon_storage.errors import InvalidInputError
from carbon_storage.estimation.coefficients import (
    CO2_PER_CARBON,
    DOMINANT_POOL_RATIOS,
    ENGINE_CONSTANTS,
    CoverCoefficients,
    EngineConstants,
    PoolRatios,
    load_coefficient_table,
    lookup_coefficients,
    normalise_cover_label,
)

_LOGGER = logging.getLogger("carbon_storage.estimation.engine")

PoolSplit = Literal["per_category", "dominant"]
POOL_SPLITS: tuple[PoolSplit, ...] = ("per_category", "dominant")

_BREAKDOWN_SUM_TOLERANCE = 1.0


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def index_multiplier(mean_index: float, constants: EngineConstants) -> float:
    """Scale factor applied to aboveground rates for a given mean NDVI."""

    raw = 1.0 + (mean_index - constants.reference_index) * constants.index_slope
    return _clamp(raw, constants.index_multiplier_min, constants.index_multiplier_max)


def quality_multiplier(cloud_percent: float, constants: EngineConstants) -> float:
    """Confidence multiplier derived from cloud contamination alone."""

    if cloud_percent <= constants.high_cloud_threshold:
        return constants.high_quality_multiplier
    if cloud_percent <= constants.medium_cloud_threshold:
        return constants.medium_quality_multiplier
    return constants.low_quality_multiplier


def variability_factor(std_dev: float, constants: EngineConstants) -> float:
    """Dampening factor: 1.0 at the reference std dev, lower as it grows."""

    raw = 1.0 - (std_dev - constants.reference_std_dev) * constants.variability_slope
    return _clamp(raw, constants.variability_floor, 1.0)


def classify_quality(
    cloud_percent: float, std_dev: float, constants: EngineConstants
) -> DataQuality:
    """Grade the observation from cloud cover and index variability."""

    if (
        cloud_percent <= constants.high_cloud_threshold
        and std_dev <= constants.high_std_threshold
    ):
        return DataQuality.HIGH
    if (
        cloud_percent <= constants.medium_cloud_threshold
        and std_dev <= constants.medium_std_threshold
    ):
        return DataQuality.MEDIUM
    return DataQuality.LOW


def uncertainty_factor(quality: DataQuality, constants: EngineConstants) -> float:
    """Relative half-width of the uncertainty interval for a quality grade."""

    if quality is DataQuality.HIGH:
        return constants.high_uncertainty
    if quality is DataQuality.MEDIUM:
        return constants.medium_uncertainty
    return constants.low_uncertainty


def dominant_pool_ratios(label: str) -> PoolRatios:
    """Return the fixed pool split for a dominant cover label."""

    key = normalise_cover_label(label)
    if "forest" in key or key == "mangrove":
        return DOMINANT_POOL_RATIOS["forest"]
    if key == "grassland":
        return DOMINANT_POOL_RATIOS["grassland"]
    if key in {"agricultural", "cropland"}:
        return DOMINANT_POOL_RATIOS["agricultural"]
    return DOMINANT_POOL_RATIOS["default"]


@dataclass(slots=True)
class CarbonEstimationEngine:
    """Estimate carbon pools from vegetation signal and parcel area.

    Attributes:
        coefficients: Cover label -> coefficient mapping. Defaults to the
            loaded table (packaged defaults plus file overrides).
        constants: Thresholds and multipliers.
        pool_split: ``"per_category"`` accumulates pools per cover class;
            ``"dominant"`` re-splits the total with the dominant cover's
            fixed ratios.
    """

    coefficients: Mapping[str, CoverCoefficients] = field(
        default_factory=load_coefficient_table
    )
    constants: EngineConstants = ENGINE_CONSTANTS
    pool_split: PoolSplit = "per_category"
    logger: logging.Logger = _LOGGER

    def __post_init__(self) -> None:
        if self.pool_split not in POOL_SPLITS:
            raise InvalidInputError(
                f"pool_split must be one of {', '.join(POOL_SPLITS)}"
            )

    def estimate(self, signal: VegetationSignal, area_hectares: float) -> CarbonEstimate:
        """Estimate pooled carbon for a parcel.

        Args:
            signal: Vegetation statistics and land-cover mix.
            area_hectares: Parcel area in hectares.

        Returns:
            A rounded, immutable :class:`CarbonEstimate`.

        Raises:
            InvalidInputError: If the area is negative or non-finite, the
                land-cover map is empty or holds negative shares, or the
                signal statistics fall outside their valid ranges.
        """

        _validate_inputs(signal, area_hectares)
        constants = self.constants

        idx_mult = index_multiplier(signal.mean_index, constants)
        qual_mult = quality_multiplier(signal.cloud_coverage_percent, constants)
        var_factor = variability_factor(signal.index_std_dev, constants)

        above = below = soil = 0.0
        for label, percentage in signal.land_cover_breakdown.items():
            coefficients = lookup_coefficients(label, self.coefficients)
            category_area = area_hectares * percentage / 100.0
            category_above = (
                coefficients.agb_rate * idx_mult * qual_mult * category_area
            )
            above += category_above
            below += category_above * coefficients.root_ratio
            soil += coefficients.soil_rate * qual_mult * category_area

        above *= var_factor
        below *= var_factor
        soil *= var_factor

        dominant = max(
            signal.land_cover_breakdown.items(), key=lambda item: item[1]
        )[0]
        method = signal.source
        if self.pool_split == "dominant":
            ratios = dominant_pool_ratios(dominant)
            carbon = above + below + soil
            above = carbon * ratios.above_ground
            below = carbon * ratios.below_ground
            soil = carbon * ratios.soil
            method = f"{method}+dominant"

        total_co2e = (above + below + soil) * CO2_PER_CARBON
        quality = classify_quality(
            signal.cloud_coverage_percent, signal.index_std_dev, constants
        )
        spread = uncertainty_factor(quality, constants)

        digits = constants.decimals
        estimate = CarbonEstimate(
            total_co2e=round(total_co2e, digits),
            above_ground_biomass=round(above, digits),
            below_ground_biomass=round(below, digits),
            soil_organic_carbon=round(soil, digits),
            calculation_method=method,
            data_quality=quality,
            uncertainty_range=(
                round(total_co2e * (1.0 - spread), digits),
                round(total_co2e * (1.0 + spread), digits),
            ),
            area_hectares=round(area_hectares, 4),
            dominant_cover=dominant,
            meta={
                "index_multiplier": idx_mult,
                "quality_multiplier": qual_mult,
                "variability_factor": var_factor,
                "uncertainty_factor": spread,
                "co2_per_carbon": CO2_PER_CARBON,
            },
        )
        self.logger.debug(
            "Carbon estimate computed",
            extra={
                "area_hectares": area_hectares,
                "total_co2e": estimate.total_co2e,
                "data_quality": quality.value,
                "calculation_method": method,
            },
        )
        return estimate


def _validate_inputs(signal: VegetationSignal, area_hectares: float) -> None:
    if isinstance(area_hectares, bool) or not isinstance(area_hectares, (int, float)):
        raise InvalidInputError("area_hectares must be a number")
    if not math.isfinite(area_hectares) or area_hectares < 0:
        raise InvalidInputError("area_hectares must be a finite value >= 0")

    breakdown = signal.land_cover_breakdown
    if not breakdown:
        raise InvalidInputError("land_cover_breakdown must not be empty")
    for label, percentage in breakdown.items():
        if not math.isfinite(percentage) or percentage < 0:
            raise InvalidInputError(
                f"land cover share for {label!r} must be a finite value >= 0"
            )
    total_share = sum(breakdown.values())
    if abs(total_share - 100.0) > _BREAKDOWN_SUM_TOLERANCE:
        _LOGGER.warning(
            "Land cover breakdown does not sum to 100",
            extra={"total_share": total_share},
        )

    if not math.isfinite(signal.mean_index) or not -1.0 <= signal.mean_index <= 1.0:
        raise InvalidInputError("mean_index must lie in [-1, 1]")
    if not math.isfinite(signal.index_std_dev) or signal.index_std_dev < 0:
        raise InvalidInputError("index_std_dev must be a finite value >= 0")
    cloud = signal.cloud_coverage_percent
    if not math.isfinite(cloud) or not 0.0 <= cloud <= 100.0:
        raise InvalidInputError("cloud_coverage_percent must lie in [0, 100]")
