"""Per-cover carbon coefficients and engine constants.

The module centralises the static numbers the estimation engine relies on.
Callers receive fully typed mappings; an operator may extend or override
the coefficient table with a JSON file named by
``CARBON_STORAGE_COEFFICIENTS_FILE``::

    {"mangrove": {"agb_rate": 120, "soil_rate": 380, "root_ratio": 0.49}}
"""

from __future__ import annotations

import json
import logging
import pathlib
import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Final

from carbon_storage.errors import ConfigurationError
from carbon_storage.settings import get_settings

LOGGER = logging.getLogger(__name__)

__all__ = [
    "CO2_PER_CARBON",
    "CoverCoefficients",
    "DEFAULT_COEFFICIENTS",
    "DOMINANT_POOL_RATIOS",
    "ENGINE_CONSTANTS",
    "EngineConstants",
    "FALLBACK_COEFFICIENTS",
    "PoolRatios",
    "load_coefficient_table",
    "lookup_coefficients",
    "normalise_cover_label",
]

# Molar mass ratio CO2 / C (44.01 / 12.011).
CO2_PER_CARBON: Final[float] = 3.67


@dataclass(frozen=True, slots=True)
class CoverCoefficients:
    """Carbon density for one land-cover class.

    Attributes:
        agb_rate: Aboveground biomass carbon at reference NDVI (t C / ha).
        soil_rate: Soil organic carbon (t C / ha).
        root_ratio: Belowground to aboveground biomass ratio.
    """

    agb_rate: float
    soil_rate: float
    root_ratio: float


@dataclass(frozen=True, slots=True)
class PoolRatios:
    """Fixed AGB/BGB/SOC shares used by the dominant-cover split."""

    above_ground: float
    below_ground: float
    soil: float


@dataclass(frozen=True, slots=True)
class EngineConstants:
    """Thresholds and multipliers applied by the estimation engine."""

    reference_index: float = 0.6
    index_slope: float = 2.5
    index_multiplier_min: float = 0.2
    index_multiplier_max: float = 2.0

    high_cloud_threshold: float = 10.0
    medium_cloud_threshold: float = 20.0
    high_std_threshold: float = 0.2
    medium_std_threshold: float = 0.3

    high_quality_multiplier: float = 1.0
    medium_quality_multiplier: float = 0.95
    low_quality_multiplier: float = 0.9

    reference_std_dev: float = 0.1
    variability_slope: float = 1.0
    variability_floor: float = 0.7

    high_uncertainty: float = 0.10
    medium_uncertainty: float = 0.20
    low_uncertainty: float = 0.35

    decimals: int = 2


ENGINE_CONSTANTS: Final[EngineConstants] = EngineConstants()

FALLBACK_COEFFICIENTS: Final[CoverCoefficients] = CoverCoefficients(
    agb_rate=10.0, soil_rate=30.0, root_ratio=0.2
)

DEFAULT_COEFFICIENTS: Final[Mapping[str, CoverCoefficients]] = {
    "tropical_forest": CoverCoefficients(150.0, 90.0, 0.24),
    "temperate_forest": CoverCoefficients(120.0, 100.0, 0.26),
    "dense_forest": CoverCoefficients(140.0, 95.0, 0.25),
    "forest": CoverCoefficients(110.0, 90.0, 0.25),
    "shrubland": CoverCoefficients(25.0, 50.0, 0.40),
    "grassland": CoverCoefficients(5.0, 70.0, 1.50),
    "agricultural": CoverCoefficients(5.0, 50.0, 0.20),
    "cropland": CoverCoefficients(5.0, 50.0, 0.20),
    "sparse_vegetation": CoverCoefficients(3.0, 25.0, 0.50),
    "wetland": CoverCoefficients(40.0, 150.0, 0.30),
    "mangrove": CoverCoefficients(120.0, 380.0, 0.49),
    "bare_soil": CoverCoefficients(0.0, 10.0, 0.0),
    "urban": CoverCoefficients(2.0, 20.0, 0.20),
    "water": CoverCoefficients(0.0, 0.0, 0.0),
    "snow_ice": CoverCoefficients(0.0, 5.0, 0.0),
}

DOMINANT_POOL_RATIOS: Final[Mapping[str, PoolRatios]] = {
    "forest": PoolRatios(0.45, 0.13, 0.42),
    "grassland": PoolRatios(0.25, 0.10, 0.65),
    "agricultural": PoolRatios(0.20, 0.10, 0.70),
    "default": PoolRatios(0.35, 0.15, 0.50),
}

_LABEL_SEPARATORS = re.compile(r"[\s\-/]+")


def normalise_cover_label(label: str) -> str:
    """Return the lookup key for a human-readable cover label.

    ``"Dense Forest"``, ``"dense-forest"`` and ``"DENSE_FOREST"`` all map to
    ``"dense_forest"``.
    """

    return _LABEL_SEPARATORS.sub("_", label.strip().lower())


def lookup_coefficients(
    label: str, table: Mapping[str, CoverCoefficients] | None = None
) -> CoverCoefficients:
    """Return coefficients for ``label`` or the conservative fallback."""

    resolved = table if table is not None else load_coefficient_table()
    return resolved.get(normalise_cover_label(label), FALLBACK_COEFFICIENTS)


@lru_cache(maxsize=1)
def load_coefficient_table() -> dict[str, CoverCoefficients]:
    """Load the cover coefficient table with optional file overrides.

    Returns:
        Mapping of normalised cover labels to coefficients.

    Raises:
        ConfigurationError: If the override file is missing, is not valid
            JSON, or holds rows that are not numeric triples.
    """

    table = dict(DEFAULT_COEFFICIENTS)
    override_path = get_settings().coefficients_file
    if not override_path:
        return table

    path = pathlib.Path(override_path)
    if not path.exists():
        raise ConfigurationError(f"CARBON_STORAGE_COEFFICIENTS_FILE not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            "Failed to parse cover coefficient override JSON"
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError("Coefficient override must be a JSON object")

    for label, row in data.items():
        table[normalise_cover_label(str(label))] = _parse_row(str(label), row)
    LOGGER.info(
        "Loaded cover coefficient overrides",
        extra={"path": str(path), "rows": len(data)},
    )
    return table


def _parse_row(label: str, row: object) -> CoverCoefficients:
    if not isinstance(row, dict):
        raise ConfigurationError(f"Coefficient row for {label!r} must be an object")
    try:
        coefficients = CoverCoefficients(
            agb_rate=float(row["agb_rate"]),
            soil_rate=float(row["soil_rate"]),
            root_ratio=float(row["root_ratio"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Coefficient row for {label!r} needs numeric agb_rate, soil_rate "
            "and root_ratio"
        ) from exc
    if min(coefficients.agb_rate, coefficients.soil_rate, coefficients.root_ratio) < 0:
        raise ConfigurationError(f"Coefficient row for {label!r} must be non-negative")
    return coefficients
