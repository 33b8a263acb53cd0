"""Carbon estimation package.

Provides the :class:`CarbonEstimationEngine` along with the coefficient
tables and constants it is calibrated with.
"""

from __future__ import annotations

from .coefficients import (
    CO2_PER_CARBON,
    CoverCoefficients,
    EngineConstants,
    load_coefficient_table,
)
from .engine import POOL_SPLITS, CarbonEstimationEngine, PoolSplit

__all__ = [
    "CO2_PER_CARBON",
    "CarbonEstimationEngine",
    "CoverCoefficients",
    "EngineConstants",
    "POOL_SPLITS",
    "PoolSplit",
    "load_coefficient_table",
]
