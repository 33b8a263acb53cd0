"""Carbon Storage - vegetation carbon estimates for user-drawn parcels."""

from __future__ import annotations

from importlib import import_module
from typing import Any, TYPE_CHECKING

__all__ = [
    "AuditRecord",
    "CarbonCalculationService",
    "CarbonEstimate",
    "CarbonEstimationEngine",
    "VegetationSignal",
    "build_service",
    "compute_area_hectares",
    "handle_request",
]

if TYPE_CHECKING:
    from .carbon_models import CarbonEstimate, VegetationSignal
    from .estimation import CarbonEstimationEngine
    from .geometry import compute_area_hectares
    from .schemas import AuditRecord
    from .service import CarbonCalculationService, build_service, handle_request


def __getattr__(name: str) -> Any:
    """Lazily import submodules so ``import carbon_storage`` stays cheap."""

    module_map = {
        "AuditRecord": "schemas",
        "CarbonCalculationService": "service",
        "CarbonEstimate": "carbon_models",
        "CarbonEstimationEngine": "estimation",
        "VegetationSignal": "carbon_models",
        "build_service": "service",
        "compute_area_hectares": "geometry",
        "handle_request": "service",
    }

    if name not in module_map:
        raise AttributeError(name)

    module = import_module(f".{module_map[name]}", __name__)
    return getattr(module, name)
