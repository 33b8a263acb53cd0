"""Carbon calculation orchestration and the request handler.

:class:`CarbonCalculationService` validates the polygon, obtains a
vegetation signal, runs the estimation engine and optionally records the
result. :meth:`CarbonCalculationService.handle_request` wraps it for
HTTP-style callers: every outcome becomes a :class:`ServiceResponse` with a
uniform success or failure payload. Internal error detail is logged, never
returned.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
from pydantic import ValidationError

from carbon_storage.carbon_models import CarbonEstimate, VegetationSignal
from carbon_storage.errors import (
    CarbonStorageError,
    ConfigurationError,
    InvalidGeometryError,
    InvalidInputError,
)
from carbon_storage.estimation import POOL_SPLITS, CarbonEstimationEngine
from carbon_storage.geometry import (
    Coordinate,
    compute_area_hectares,
    ring_from_geojson,
    validate_ring,
)
from carbon_storage.schemas import AuditRecord, CalculationRequest
from carbon_storage.settings import CarbonStorageSettings, get_settings
from carbon_storage.signal_provider import (
    DateRange,
    VegetationSignalProvider,
    build_signal_provider,
)
from carbon_storage.store import CalculationStore, NdjsonCalculationStore

LOGGER = logging.getLogger(__name__)

__all__ = [
    "CalculationOutcome",
    "CarbonCalculationService",
    "ServiceResponse",
    "build_audit_record",
    "build_data_sources",
    "build_service",
    "failure_response",
    "handle_request",
]


@dataclass(frozen=True, slots=True)
class ServiceResponse:
    """Status code and JSON payload returned to the caller."""

    status_code: int
    payload: dict[str, object]

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def to_json(self) -> str:
        return json.dumps(self.payload, default=str)


@dataclass(frozen=True, slots=True)
class CalculationOutcome:
    """Everything produced by one calculation."""

    estimate: CarbonEstimate
    signal: VegetationSignal
    ring: list[Coordinate]
    completed_at: datetime
    record_id: str | None = None

    @property
    def data_sources(self) -> dict[str, object]:
        return build_data_sources(self.signal, self.estimate, self.completed_at)


def build_data_sources(
    signal: VegetationSignal, estimate: CarbonEstimate, timestamp: datetime
) -> dict[str, object]:
    """Render signal provenance in the outbound ``data_sources`` shape."""

    datasets = signal.datasets
    ndvi_label = datasets.get("ndvi", "NDVI")
    return {
        "ndvi": (
            f"{ndvi_label} - Mean: {signal.mean_index:.3f}, "
            f"Std: {signal.index_std_dev:.3f}"
        ),
        "landCover": datasets.get("land_cover", "unknown"),
        "soilCarbon": datasets.get("soil_carbon", "unknown"),
        "satelliteImages": signal.satellite_images,
        "dateRange": signal.date_range_label,
        "cloudCoverage": f"{signal.cloud_coverage_percent:.1f}%",
        "dataQuality": estimate.data_quality.value,
        "landCoverBreakdown": dict(signal.land_cover_breakdown),
        "uncertaintyRange": list(estimate.uncertainty_range),
        "timestamp": timestamp.isoformat(),
    }


def build_audit_record(
    ring: Sequence[Coordinate],
    estimate: CarbonEstimate,
    data_sources: Mapping[str, object],
    created_at: datetime | None = None,
) -> AuditRecord:
    """Return the persisted record for a finished calculation."""

    low, high = estimate.uncertainty_range
    fields: dict[str, object] = {
        "geometry": list(ring),
        "area_hectares": estimate.area_hectares,
        "total_co2e": estimate.total_co2e,
        "above_ground_biomass": estimate.above_ground_biomass,
        "below_ground_biomass": estimate.below_ground_biomass,
        "soil_organic_carbon": estimate.soil_organic_carbon,
        "calculation_method": estimate.calculation_method,
        "data_quality": estimate.data_quality.value,
        "uncertainty_low": low,
        "uncertainty_high": high,
        "data_sources": dict(data_sources),
    }
    if created_at is not None:
        fields["created_at"] = created_at
    return AuditRecord.model_validate(fields)


class CarbonCalculationService:
    """Turn a polygon into a carbon estimate."""

    def __init__(
        self,
        signal_provider: VegetationSignalProvider,
        engine: CarbonEstimationEngine | None = None,
        store: CalculationStore | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._provider = signal_provider
        self._engine = engine or CarbonEstimationEngine()
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def signal_provider(self) -> VegetationSignalProvider:
        return self._provider

    @property
    def store(self) -> CalculationStore | None:
        return self._store

    def calculate(
        self,
        geometry: Mapping[str, object] | Sequence[Sequence[float]],
        area_hectares: float | None = None,
        date_range: DateRange | None = None,
    ) -> CarbonEstimate:
        """Estimate carbon storage for ``geometry``.

        Args:
            geometry: GeoJSON ``Polygon`` (or ``Feature``) mapping, or a raw
                ring of ``(lon, lat)`` pairs.
            area_hectares: Pre-computed area; derived from the ring when
                ``None``.
            date_range: Optional observation window for the signal.

        Returns:
            The carbon estimate.

        Raises:
            InvalidGeometryError: If the polygon is unusable.
            InvalidInputError: If ``area_hectares`` is negative or not finite.
            SignalUnavailableError: If the live signal path fails.
            PersistenceError: If the attached store cannot record the result.
        """

        return self.calculate_detailed(geometry, area_hectares, date_range).estimate

    def calculate_detailed(
        self,
        geometry: Mapping[str, object] | Sequence[Sequence[float]],
        area_hectares: float | None = None,
        date_range: DateRange | None = None,
    ) -> CalculationOutcome:
        """Like :meth:`calculate` but also return the signal and ring used."""

        ring = _coerce_ring(geometry)
        area = (
            compute_area_hectares(ring)
            if area_hectares is None
            else _validate_area(area_hectares)
        )
        LOGGER.info(
            "Starting carbon calculation",
            extra={
                "area_hectares": round(area, 4),
                "vertices": len(ring) - 1,
                "provider": type(self._provider).__name__,
            },
        )

        signal = self._provider.estimate_signal(ring, date_range)
        estimate = self._engine.estimate(signal, area)
        completed_at = self._clock()

        record_id: str | None = None
        if self._store is not None:
            data_sources = build_data_sources(signal, estimate, completed_at)
            record = build_audit_record(ring, estimate, data_sources, completed_at)
            record_id = self._store.insert(record)

        LOGGER.info(
            "Carbon calculation completed",
            extra={
                "total_co2e": estimate.total_co2e,
                "data_quality": estimate.data_quality.value,
                "calculation_method": estimate.calculation_method,
                "record_id": record_id,
            },
        )
        return CalculationOutcome(
            estimate=estimate,
            signal=signal,
            ring=ring,
            completed_at=completed_at,
            record_id=record_id,
        )

    def handle_request(self, body: str | bytes | Mapping[str, object]) -> ServiceResponse:
        """Process a request body and render the uniform response payload."""

        try:
            request = _parse_request(body)
            outcome = self.calculate_detailed(
                request.geometry.model_dump(), request.area_hectares
            )
        except CarbonStorageError as exc:
            return failure_response(exc)
        except Exception as exc:
            LOGGER.exception(
                "Unexpected failure in carbon calculation",
                extra={"error_type": type(exc).__name__},
            )
            return ServiceResponse(
                status_code=500,
                payload={
                    "success": False,
                    "error": CarbonStorageError.code,
                    "message": "Internal error",
                },
            )

        estimate = outcome.estimate
        signal = outcome.signal
        return ServiceResponse(
            status_code=200,
            payload={
                "success": True,
                "calculation": dict(estimate.to_calculation_dict(outcome.data_sources)),
                "metadata": {
                    "ndvi_stats": {
                        "mean": signal.mean_index,
                        "std": signal.index_std_dev,
                    },
                    "land_cover": dict(signal.land_cover_breakdown),
                    "data_quality": estimate.data_quality.value,
                    "area_hectares": estimate.area_hectares,
                },
            },
        )


def build_service(
    settings: CarbonStorageSettings | None = None,
    *,
    source: str | None = None,
    ledger_path: str | None = None,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] | None = None,
) -> CarbonCalculationService:
    """Assemble a service from configuration.

    Args:
        settings: Settings to read; defaults to the environment.
        source: Overrides ``settings.signal_source``.
        ledger_path: Overrides ``settings.ledger_path``.
        client: Optional shared HTTP client for remote calls.
        sleep: Optional sleep function used between job polls.

    Raises:
        ConfigurationError: If the signal source or pool split is unknown,
            or the coefficient override file is unusable.
    """

    settings_obj = settings or get_settings()
    if settings_obj.pool_split not in POOL_SPLITS:
        raise ConfigurationError(
            f"Unknown pool split {settings_obj.pool_split!r}; "
            f"expected one of {', '.join(POOL_SPLITS)}"
        )
    provider = build_signal_provider(source, settings_obj, client=client, sleep=sleep)
    engine = CarbonEstimationEngine(pool_split=settings_obj.pool_split)  # type: ignore[arg-type]
    ledger = ledger_path or settings_obj.ledger_path
    store = NdjsonCalculationStore(ledger) if ledger else None
    return CarbonCalculationService(provider, engine, store)


def handle_request(
    body: str | bytes | Mapping[str, object],
    service: CarbonCalculationService | None = None,
) -> ServiceResponse:
    """Handle one request with ``service`` or one built from the environment."""

    if service is None:
        try:
            service = build_service()
        except CarbonStorageError as exc:
            return failure_response(exc)
    return service.handle_request(body)


def _parse_request(body: str | bytes | Mapping[str, object]) -> CalculationRequest:
    if isinstance(body, Mapping):
        data: object = dict(body)
    else:
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidInputError("Request body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise InvalidInputError("Request body must be a JSON object")

    try:
        return CalculationRequest.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location or 'body'}: {first.get('msg', 'invalid value')}"
        if location.startswith("geometry"):
            raise InvalidGeometryError(message) from exc
        raise InvalidInputError(message) from exc


def _coerce_ring(
    geometry: Mapping[str, object] | Sequence[Sequence[float]],
) -> list[Coordinate]:
    if isinstance(geometry, Mapping):
        if geometry.get("type") == "Feature":
            inner = geometry.get("geometry")
            if not isinstance(inner, Mapping):
                raise InvalidGeometryError("Feature has no geometry")
            geometry = inner
        return ring_from_geojson(geometry)
    return validate_ring(geometry)


def _validate_area(area_hectares: object) -> float:
    if isinstance(area_hectares, bool) or not isinstance(area_hectares, (int, float)):
        raise InvalidInputError("areaHectares must be a number")
    area = float(area_hectares)
    if not math.isfinite(area) or area < 0:
        raise InvalidInputError("areaHectares must be a finite, non-negative number")
    return area


def failure_response(exc: CarbonStorageError) -> ServiceResponse:
    status = exc.status_code
    log = LOGGER.warning if status < 500 else LOGGER.error
    log(
        "Carbon calculation failed",
        extra={
            "error_code": exc.code,
            "status_code": status,
            "error_type": type(exc).__name__,
            "detail": getattr(exc, "detail", None),
        },
        exc_info=exc if status >= 500 else None,
    )
    return ServiceResponse(
        status_code=status,
        payload={"success": False, "error": exc.code, "message": exc.message},
    )
