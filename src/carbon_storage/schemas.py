"""Pydantic models describing public carbon storage schemas."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SchemaVersionLiteral = Literal["0.1.0"]
CURRENT_AUDIT_SCHEMA_VERSION: SchemaVersionLiteral = "0.1.0"


class PolygonGeometry(BaseModel):
    """GeoJSON ``Polygon`` as sent by the map client."""

    model_config = ConfigDict(extra="allow")

    type: Literal["Polygon"]
    coordinates: list[list[list[float]]] = Field(
        ...,
        min_length=1,
        description="Polygon rings; the first ring is the outer boundary.",
    )


class CalculationRequest(BaseModel):
    """Inbound body of a carbon storage calculation request."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    geometry: PolygonGeometry
    area_hectares: float | None = Field(
        default=None,
        alias="areaHectares",
        description="Pre-computed parcel area; computed from the geometry when absent.",
    )

    @field_validator("geometry", mode="before")
    @classmethod
    def _unwrap_feature(cls, value: object) -> object:
        """Accept a GeoJSON ``Feature`` wrapping the polygon."""

        if isinstance(value, dict) and value.get("type") == "Feature":
            return value.get("geometry")
        return value


class AuditRecord(BaseModel):
    """Immutable, versioned record of one carbon storage calculation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Unique identifier of the calculation.",
        min_length=1,
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp at which the calculation finished.",
    )
    kind: Literal["carbon_storage"] = Field(
        default="carbon_storage",
        description="Canonical namespace for carbon storage records.",
    )
    schema_version: SchemaVersionLiteral = Field(
        default=CURRENT_AUDIT_SCHEMA_VERSION,
        description="Semantic version of the record schema.",
    )

    geometry: list[tuple[float, float]] = Field(
        ...,
        min_length=4,
        description="Closed polygon ring of (lon, lat) pairs.",
    )
    area_hectares: float = Field(..., ge=0.0, description="Parcel area in hectares.")

    total_co2e: float = Field(..., ge=0.0, description="Tonnes of CO2-equivalent.")
    above_ground_biomass: float = Field(..., ge=0.0, description="Tonnes of carbon.")
    below_ground_biomass: float = Field(..., ge=0.0, description="Tonnes of carbon.")
    soil_organic_carbon: float = Field(..., ge=0.0, description="Tonnes of carbon.")
    calculation_method: str = Field(..., min_length=1)
    data_quality: Literal["High", "Medium", "Low"]
    uncertainty_low: float = Field(..., ge=0.0)
    uncertainty_high: float = Field(..., ge=0.0)
    data_sources: dict[str, object] = Field(
        default_factory=dict,
        description="Provenance of the vegetation signal behind the estimate.",
    )

    prev_hash: str | None = Field(
        default=None,
        description="SHA-256 hash of the previous canonical record.",
        min_length=1,
    )

    def model_dump_json_ready(self) -> dict[str, object]:
        """Return a JSON-serialisable payload with ``None`` values removed."""

        return self.model_dump(mode="json", exclude_none=True)
