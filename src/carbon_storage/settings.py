"""Environment-backed settings primitives for :mod:`carbon_storage`."""

from __future__ import annotations

import math

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["CarbonStorageSettings", "get_settings"]

_DEFAULT_POLL_INTERVAL = 2.0
_DEFAULT_POLL_ATTEMPTS = 30
_DEFAULT_HTTP_TIMEOUT = 10.0


class CarbonStorageSettings(BaseSettings):
    """Expose environment-derived configuration knobs for carbon storage.

    All environment access for the package goes through this class. Numeric
    values that fail to parse fall back to their defaults instead of
    aborting start-up; semantic checks (for example an unknown signal
    source) happen when the service is assembled.

    Attributes:
        signal_source: Which vegetation signal strategy to use
            (``"simulated"``, ``"live"`` or ``"auto"``).
        gee_service_account: Raw service-account JSON for Earth Engine.
        gee_project: Cloud project passed to the compute endpoint.
        gee_api_base_url: Base URL of the Earth Engine REST API.
        gee_scope: OAuth scope requested in the signed assertion.
        poll_interval_seconds: Delay between job status polls.
        poll_max_attempts: Maximum number of job status polls.
        http_timeout_seconds: Timeout applied to every outbound request.
        pool_split: Carbon pool split mode (``"per_category"`` or
            ``"dominant"``).
        coefficients_file: Optional JSON file overriding cover coefficients.
        ledger_path: Optional NDJSON path where calculations are recorded.
        tile_server_base_url: Base URL of the map tile server.
        tile_server_api_key: API key forwarded to the tile server.
    """

    signal_source: str = Field(
        default="simulated", alias="CARBON_STORAGE_SIGNAL_SOURCE"
    )
    gee_service_account: str | None = Field(
        default=None, alias="GEE_SERVICE_ACCOUNT"
    )
    gee_project: str = Field(default="earthengine-public", alias="GEE_PROJECT")
    gee_api_base_url: str = Field(
        default="https://earthengine.googleapis.com/v1", alias="GEE_API_BASE_URL"
    )
    gee_scope: str = Field(
        default="https://www.googleapis.com/auth/earthengine.readonly",
        alias="GEE_SCOPE",
    )
    poll_interval_seconds: float = Field(
        default=_DEFAULT_POLL_INTERVAL, alias="GEE_POLL_INTERVAL_SECONDS"
    )
    poll_max_attempts: int = Field(
        default=_DEFAULT_POLL_ATTEMPTS, alias="GEE_POLL_MAX_ATTEMPTS"
    )
    http_timeout_seconds: float = Field(
        default=_DEFAULT_HTTP_TIMEOUT, alias="CARBON_STORAGE_HTTP_TIMEOUT"
    )
    pool_split: str = Field(default="per_category", alias="CARBON_STORAGE_POOL_SPLIT")
    coefficients_file: str | None = Field(
        default=None, alias="CARBON_STORAGE_COEFFICIENTS_FILE"
    )
    ledger_path: str | None = Field(default=None, alias="CARBON_STORAGE_LEDGER_PATH")
    tile_server_base_url: str = Field(
        default="https://gee-tile-server.vercel.app", alias="GEE_TILE_SERVER_URL"
    )
    tile_server_api_key: str | None = Field(
        default=None, alias="GEE_TILE_SERVER_API_KEY"
    )

    model_config = SettingsConfigDict(
        env_file=None, extra="ignore", populate_by_name=True
    )

    @field_validator("poll_interval_seconds", mode="before")
    @classmethod
    def _parse_poll_interval(cls, value: object) -> float:
        """Parse the poll interval, tolerating malformed input."""

        parsed = _coerce_float(value)
        if parsed is None or parsed < 0:
            return _DEFAULT_POLL_INTERVAL
        return parsed

    @field_validator("http_timeout_seconds", mode="before")
    @classmethod
    def _parse_http_timeout(cls, value: object) -> float:
        """Parse the HTTP timeout, tolerating malformed input."""

        parsed = _coerce_float(value)
        if parsed is None or parsed <= 0:
            return _DEFAULT_HTTP_TIMEOUT
        return parsed

    @field_validator("poll_max_attempts", mode="before")
    @classmethod
    def _parse_poll_attempts(cls, value: object) -> int:
        """Parse the poll attempt budget, tolerating malformed input.

        Args:
            value: Raw environment value.

        Returns:
            Parsed attempt count when conversion succeeds and is positive,
            otherwise the default budget.
        """

        if isinstance(value, bool):
            return _DEFAULT_POLL_ATTEMPTS
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, str):
            try:
                value = int(value.strip())
            except ValueError:
                return _DEFAULT_POLL_ATTEMPTS
        if isinstance(value, int) and value >= 1:
            return value
        return _DEFAULT_POLL_ATTEMPTS

    @field_validator("signal_source", "pool_split", mode="before")
    @classmethod
    def _normalise_choice(cls, value: object) -> object:
        """Lower-case and strip textual choices."""

        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("gee_service_account", "tile_server_api_key", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        """Treat empty secrets as unset."""

        if isinstance(value, str) and not value.strip():
            return None
        return value


def _coerce_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            parsed = float(value)
        elif isinstance(value, str):
            parsed = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return parsed if math.isfinite(parsed) else None


def get_settings() -> CarbonStorageSettings:
    """Return a :class:`CarbonStorageSettings` instance.

    Returns:
        Settings parsed from environment variables.
    """

    return CarbonStorageSettings()
