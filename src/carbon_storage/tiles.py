"""Client for the map tile server fronting Earth Engine imagery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from carbon_storage.errors import (
    ConfigurationError,
    InvalidInputError,
    TileServerError,
    TransientError,
)
from carbon_storage.http_client import client_scope
from carbon_storage.settings import CarbonStorageSettings, get_settings

LOGGER = logging.getLogger(__name__)

__all__ = ["Tile", "TileServerClient"]

DEFAULT_YEAR = 2024
DEFAULT_MONTH = 6


@dataclass(frozen=True, slots=True)
class Tile:
    """Raw tile bytes and their media type."""

    content: bytes
    content_type: str = "image/png"


class TileServerClient:
    """List datasets and fetch map tiles from the tile server.

    The API key is only required for tile access; listing datasets is
    anonymous.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout_seconds: float | None = None,
        client: httpx.Client | None = None,
        settings: CarbonStorageSettings | None = None,
    ) -> None:
        settings_obj = settings or get_settings()
        self._base = (base_url or settings_obj.tile_server_base_url).rstrip("/")
        self._api_key = api_key or settings_obj.tile_server_api_key
        self._timeout = timeout_seconds or settings_obj.http_timeout_seconds
        self._client = client

    def list_datasets(self) -> list[object]:
        """Return the datasets advertised by the tile server.

        Accepts either ``{"datasets": [...]}`` or a bare list; any other
        shape yields an empty list.
        """

        response = self._get(f"{self._base}/api/datasets")
        try:
            data = response.json()
        except ValueError as exc:
            raise TileServerError(
                "Tile server returned a non-JSON dataset list", status_code=502
            ) from exc
        if isinstance(data, dict) and isinstance(data.get("datasets"), list):
            return list(data["datasets"])
        if isinstance(data, list):
            return data
        LOGGER.warning("Unexpected dataset list shape", extra={"type": type(data).__name__})
        return []

    def tile_url_template(
        self, dataset: str, year: int = DEFAULT_YEAR, month: int = DEFAULT_MONTH
    ) -> str:
        """Return a URL template with literal ``{z}/{x}/{y}`` placeholders."""

        query = self._query(dataset, year, month)
        return f"{self._base}/api/tiles/{{z}}/{{x}}/{{y}}?{query}"

    def fetch_tile(
        self,
        dataset: str,
        z: int,
        x: int,
        y: int,
        year: int = DEFAULT_YEAR,
        month: int = DEFAULT_MONTH,
    ) -> Tile:
        """Download one tile.

        Raises:
            ConfigurationError: If no tile server API key is configured.
            InvalidInputError: If ``dataset`` is empty or a coordinate is
                negative.
            TileServerError: If the tile server answers with a non-2xx status.
            TransientError: If the tile server cannot be reached.
        """

        if min(z, x, y) < 0:
            raise InvalidInputError("Tile coordinates must be non-negative")
        query = self._query(dataset, year, month)
        response = self._get(f"{self._base}/api/tiles/{z}/{x}/{y}?{query}")
        return Tile(
            content=response.content,
            content_type=response.headers.get("Content-Type", "image/png"),
        )

    def _query(self, dataset: str, year: int, month: int) -> str:
        if not dataset or not dataset.strip():
            raise InvalidInputError("Dataset parameter is required")
        if not self._api_key:
            raise ConfigurationError("GEE_TILE_SERVER_API_KEY is not configured")
        if not 1 <= month <= 12:
            raise InvalidInputError("month must be between 1 and 12")
        return urlencode(
            {"dataset": dataset.strip(), "year": year, "month": month, "apikey": self._api_key}
        )

    def _get(self, url: str) -> httpx.Response:
        log_url = url.split("?", 1)[0]
        try:
            with client_scope(self._client, self._timeout) as client:
                response = client.get(url)
        except httpx.TransportError as exc:
            LOGGER.warning(
                "Tile server transport error",
                extra={"url": log_url, "error_type": type(exc).__name__},
            )
            raise TransientError("Tile server unreachable") from exc
        if response.is_success:
            return response
        LOGGER.warning(
            "Tile server error",
            extra={"url": log_url, "status_code": response.status_code},
        )
        raise TileServerError(
            f"Tile fetch failed: {response.status_code}", status_code=response.status_code
        )
