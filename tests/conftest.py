"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Callable, Iterator

import pytest

# Ensure src/ is on sys.path for tests so the src layout is used during test runs
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from cryptography.hazmat.primitives import serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import rsa  # noqa: E402

from carbon_storage.earthengine.auth import ServiceAccountCredential  # noqa: E402
from carbon_storage.estimation.coefficients import load_coefficient_table  # noqa: E402
from carbon_storage.settings import CarbonStorageSettings  # noqa: E402

_ENV_VARS = (
    "CARBON_STORAGE_SIGNAL_SOURCE",
    "GEE_SERVICE_ACCOUNT",
    "GEE_PROJECT",
    "GEE_API_BASE_URL",
    "GEE_SCOPE",
    "GEE_POLL_INTERVAL_SECONDS",
    "GEE_POLL_MAX_ATTEMPTS",
    "CARBON_STORAGE_HTTP_TIMEOUT",
    "CARBON_STORAGE_POOL_SPLIT",
    "CARBON_STORAGE_COEFFICIENTS_FILE",
    "CARBON_STORAGE_LEDGER_PATH",
    "GEE_TILE_SERVER_URL",
    "GEE_TILE_SERVER_API_KEY",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep host configuration and cached coefficient tables out of tests."""

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    load_coefficient_table.cache_clear()
    yield
    load_coefficient_table.cache_clear()


@pytest.fixture(scope="session")
def rsa_private_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def service_account_json(rsa_private_pem: str) -> str:
    return json.dumps(
        {
            "type": "service_account",
            "project_id": "demo-project",
            "private_key_id": "key-123",
            "private_key": rsa_private_pem,
            "client_email": "carbon@demo-project.iam.gserviceaccount.com",
            "token_uri": "https://oauth2.googleapis.com/token",
        }
    )


@pytest.fixture
def credential(service_account_json: str) -> ServiceAccountCredential:
    return ServiceAccountCredential.from_json(service_account_json)


@pytest.fixture
def make_settings() -> Callable[..., CarbonStorageSettings]:
    """Build settings from keyword overrides without touching the environment."""

    def _make(**overrides: object) -> CarbonStorageSettings:
        values: dict[str, object] = {"poll_interval_seconds": 0.0}
        values.update(overrides)
        return CarbonStorageSettings(**values)

    return _make


def square_ring(
    lon: float = 0.0, lat: float = 0.0, side_degrees: float = 0.0009009
) -> list[list[float]]:
    """Closed square ring; the default side is ~1 ha under the area constant."""

    return [
        [lon, lat],
        [lon + side_degrees, lat],
        [lon + side_degrees, lat + side_degrees],
        [lon, lat + side_degrees],
        [lon, lat],
    ]


@pytest.fixture
def one_hectare_polygon() -> dict[str, object]:
    return {"type": "Polygon", "coordinates": [square_ring()]}
