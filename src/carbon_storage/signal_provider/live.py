"""Vegetation signal computed from satellite imagery on Earth Engine."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import date, timedelta

import httpx

from carbon_storage.carbon_models import VegetationSignal
from carbon_storage.earthengine.auth import (
    AccessToken,
    ServiceAccountCredential,
    TokenExchanger,
)
from carbon_storage.earthengine.expressions import (
    LAND_COVER_DATASET,
    NDVI_DATASET,
    WORLDCOVER_LABELS,
    vegetation_signal_expression,
)
from carbon_storage.earthengine.jobs import ComputeJobPoller
from carbon_storage.errors import ConfigurationError, RemoteComputeError
from carbon_storage.settings import CarbonStorageSettings, get_settings
from carbon_storage.signal_provider.base import DateRange, VegetationSignalProvider

LOGGER = logging.getLogger(__name__)

__all__ = ["LiveSignalProvider", "histogram_to_percentages", "parse_signal_result"]

PollerFactory = Callable[[AccessToken], ComputeJobPoller]


class LiveSignalProvider(VegetationSignalProvider):
    """Derive NDVI statistics and land cover through the compute API.

    Credentials are resolved on every call, so a provider built without a
    configured service account only fails when it is actually used.
    """

    method = "gee-ndvi-landcover"

    def __init__(
        self,
        credential: ServiceAccountCredential | str | Mapping[str, object] | None = None,
        *,
        settings: CarbonStorageSettings | None = None,
        exchanger: TokenExchanger | None = None,
        poller_factory: PollerFactory | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._explicit_credential = credential
        self._settings = settings
        self._client = client
        self._sleep = sleep
        self._today = today
        self._exchanger = exchanger
        self._poller_factory = poller_factory

    def _estimate(
        self, ring: Sequence[tuple[float, float]], date_range: DateRange | None
    ) -> VegetationSignal:
        settings_obj = self._settings or get_settings()
        credential = self._resolve_credential(settings_obj)
        exchanger = self._exchanger or TokenExchanger(
            settings_obj.gee_scope,
            timeout_seconds=settings_obj.http_timeout_seconds,
            client=self._client,
        )
        token = exchanger.get_access_token(credential)
        poller = (
            self._poller_factory(token)
            if self._poller_factory is not None
            else self._default_poller(token, settings_obj)
        )

        today = self._today()
        window = date_range or (today - timedelta(days=365), today)
        expression = vegetation_signal_expression(ring, window[0], window[1])
        job = poller.submit_and_await(expression)
        LOGGER.debug(
            "Live signal job finished",
            extra={"job_name": job.job_name, "attempts": job.attempts},
        )
        return parse_signal_result(job.result, window, source=self.method)

    def _resolve_credential(
        self, settings_obj: CarbonStorageSettings
    ) -> ServiceAccountCredential:
        raw = self._explicit_credential
        if raw is None:
            raw = settings_obj.gee_service_account
        if raw is None:
            raise ConfigurationError("GEE_SERVICE_ACCOUNT is not configured")
        if isinstance(raw, ServiceAccountCredential):
            return raw
        return ServiceAccountCredential.from_json(raw)

    def _default_poller(
        self, token: AccessToken, settings_obj: CarbonStorageSettings
    ) -> ComputeJobPoller:
        return ComputeJobPoller(
            token,
            base_url=settings_obj.gee_api_base_url,
            project=settings_obj.gee_project,
            poll_interval_seconds=settings_obj.poll_interval_seconds,
            max_attempts=settings_obj.poll_max_attempts,
            timeout_seconds=settings_obj.http_timeout_seconds,
            client=self._client,
            sleep=self._sleep or time.sleep,
        )


def parse_signal_result(
    result: object, window: DateRange, *, source: str
) -> VegetationSignal:
    """Convert the compute result dictionary into a :class:`VegetationSignal`.

    Args:
        result: Decoded ``result`` payload of the compute job.
        window: Observation window the expression covered.
        source: Method tag recorded on the signal.

    Raises:
        RemoteComputeError: If required statistics are missing or malformed,
            or no imagery matched the window.
    """

    if not isinstance(result, Mapping):
        raise RemoteComputeError("Vegetation signal result is not an object", detail=result)

    image_count = _optional_int(result, "image_count")
    if image_count == 0:
        raise RemoteComputeError(
            "No cloud-free imagery found for the requested window", detail=result
        )

    mean_index = _required_number(result, "ndvi_mean")
    if not -1.0 <= mean_index <= 1.0:
        raise RemoteComputeError(
            f"ndvi_mean {mean_index} is outside [-1, 1]", detail=result
        )
    std_dev = _required_number(result, "ndvi_std")
    if std_dev < 0:
        raise RemoteComputeError("ndvi_std must be non-negative", detail=result)

    cloud_raw = result.get("cloud_coverage")
    cloud = 0.0 if cloud_raw is None else _required_number(result, "cloud_coverage")
    cloud = min(100.0, max(0.0, cloud))

    return VegetationSignal(
        mean_index=round(mean_index, 4),
        index_std_dev=round(std_dev, 4),
        land_cover_breakdown=histogram_to_percentages(result.get("land_cover")),
        cloud_coverage_percent=round(cloud, 2),
        source=source,
        satellite_images=image_count,
        date_range=window,
        spatial_resolution="10m",
        datasets={
            "ndvi": f"Sentinel-2 ({NDVI_DATASET})",
            "land_cover": f"ESA WorldCover ({LAND_COVER_DATASET})",
            "soil_carbon": "IPCC Tier 1 default soil carbon stocks",
        },
    )


def histogram_to_percentages(histogram: object) -> dict[str, float]:
    """Turn a WorldCover class histogram into label percentages.

    Raises:
        RemoteComputeError: If the histogram is missing, malformed or empty.
    """

    if not isinstance(histogram, Mapping) or not histogram:
        raise RemoteComputeError("Land cover histogram is missing", detail=histogram)

    counts: dict[str, float] = {}
    for raw_code, raw_count in histogram.items():
        try:
            code = int(float(raw_code))
            count = float(raw_count)
        except (TypeError, ValueError, OverflowError) as exc:
            raise RemoteComputeError(
                f"Malformed land cover histogram entry {raw_code!r}", detail=histogram
            ) from exc
        if not math.isfinite(count) or count < 0:
            raise RemoteComputeError(
                f"Invalid pixel count for land cover class {code}", detail=histogram
            )
        label = WORLDCOVER_LABELS.get(code, f"Class {code}")
        counts[label] = counts.get(label, 0.0) + count

    total = sum(counts.values())
    if total <= 0:
        raise RemoteComputeError("Land cover histogram has no pixels", detail=histogram)
    return {label: round(count / total * 100.0, 2) for label, count in counts.items()}


def _required_number(result: Mapping[str, object], key: str) -> float:
    value = result.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RemoteComputeError(f"Result field {key!r} is missing or not numeric", detail=result)
    number = float(value)
    if not math.isfinite(number):
        raise RemoteComputeError(f"Result field {key!r} is not finite", detail=result)
    return number


def _optional_int(result: Mapping[str, object], key: str) -> int | None:
    value = result.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        raise RemoteComputeError(f"Result field {key!r} is not finite", detail=result)
    return int(value)
