"""Earth Engine REST client: token exchange, job polling and expressions."""

from __future__ import annotations

from carbon_storage.earthengine.auth import (
    AccessToken,
    ServiceAccountCredential,
    TokenExchanger,
)
from carbon_storage.earthengine.jobs import ComputeJobPoller, JobResult, RemoteJobHandle
from carbon_storage.earthengine.timeseries import NdviPoint, fetch_ndvi_time_series

__all__ = [
    "AccessToken",
    "ComputeJobPoller",
    "JobResult",
    "NdviPoint",
    "RemoteJobHandle",
    "ServiceAccountCredential",
    "TokenExchanger",
    "fetch_ndvi_time_series",
]
