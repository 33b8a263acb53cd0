"""Exception hierarchy shared by the carbon storage components.

Every error carries a short machine-readable ``code`` and the HTTP status
the request handler answers with. Lower-level components raise these
directly; :mod:`carbon_storage.service` turns them into failure payloads.
"""

from __future__ import annotations

__all__ = [
    "AuthenticationError",
    "CarbonStorageError",
    "ComputeTimeoutError",
    "ConfigurationError",
    "InvalidGeometryError",
    "InvalidInputError",
    "PersistenceError",
    "RemoteComputeError",
    "SignalUnavailableError",
    "TileServerError",
    "TransientError",
]


class CarbonStorageError(Exception):
    """Base class for all carbon storage failures."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(CarbonStorageError, ValueError):
    """Malformed caller input (area, land cover, request body)."""

    code = "invalid_input"
    status_code = 400


class InvalidGeometryError(InvalidInputError):
    """Polygon geometry that cannot be used for a calculation."""

    code = "invalid_geometry"


class SignalUnavailableError(CarbonStorageError):
    """Base class for failures of the live vegetation signal path."""

    code = "signal_unavailable"
    status_code = 502


class ConfigurationError(SignalUnavailableError):
    """Missing or malformed operator configuration such as credentials."""

    code = "configuration_error"
    status_code = 500


class AuthenticationError(SignalUnavailableError):
    """The token endpoint or compute API rejected our credentials."""

    code = "authentication_failed"
    status_code = 502

    def __init__(self, message: str, *, detail: object | None = None) -> None:
        super().__init__(message)
        self.detail = detail


class TransientError(SignalUnavailableError):
    """Network-level failure that a caller may retry."""

    code = "transient_error"
    status_code = 503


class RemoteComputeError(SignalUnavailableError):
    """The remote compute service reported a computation failure."""

    code = "remote_compute_failed"
    status_code = 502

    def __init__(self, message: str, *, detail: object | None = None) -> None:
        super().__init__(message)
        self.detail = detail


class ComputeTimeoutError(SignalUnavailableError, TimeoutError):
    """The job poll budget ran out before the job finished."""

    code = "compute_timeout"
    status_code = 504

    def __init__(
        self, message: str, *, job_name: str | None = None, attempts: int = 0
    ) -> None:
        super().__init__(message)
        self.job_name = job_name
        self.attempts = attempts


class PersistenceError(CarbonStorageError):
    """The calculation store could not record an estimate."""

    code = "persistence_failed"
    status_code = 500


class TileServerError(CarbonStorageError):
    """The tile server answered with a non-success status."""

    code = "tile_server_error"

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code
