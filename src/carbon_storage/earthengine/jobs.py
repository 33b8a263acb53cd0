"""Submit compute expressions and poll long-running jobs to completion.

State machine::

    Submitted --(terminal payload)--> Completed
    Submitted --(job handle)--> Polling --(done, no error)--> Completed
                                Polling --(done, error)--> Failed
                                Polling --(budget spent)--> TimedOut

Status checks are strictly sequential. Re-submitting an expression creates
an independent job; nothing is deduplicated. There is no mid-poll
cancellation: the attempt budget is the only cutoff.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

import httpx

from carbon_storage.earthengine.auth import AccessToken
from carbon_storage.errors import (
    AuthenticationError,
    ComputeTimeoutError,
    RemoteComputeError,
    TransientError,
)
from carbon_storage.http_client import client_scope, response_detail

LOGGER = logging.getLogger(__name__)

__all__ = ["ComputeJobPoller", "JobResult", "RemoteJobHandle"]

DEFAULT_BASE_URL = "https://earthengine.googleapis.com/v1"
DEFAULT_PROJECT = "earthengine-public"


@dataclass(slots=True)
class RemoteJobHandle:
    """Client-side view of a remote long-running job."""

    name: str
    done: bool = False
    result: object | None = None
    error: object | None = None
    attempts: int = 0

    def update(self, payload: Mapping[str, object]) -> None:
        """Apply a status payload read from the remote service."""

        if self.done:
            return
        self.done = payload.get("done") is True
        self.error = payload.get("error")
        if "result" in payload:
            self.result = payload["result"]
        elif "response" in payload:
            self.result = payload["response"]


@dataclass(frozen=True, slots=True)
class JobResult:
    """Outcome of a completed compute request."""

    result: object
    job_name: str | None = None
    attempts: int = 0


class ComputeJobPoller:
    """Submit an expression to the compute endpoint and await its result.

    ``token`` is an :class:`AccessToken`, a raw bearer string, or a callable
    returning either; a callable is invoked once per submission.
    """

    def __init__(
        self,
        token: AccessToken | str | Callable[[], AccessToken | str],
        *,
        base_url: str = DEFAULT_BASE_URL,
        project: str = DEFAULT_PROJECT,
        poll_interval_seconds: float = 2.0,
        max_attempts: int = 30,
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._token = token
        self._base = base_url.rstrip("/")
        self._project = project
        self._interval = poll_interval_seconds
        self._max_attempts = max_attempts
        self._timeout = timeout_seconds
        self._client = client
        self._sleep = sleep

    @property
    def compute_url(self) -> str:
        """Endpoint receiving expression submissions."""

        return f"{self._base}/projects/{self._project}/value:compute"

    def submit_and_await(
        self, expression: object, max_attempts: int | None = None
    ) -> JobResult:
        """Submit ``expression`` and wait for the job to finish.

        Args:
            expression: Serialized computation understood by the endpoint.
            max_attempts: Optional override of the poll budget.

        Returns:
            The job's result payload.

        Raises:
            AuthenticationError: If the bearer token is rejected.
            TransientError: On transport failures, 429 or 5xx answers.
            RemoteComputeError: If the expression is rejected or the job
                finishes with an error.
            ComputeTimeoutError: If the job is not done within the budget.
        """

        budget = self._max_attempts if max_attempts is None else max_attempts
        if budget < 1:
            raise ValueError("max_attempts must be >= 1")

        headers = self._authorization_header()
        body = {"expression": expression, "project": self._project}
        with client_scope(self._client, self._timeout) as client:
            payload = self._request(
                client, "POST", self.compute_url, headers=headers, json=body
            )
            name = payload.get("name")
            if not isinstance(name, str) or not name:
                LOGGER.info("Compute request completed without a job handle")
                result = payload["result"] if "result" in payload else payload
                return JobResult(result=result)

            handle = RemoteJobHandle(name=name)
            LOGGER.info("Compute job submitted", extra={"job_name": name})
            return self._await(client, handle, headers, budget)

    def _await(
        self,
        client: httpx.Client,
        handle: RemoteJobHandle,
        headers: Mapping[str, str],
        budget: int,
    ) -> JobResult:
        url = f"{self._base}/{handle.name}"
        while handle.attempts < budget:
            self._sleep(self._interval)
            handle.attempts += 1
            status = self._request(client, "GET", url, headers=headers)
            handle.update(status)
            LOGGER.debug(
                "Compute job polled",
                extra={
                    "job_name": handle.name,
                    "attempt": handle.attempts,
                    "max_attempts": budget,
                    "done": handle.done,
                },
            )
            if not handle.done:
                continue
            if handle.error is not None:
                LOGGER.warning(
                    "Compute job failed",
                    extra={"job_name": handle.name, "error": handle.error},
                )
                raise RemoteComputeError(
                    f"Compute job {handle.name} failed", detail=handle.error
                )
            LOGGER.info(
                "Compute job completed",
                extra={"job_name": handle.name, "attempts": handle.attempts},
            )
            return JobResult(
                result=handle.result, job_name=handle.name, attempts=handle.attempts
            )

        raise ComputeTimeoutError(
            f"Compute job {handle.name} not done after {budget} attempts",
            job_name=handle.name,
            attempts=handle.attempts,
        )

    def _request(
        self,
        client: httpx.Client,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        json: object | None = None,
    ) -> dict[str, object]:
        try:
            response = client.request(method, url, headers=dict(headers), json=json)
        except httpx.TransportError as exc:
            LOGGER.warning(
                "Compute API transport error",
                extra={"url": url, "error_type": type(exc).__name__},
            )
            raise TransientError("Compute API unreachable") from exc

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(f"Compute API rejected credentials (HTTP {status})")
        if status == 429 or status >= 500:
            raise TransientError(f"Compute API returned HTTP {status}")
        if status >= 400:
            detail = response_detail(response)
            LOGGER.warning(
                "Compute API rejected request",
                extra={"url": url, "status_code": status, "detail": detail},
            )
            raise RemoteComputeError(
                f"Compute API rejected request (HTTP {status})", detail=detail
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteComputeError("Compute API returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            return {"result": payload}
        return payload

    def _authorization_header(self) -> dict[str, str]:
        token = self._token() if callable(self._token) else self._token
        if isinstance(token, AccessToken):
            return token.authorization_header
        return {"Authorization": f"Bearer {token}"}
