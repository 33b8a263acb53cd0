"""Shared httpx helpers for outbound calls."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import httpx

__all__ = ["client_scope", "response_detail"]


@contextmanager
def client_scope(client: httpx.Client | None, timeout: float) -> Iterator[httpx.Client]:
    """Yield ``client`` untouched, or a short-lived client closed on exit."""

    if client is not None:
        yield client
        return
    with httpx.Client(timeout=timeout) as owned:
        yield owned


def response_detail(response: httpx.Response) -> object:
    """Return the decoded error body of ``response`` for diagnostics."""

    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(payload, dict) and "error" in payload:
        return payload["error"]
    return payload
