"""Fallback chaining provider for vegetation signals."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from carbon_storage.carbon_models import VegetationSignal
from carbon_storage.errors import SignalUnavailableError
from carbon_storage.signal_provider.base import DateRange, VegetationSignalProvider

LOGGER = logging.getLogger(__name__)


class FallbackSignalProvider(VegetationSignalProvider):
    """Try a sequence of providers until one succeeds.

    Only the remote failure family (:class:`SignalUnavailableError`) moves
    the chain along; invalid input is the caller's problem and propagates.
    """

    method = "fallback"

    def __init__(self, providers: Iterable[VegetationSignalProvider]) -> None:
        self._providers = tuple(providers)
        if not self._providers:
            raise ValueError("FallbackSignalProvider needs at least one provider")

    @property
    def providers(self) -> tuple[VegetationSignalProvider, ...]:
        return self._providers

    def _estimate(
        self, ring: Sequence[tuple[float, float]], date_range: DateRange | None
    ) -> VegetationSignal:
        """Return the signal from the first provider that succeeds.

        Raises:
            SignalUnavailableError: The last provider's error when every
                provider in the chain failed.
        """

        failures: list[SignalUnavailableError] = []
        for provider in self._providers:
            try:
                return provider.estimate_signal(ring, date_range)
            except SignalUnavailableError as exc:
                LOGGER.warning(
                    "Fallback provider invocation failed",
                    extra={
                        "provider": type(provider).__name__,
                        "error_type": type(exc).__name__,
                        "error_code": exc.code,
                    },
                )
                failures.append(exc)
        # Every provider failed; the constructor rejects an empty chain.
        raise failures[-1]
