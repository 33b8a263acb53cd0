"""Base type for vegetation signal providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date
from typing import ClassVar

from carbon_storage.carbon_models import VegetationSignal
from carbon_storage.errors import InvalidInputError
from carbon_storage.geometry import validate_ring

LOGGER = logging.getLogger(__name__)

DateRange = tuple[date, date]


class VegetationSignalProvider(ABC):
    """Strategy producing a :class:`VegetationSignal` for a polygon.

    Subclasses implement :meth:`_estimate`; callers use
    :meth:`estimate_signal`, which validates the ring first.
    """

    method: ClassVar[str] = "unknown"

    @abstractmethod
    def _estimate(
        self, ring: Sequence[tuple[float, float]], date_range: DateRange | None
    ) -> VegetationSignal:
        """Produce the signal for an already validated, closed ring."""

    def estimate_signal(
        self,
        ring: Sequence[Sequence[float]],
        date_range: DateRange | None = None,
    ) -> VegetationSignal:
        """Return vegetation statistics for ``ring``.

        Args:
            ring: Polygon ring of ``(lon, lat)`` pairs.
            date_range: Optional observation window ``(start, end)``.

        Returns:
            The vegetation signal; ``signal.source`` names the method used.

        Raises:
            InvalidGeometryError: If ``ring`` is not a usable polygon.
            InvalidInputError: If ``date_range`` ends before it starts.
            SignalUnavailableError: Subclass-specific remote failures.
        """

        closed = validate_ring(ring)
        if date_range is not None and date_range[1] <= date_range[0]:
            raise InvalidInputError("date_range end must be after its start")

        LOGGER.debug(
            "Estimating vegetation signal",
            extra={"provider": type(self).__name__, "vertices": len(closed) - 1},
        )
        signal = self._estimate(closed, date_range)
        LOGGER.info(
            "Vegetation signal ready",
            extra={
                "provider": type(self).__name__,
                "source": signal.source,
                "mean_index": signal.mean_index,
                "cloud_coverage_percent": signal.cloud_coverage_percent,
            },
        )
        return signal
