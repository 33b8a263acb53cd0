"""Polygon helpers: ring normalisation, validation and approximate area.

The area calculation is a planar shoelace over raw longitude/latitude
degrees scaled by a fixed ~111 km-per-degree constant. It is only a
reasonable estimate for small parcels near the equator; accuracy degrades
with latitude and polygon size.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Final

from carbon_storage.errors import InvalidGeometryError

__all__ = [
    "Coordinate",
    "DEGREE_SQUARED_TO_HECTARES",
    "centroid",
    "close_ring",
    "compute_area_hectares",
    "ring_from_geojson",
    "validate_ring",
]

Coordinate = tuple[float, float]

METERS_PER_DEGREE: Final[float] = 111_000.0
DEGREE_SQUARED_TO_HECTARES: Final[float] = METERS_PER_DEGREE**2 / 10_000.0


def compute_area_hectares(ring: Sequence[Sequence[float]]) -> float:
    """Return the approximate area of ``ring`` in hectares.

    Args:
        ring: Ordered ``(lon, lat)`` pairs. The ring may be open or closed.

    Returns:
        Area in hectares, ``0.0`` for rings with fewer than three points.
    """

    points = _open_points(ring)
    if len(points) < 3:
        return 0.0

    # Shift to the first vertex; large raw degrees lose precision otherwise.
    origin_x, origin_y = points[0]
    shifted = [(x - origin_x, y - origin_y) for x, y in points]
    twice_area = 0.0
    count = len(shifted)
    for index in range(count):
        x1, y1 = shifted[index]
        x2, y2 = shifted[(index + 1) % count]
        twice_area += x1 * y2 - x2 * y1
    return abs(twice_area) / 2.0 * DEGREE_SQUARED_TO_HECTARES


def close_ring(ring: Sequence[Sequence[float]]) -> list[Coordinate]:
    """Return a copy of ``ring`` whose last coordinate equals the first."""

    points = [(float(point[0]), float(point[1])) for point in ring]
    if points and points[0] != points[-1]:
        points.append(points[0])
    return points


def validate_ring(ring: object) -> list[Coordinate]:
    """Validate a coordinate ring and return it closed.

    Args:
        ring: Candidate sequence of ``(lon, lat)`` pairs.

    Returns:
        The closed ring as a list of float tuples.

    Raises:
        InvalidGeometryError: If the ring is not a sequence of numeric pairs,
            holds out-of-range or non-finite coordinates, or has fewer than
            three distinct vertices.
    """

    if not isinstance(ring, Sequence) or isinstance(ring, (str, bytes)):
        raise InvalidGeometryError("Polygon ring must be a sequence of coordinates")

    points: list[Coordinate] = []
    for position, point in enumerate(ring):
        points.append(_parse_point(point, position))

    distinct = set(points)
    if len(distinct) < 3:
        raise InvalidGeometryError(
            "Polygon ring needs at least 3 distinct vertices"
        )
    return close_ring(points)


def ring_from_geojson(geometry: Mapping[str, object]) -> list[Coordinate]:
    """Extract and validate the outer ring of a GeoJSON ``Polygon``.

    Interior rings (holes) are ignored.

    Raises:
        InvalidGeometryError: If the mapping is not a well-formed polygon.
    """

    geometry_type = geometry.get("type")
    if geometry_type != "Polygon":
        raise InvalidGeometryError(
            f"Unsupported geometry type {geometry_type!r}; expected 'Polygon'"
        )
    rings = geometry.get("coordinates")
    if not isinstance(rings, Sequence) or isinstance(rings, (str, bytes)) or not rings:
        raise InvalidGeometryError("Polygon coordinates must hold at least one ring")
    return validate_ring(rings[0])


def centroid(ring: Sequence[Sequence[float]]) -> Coordinate:
    """Return the vertex mean of ``ring`` ignoring the closing coordinate."""

    points = _open_points(ring)
    if not points:
        raise InvalidGeometryError("Cannot take the centroid of an empty ring")
    lon = sum(point[0] for point in points) / len(points)
    lat = sum(point[1] for point in points) / len(points)
    return (lon, lat)


def _open_points(ring: Sequence[Sequence[float]]) -> list[Coordinate]:
    points = [(float(point[0]), float(point[1])) for point in ring]
    if len(points) > 1 and points[0] == points[-1]:
        points.pop()
    return points


def _parse_point(point: object, position: int) -> Coordinate:
    if (
        not isinstance(point, Sequence)
        or isinstance(point, (str, bytes))
        or len(point) < 2
    ):
        raise InvalidGeometryError(
            f"Coordinate {position} must be a [lon, lat] pair"
        )
    lon_raw, lat_raw = point[0], point[1]
    if isinstance(lon_raw, bool) or isinstance(lat_raw, bool):
        raise InvalidGeometryError(f"Coordinate {position} must be numeric")
    try:
        lon = float(lon_raw)  # type: ignore[arg-type]
        lat = float(lat_raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise InvalidGeometryError(f"Coordinate {position} must be numeric") from exc
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise InvalidGeometryError(f"Coordinate {position} must be finite")
    if not -180.0 <= lon <= 180.0 or not -90.0 <= lat <= 90.0:
        raise InvalidGeometryError(
            f"Coordinate {position} is outside the valid lon/lat range"
        )
    return (lon, lat)
