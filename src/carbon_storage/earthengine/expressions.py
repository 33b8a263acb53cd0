"""Earth Engine expressions evaluated through the compute endpoint."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date
from typing import Final

__all__ = [
    "LAND_COVER_DATASET",
    "NDVI_DATASET",
    "WORLDCOVER_LABELS",
    "ndvi_time_series_expression",
    "vegetation_signal_expression",
]

NDVI_DATASET: Final[str] = "COPERNICUS/S2_SR_HARMONIZED"
LAND_COVER_DATASET: Final[str] = "ESA/WorldCover/v200"
MAX_SCENE_CLOUD_PERCENT: Final[int] = 20

# ESA WorldCover class codes mapped onto the engine's cover labels.
WORLDCOVER_LABELS: Final[dict[int, str]] = {
    10: "Forest",
    20: "Shrubland",
    30: "Grassland",
    40: "Agricultural",
    50: "Urban",
    60: "Bare_soil",
    70: "Snow_ice",
    80: "Water",
    90: "Wetland",
    95: "Mangrove",
    100: "Sparse Vegetation",
}

_SIGNAL_TEMPLATE = """\
var geometry = ee.Geometry.Polygon({coordinates});
var scenes = ee.ImageCollection('{ndvi_dataset}')
  .filterDate('{start}', '{end}')
  .filterBounds(geometry)
  .filter(ee.Filter.lt('CLOUDY_PIXEL_PERCENTAGE', {max_cloud}));
var ndvi = scenes.map(function(img) {{
  return img.normalizedDifference(['B8', 'B4']).rename('NDVI');
}}).median();
var stats = ndvi.reduceRegion({{
  reducer: ee.Reducer.mean().combine(ee.Reducer.stdDev(), null, true),
  geometry: geometry,
  scale: 10,
  maxPixels: 1e9
}});
var cover = ee.ImageCollection('{land_cover_dataset}').first().select('Map')
  .reduceRegion({{
    reducer: ee.Reducer.frequencyHistogram(),
    geometry: geometry,
    scale: 10,
    maxPixels: 1e9
  }});
ee.Dictionary({{
  ndvi_mean: stats.get('NDVI_mean'),
  ndvi_std: stats.get('NDVI_stdDev'),
  cloud_coverage: scenes.aggregate_mean('CLOUDY_PIXEL_PERCENTAGE'),
  image_count: scenes.size(),
  land_cover: cover.get('Map')
}});"""

_TIME_SERIES_TEMPLATE = """\
var geometry = ee.Geometry.Point([{longitude}, {latitude}]);
var ndvi = ee.ImageCollection('{ndvi_dataset}')
  .filterDate('{start}', '{end}')
  .filterBounds(geometry)
  .map(function(img) {{
    var ndviValue = img.normalizedDifference(['B8', 'B4']).rename('NDVI');
    return ndviValue.copyProperties(img, ['system:time_start']);
  }});
var ndviSeries = ndvi.map(function(img) {{
  var value = img.reduceRegion({{
    reducer: ee.Reducer.mean(),
    geometry: geometry,
    scale: 10,
    maxPixels: 1e9
  }});
  return ee.Feature(null, value).set('system:time_start', img.get('system:time_start'));
}});
ndviSeries;"""


def vegetation_signal_expression(
    ring: Sequence[Sequence[float]], start: date, end: date
) -> str:
    """Return the expression computing NDVI stats and land-cover histogram.

    Args:
        ring: Closed polygon ring of ``(lon, lat)`` pairs.
        start: First day of the observation window.
        end: Day after the last day of the observation window.
    """

    coordinates = json.dumps([[[float(lon), float(lat)] for lon, lat in ring]])
    return _SIGNAL_TEMPLATE.format(
        coordinates=coordinates,
        ndvi_dataset=NDVI_DATASET,
        land_cover_dataset=LAND_COVER_DATASET,
        start=start.isoformat(),
        end=end.isoformat(),
        max_cloud=MAX_SCENE_CLOUD_PERCENT,
    )


def ndvi_time_series_expression(
    longitude: float, latitude: float, start: date, end: date
) -> str:
    """Return the expression producing a per-scene NDVI feature collection."""

    return _TIME_SERIES_TEMPLATE.format(
        longitude=float(longitude),
        latitude=float(latitude),
        ndvi_dataset=NDVI_DATASET,
        start=start.isoformat(),
        end=end.isoformat(),
    )
