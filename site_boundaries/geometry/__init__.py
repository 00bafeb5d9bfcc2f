"""Geometry helpers.

- normalization: Reduce stored/uploaded shapes to one canonical GeoJSON geometry
- features: Convert listed boundaries to GeoJSON Features for the background layer
- area: Geodesic area measurement (shapely + pyproj)
"""

from site_boundaries.geometry.area import AreaMeasurement, measure_geometry
from site_boundaries.geometry.features import (
    feature_collection,
    layer_to_feature,
    layers_to_features,
)
from site_boundaries.geometry.normalization import is_polygonal, normalize_geometry

__all__ = [
    "AreaMeasurement",
    "feature_collection",
    "is_polygonal",
    "layer_to_feature",
    "layers_to_features",
    "measure_geometry",
    "normalize_geometry",
]
