"""Geodesic area of a drawn or uploaded boundary.

Area is computed on the WGS 84 ellipsoid with ``pyproj.Geod`` so the
result is accurate regardless of latitude; shapely converts the GeoJSON
mapping into a geometry pyproj can walk.  Coordinates must be
``(lon, lat)`` in EPSG:4326.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from site_boundaries.core.constants import SQ_METRES_PER_ACRE, SQ_METRES_PER_HECTARE

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AreaMeasurement:
    """Area of a boundary in explicit units.

    Attributes:
        area_sq_m: Geodesic area in square metres.
        area_ha: Same area in hectares.
        area_acres: Same area in international acres.
    """

    area_sq_m: float = 0.0
    area_ha: float = 0.0
    area_acres: float = 0.0

    @classmethod
    def from_sq_m(cls, area_sq_m: float) -> AreaMeasurement:
        return cls(
            area_sq_m=area_sq_m,
            area_ha=area_sq_m / SQ_METRES_PER_HECTARE,
            area_acres=area_sq_m / SQ_METRES_PER_ACRE,
        )


def compute_geodesic_area_sq_m(geometry: dict[str, Any]) -> float:
    """Return the absolute geodesic area of a GeoJSON geometry in square metres.

    Holes are subtracted; points and lines have zero area.

    Raises:
        ValueError: If shapely cannot build a geometry from the mapping.
    """
    from pyproj import Geod
    from shapely.geometry import shape

    geom = shape(geometry)
    if geom.is_empty:
        return 0.0

    geod = Geod(ellps="WGS84")
    area_m2, _perimeter = geod.geometry_area_perimeter(geom)
    return abs(area_m2)


def measure_geometry(geometry: dict[str, Any] | None) -> AreaMeasurement:
    """Measure *geometry*, falling back to a zero measurement on failure.

    A measurement is advisory (shown next to the drawing), so a geometry
    that shapely rejects is logged rather than raised.
    """
    if geometry is None:
        return AreaMeasurement()

    from shapely.errors import ShapelyError

    try:
        area_sq_m = compute_geodesic_area_sq_m(geometry)
    except (ShapelyError, ValueError, TypeError, KeyError, AttributeError, IndexError):
        logger.warning(
            "Failed to compute area | type=%s",
            geometry.get("type"),
            exc_info=True,
        )
        return AreaMeasurement()
    return AreaMeasurement.from_sq_m(area_sq_m)
