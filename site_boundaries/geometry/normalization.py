"""Geometry normalization for stored and uploaded shapes.

Boundaries arrive in three shapes: a bare GeoJSON geometry, a ``Feature``
wrapping one, or (from some old uploads) a ``FeatureCollection`` that was
stored where a geometry belongs.  ``normalize_geometry`` reduces all of
them to one canonical geometry so nothing downstream ever sees a wrapper.

Malformed input never raises: absence is signalled with ``None`` so a
batch import can skip-and-log a bad row instead of aborting.
"""

from __future__ import annotations

import logging
from typing import Any

from site_boundaries.core.constants import GEOMETRY_TYPES

logger = logging.getLogger(__name__)


def normalize_geometry(value: object) -> dict[str, Any] | None:
    """Reduce *value* to a canonical GeoJSON geometry, or ``None``.

    - ``FeatureCollection``: the geometry of its first feature
      (``None`` when it has no features).
    - ``Feature``: its ``geometry`` member.
    - One of the six GeoJSON geometry types: returned as-is.
    - Anything else: ``None``.
    """
    current = value
    # Each step strips one wrapper, so this terminates on any finite input.
    while isinstance(current, dict):
        geometry_type = current.get("type")

        if geometry_type == "FeatureCollection":
            features = current.get("features")
            if not isinstance(features, list) or not features:
                logger.warning("FeatureCollection has no features")
                return None
            first = features[0]
            current = first.get("geometry") if isinstance(first, dict) else None
            continue

        if geometry_type == "Feature":
            current = current.get("geometry")
            continue

        if geometry_type in GEOMETRY_TYPES:
            return current

        logger.warning("Unknown geometry type | type=%r", geometry_type)
        return None

    if current is not None:
        logger.warning("Geometry is not a mapping | python_type=%s", type(current).__name__)
    return None


def is_polygonal(geometry: dict[str, Any] | None) -> bool:
    """Whether a normalized geometry encloses area (Polygon or MultiPolygon)."""
    return geometry is not None and geometry.get("type") in ("Polygon", "MultiPolygon")
