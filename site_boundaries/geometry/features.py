"""Convert listed boundaries to GeoJSON Features for the background layer."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from site_boundaries.geometry.normalization import normalize_geometry

if TYPE_CHECKING:
    from collections.abc import Iterable

    from site_boundaries.models.boundary import VectorLayer

logger = logging.getLogger(__name__)


def layer_to_feature(layer: VectorLayer) -> dict[str, Any] | None:
    """Build a GeoJSON Feature for *layer*, or ``None`` if its geometry is unusable.

    Feature properties carry the boundary identity and site labels, then
    the record's own properties (which win on key collisions).
    """
    geometry = normalize_geometry(layer.geometry)
    if geometry is None:
        logger.warning("Skipping layer with invalid geometry | id=%s", layer.id)
        return None

    site = layer.site
    properties: dict[str, Any] = {
        "id": layer.id,
        "siteId": layer.site_id,
        "siteName": site.name if site else None,
        "year": layer.year,
        "categoryName": site.category.name if site and site.category else None,
    }
    properties.update(layer.properties)
    return {"type": "Feature", "geometry": geometry, "properties": properties}


def layers_to_features(layers: Iterable[VectorLayer]) -> list[dict[str, Any]]:
    """Convert layers to Features, dropping the ones that do not normalize."""
    features: list[dict[str, Any]] = []
    skipped = 0
    for layer in layers:
        feature = layer_to_feature(layer)
        if feature is None:
            skipped += 1
            continue
        features.append(feature)

    logger.debug("Converted layers to features | features=%d | skipped=%d", len(features), skipped)
    return features


def feature_collection(features: list[dict[str, Any]]) -> dict[str, Any]:
    """Wrap *features* in a GeoJSON FeatureCollection."""
    return {"type": "FeatureCollection", "features": features}
