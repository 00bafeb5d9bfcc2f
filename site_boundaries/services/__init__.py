"""Boundary services.

- layers: ``BoundaryLayerService``: existence cache population, background layer
- save_boundary: ``BoundarySaveController``: create / conflict / patch
- session: ``DrawingSession``: selection, drawing and next-site sequencing
"""

from site_boundaries.services.layers import BoundaryLayerService
from site_boundaries.services.save_boundary import BoundarySaveController
from site_boundaries.services.session import Drawing, DrawingSession, recent_years

__all__ = [
    "BoundaryLayerService",
    "BoundarySaveController",
    "Drawing",
    "DrawingSession",
    "recent_years",
]
