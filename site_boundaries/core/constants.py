"""Shared constants: single source of truth.

Centralises endpoint paths, resilience thresholds and unit conversions
used by the API client, the cache and the save controller.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

DEFAULT_API_BASE_URL: str = "http://localhost:3000/api/v1"
"""Base URL of the boundaries API (``/vectors`` lives under it)."""

DEFAULT_VECTOR_LAYERS_URL: str = "http://localhost:3000/api/vector-layers"
"""All-layers listing used to populate the existence cache and background layer."""

VECTORS_RESOURCE: str = "vectors"
"""Relative resource path for list/create; ``vectors/{id}`` for updates."""

# ---------------------------------------------------------------------------
# Resilience defaults
# ---------------------------------------------------------------------------

DEFAULT_REQUEST_TIMEOUT_S: float = 10.0
DEFAULT_MAX_RETRIES: int = 2
DEFAULT_RETRY_BASE_DELAY_S: float = 1.0
DEFAULT_BREAKER_FAILURE_THRESHOLD: int = 3
DEFAULT_BREAKER_COOLDOWN_S: float = 30.0
DEFAULT_CACHE_TTL_S: float = 300.0

SERVICE_UNAVAILABLE_STATUSES: frozenset[int] = frozenset({502, 503, 504})
RATE_LIMITED_STATUS: int = 429
CONFLICT_STATUS: int = 409

# ---------------------------------------------------------------------------
# Boundary properties
# ---------------------------------------------------------------------------

SOURCE_DRAWING: str = "drawing"
SOURCE_UPLOAD: str = "upload"

GEOMETRY_TYPES: frozenset[str] = frozenset(
    {"Point", "LineString", "Polygon", "MultiPoint", "MultiLineString", "MultiPolygon"}
)
"""The six canonical GeoJSON geometry types."""

# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

SQ_METRES_PER_HECTARE: float = 10_000.0
SQ_METRES_PER_ACRE: float = 4046.8564224
