"""Boundary existence state.

- existence: TTL-bound, year-keyed ``BoundaryExistenceCache``
- index: ``BoundaryIndex`` of confirmed and pending (optimistic) site ids
"""

from site_boundaries.cache.existence import BoundaryExistenceCache, CacheEntry
from site_boundaries.cache.index import BoundaryIndex

__all__ = ["BoundaryExistenceCache", "BoundaryIndex", "CacheEntry"]
