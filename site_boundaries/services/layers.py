"""Boundary layer service: populates existence state from the all-layers listing.

Owns the ``BoundaryExistenceCache``, the ``BoundaryIndex`` and the
current year's ``VectorLayer`` list (the read-only background layer).

Concurrency rules (single event loop, no threads):
    - At most one listing fetch is in flight.  A refresh requested while
      one is outstanding is a no-op returning ``None``; the caller relies
      on the first fetch's result landing in the cache.
    - A listing that started before a cache invalidation is not stored
      in the cache (it may predate a save).
    - ``teardown`` clears all state and the in-flight guard; a fetch that
      resolves afterwards is discarded instead of applied.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from site_boundaries.cache.existence import BoundaryExistenceCache
from site_boundaries.cache.index import BoundaryIndex
from site_boundaries.geometry.features import feature_collection, layers_to_features
from site_boundaries.models.boundary import VectorLayer, parse_records
from site_boundaries.models.results import ErrorKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from site_boundaries.api.client import ApiClient
    from site_boundaries.models.boundary import BoundaryRecord
    from site_boundaries.models.results import FetchResult

logger = logging.getLogger(__name__)


class BoundaryLayerService:
    """Existence cache population, degraded reads and background-layer data."""

    def __init__(
        self,
        client: ApiClient,
        *,
        cache: BoundaryExistenceCache | None = None,
        index: BoundaryIndex | None = None,
    ) -> None:
        self._client = client
        self.cache = cache or BoundaryExistenceCache(client.config.cache_ttl_s)
        self.index = index or BoundaryIndex()
        self._fetching = False
        self._generation = 0
        self._layers: list[VectorLayer] = []
        self._layers_year: int | None = None

    @property
    def fetching(self) -> bool:
        """Whether a listing fetch is currently outstanding."""
        return self._fetching

    @property
    def layers(self) -> list[VectorLayer]:
        """Live boundaries of the most recently listed year."""
        return list(self._layers)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def site_ids_with_boundary(self, year: int) -> frozenset[int]:
        """Sites with a boundary in *year*, using the cache when it is valid.

        Falls back to the last known (confirmed plus pending) set when a
        refresh cannot produce a listing.
        """
        cached = self.cache.get(year)
        if cached is not None:
            return cached | self.index.site_ids(year)

        refreshed = await self.refresh(year)
        if refreshed is not None:
            return refreshed
        return self.index.site_ids(year)

    async def refresh(self, year: int) -> frozenset[int] | None:
        """Fetch the all-layers listing and store *year*'s existence set.

        Returns:
            Sites with a boundary in *year* (including pending optimistic
            ids), the stale cached set when the backend rate-limits us, or
            ``None`` when skipped (fetch already in flight), discarded
            (teardown) or failed.
        """
        if self._fetching:
            logger.debug("Listing fetch already in flight - skipping refresh | year=%d", year)
            return None

        self._fetching = True
        generation = self._generation
        epoch = self.cache.epoch
        ticket = self.index.begin_fetch()
        try:
            result = await self._client.list_vector_layers()
        finally:
            if generation == self._generation:
                self._fetching = False

        if generation != self._generation:
            logger.info("Discarding listing that resolved after teardown | year=%d", year)
            return None

        if not result.success:
            return self._degraded_read(year, result)

        layers = [
            layer
            for layer in parse_records(result.data, VectorLayer)
            if layer.year == year and not layer.is_deleted
        ]
        site_ids = frozenset(layer.site_id for layer in layers)

        self.cache.set(year, site_ids, expected_epoch=epoch)
        self.index.apply_listing(year, site_ids, ticket)
        self._layers = layers
        self._layers_year = year

        logger.info(
            "Boundary listing refreshed | year=%d | layers=%d | sites=%d",
            year,
            len(layers),
            len(site_ids),
        )
        return self.index.site_ids(year)

    def _degraded_read(self, year: int, result: FetchResult) -> frozenset[int] | None:
        if result.kind is ErrorKind.RATE_LIMITED:
            stale = self.cache.get(year, allow_stale=True)
            if stale is not None:
                logger.warning(
                    "Rate limited - serving stale boundary existence | year=%d | sites=%d",
                    year,
                    len(stale),
                )
                return stale | self.index.site_ids(year)

        logger.warning(
            "Boundary listing unavailable | year=%d | kind=%s | error=%s",
            year,
            result.kind.value if result.kind else "",
            result.error,
        )
        return None

    # ------------------------------------------------------------------
    # Background layer
    # ------------------------------------------------------------------

    def background_collection(self) -> dict[str, Any]:
        """GeoJSON FeatureCollection of the listed year's boundaries."""
        return feature_collection(layers_to_features(self._layers))

    def merge_saved(self, records: Iterable[BoundaryRecord]) -> None:
        """Fold saved records into the background layer (replace by id, else append)."""
        by_id = {layer.id: position for position, layer in enumerate(self._layers)}
        for record in records:
            if self._layers_year is not None and record.year != self._layers_year:
                continue
            layer = VectorLayer.model_validate(record.model_dump())
            position = by_id.get(layer.id)
            if position is None:
                by_id[layer.id] = len(self._layers)
                self._layers.append(layer)
                continue
            if layer.site is None:
                layer = layer.model_copy(update={"site": self._layers[position].site})
            self._layers[position] = layer
        logger.debug("Merged saved boundaries | layers=%d", len(self._layers))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def teardown(self) -> None:
        """Drop all state; late-resolving fetches are discarded."""
        self._generation += 1
        self._fetching = False
        self.cache.invalidate()
        self.index.clear()
        self._layers = []
        self._layers_year = None
        logger.debug("Boundary layer service torn down")
