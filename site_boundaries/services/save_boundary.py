"""Save a drawn or uploaded boundary for one (site, year).

Exactly one live boundary may exist per site and year.  The backend
rejects a duplicate create with 409 but does not tell the client which
record won, so ``BoundarySaveController.save`` reconciles the
create-vs-update ambiguity itself:

1. ``existing_id`` known   -> PATCH it                  -> UPDATED / FAILED
2. otherwise POST          -> 2xx                        -> CREATED
                              (id looked up by (site, year) if the body has none)
                           -> 409 -> GET (site, year)
                                     one match -> PATCH  -> UPDATED / FAILED
                                     no match            -> FAILED (the 409)
                           -> anything else              -> FAILED

The caller only ever sees a ``SaveOutcome``.  Transport retries live in
the API client; this controller never retries a create.

After a successful write, in this order:
    invalidate the existence cache -> mark the site as a pending
    optimistic boundary -> start a background refresh.  Refresh tasks are
    held until done, and a failed refresh is logged, never lost.

Calling ``save`` twice with the same arguments converges to one record:
the second call hits 409 and patches the record the first call created.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from site_boundaries.core.constants import SOURCE_DRAWING
from site_boundaries.geometry.normalization import normalize_geometry
from site_boundaries.models.boundary import (
    BoundaryRecord,
    CreateBoundaryPayload,
    UpdateBoundaryPayload,
    parse_records,
)
from site_boundaries.models.results import ErrorKind, SaveOutcome

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from site_boundaries.api.client import ApiClient
    from site_boundaries.cache.existence import BoundaryExistenceCache
    from site_boundaries.cache.index import BoundaryIndex
    from site_boundaries.models.results import WriteResult

logger = logging.getLogger(__name__)

NO_GEOMETRY_REASON = "No usable geometry to save"


class BoundarySaveController:
    """Create/patch/conflict state machine for saving one boundary.

    Args:
        client: API client used for writes and the reconciliation lookup.
        cache: Existence cache to invalidate after a write.
        index: Index receiving the optimistic "has boundary" entry.
        refresh: Coroutine function started in the background after a
            write (typically ``BoundaryLayerService.refresh``).
    """

    def __init__(
        self,
        client: ApiClient,
        cache: BoundaryExistenceCache,
        index: BoundaryIndex,
        *,
        refresh: Callable[[int], Awaitable[object]] | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._index = index
        self._refresh = refresh
        self.background_refresh: asyncio.Future[object] | None = None
        self._background_tasks: set[asyncio.Future[object]] = set()

    async def save(
        self,
        site_id: int,
        year: int,
        geometry: object,
        *,
        existing_id: str | None = None,
        source: str = SOURCE_DRAWING,
        properties: dict[str, Any] | None = None,
    ) -> SaveOutcome:
        """Persist *geometry* as the boundary of *site_id* in *year*.

        Args:
            site_id: Target site.
            year: Target calendar year.
            geometry: Geometry, Feature or FeatureCollection; normalized first.
            existing_id: Boundary id already known for this site/year, if any.
            source: ``"drawing"`` or ``"upload"``, stored in properties.
            properties: Extra properties merged after ``source``.

        Returns:
            ``SaveOutcome`` of CREATED, UPDATED or FAILED.  Never raises for
            transport or HTTP failures.
        """
        normalized = normalize_geometry(geometry)
        if normalized is None:
            logger.warning("Save skipped - no usable geometry | site_id=%d | year=%d", site_id, year)
            return SaveOutcome.failed(NO_GEOMETRY_REASON)

        boundary_properties: dict[str, Any] = {"source": source}
        boundary_properties.update(properties or {})

        logger.info(
            "Saving boundary | site_id=%d | year=%d | existing_id=%s | source=%s",
            site_id,
            year,
            existing_id or "-",
            source,
        )

        if existing_id:
            outcome = await self._update(existing_id, normalized, boundary_properties)
        else:
            outcome = await self._create(site_id, year, normalized, boundary_properties)

        if outcome.succeeded:
            self._after_write(site_id, year)

        logger.info(
            "Save finished | site_id=%d | year=%d | status=%s | boundary_id=%s | reconciled=%s",
            site_id,
            year,
            outcome.status.value,
            outcome.boundary_id or "-",
            outcome.reconciled,
        )
        return outcome

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def _create(
        self,
        site_id: int,
        year: int,
        geometry: dict[str, Any],
        properties: dict[str, Any],
    ) -> SaveOutcome:
        payload = CreateBoundaryPayload(
            site_id=site_id,
            year=year,
            geometry=geometry,
            properties=properties,
        )
        result = await self._client.create_boundary(payload)
        if result.success:
            record_id = result.record_id or await self._resolve_created_id(site_id, year)
            return SaveOutcome.created(record_id, _to_record(result))

        if result.kind is ErrorKind.CONFLICT:
            return await self._reconcile(site_id, year, geometry, properties, conflict=result)

        return SaveOutcome.failed(result.error, result.kind)

    async def _reconcile(
        self,
        site_id: int,
        year: int,
        geometry: dict[str, Any],
        properties: dict[str, Any],
        *,
        conflict: WriteResult,
    ) -> SaveOutcome:
        logger.info("Boundary already exists - reconciling | site_id=%d | year=%d", site_id, year)

        lookup = await self._client.list_boundaries(year=year, site_id=site_id)
        if not lookup.success:
            reason = f"{conflict.error} (existing boundary lookup failed: {lookup.error})"
            return SaveOutcome.failed(reason, lookup.kind)

        matches = _live_matches(lookup.data, site_id, year)
        if not matches:
            logger.warning(
                "Conflict reported but no boundary found | site_id=%d | year=%d",
                site_id,
                year,
            )
            return SaveOutcome.failed(conflict.error, conflict.kind)

        if len(matches) > 1:
            logger.warning(
                "Multiple live boundaries for one site/year - updating the first | "
                "site_id=%d | year=%d | ids=%s",
                site_id,
                year,
                [record.id for record in matches],
            )

        return await self._update(matches[0].id, geometry, properties, reconciled=True)

    async def _resolve_created_id(self, site_id: int, year: int) -> str:
        logger.warning(
            "Create response carried no id - looking it up | site_id=%d | year=%d",
            site_id,
            year,
        )
        lookup = await self._client.list_boundaries(year=year, site_id=site_id)
        matches = _live_matches(lookup.data, site_id, year) if lookup.success else []
        if matches:
            return matches[0].id
        logger.warning(
            "Created boundary id unresolved | site_id=%d | year=%d | error=%s",
            site_id,
            year,
            lookup.error or "no matching record",
        )
        return ""

    async def _update(
        self,
        boundary_id: str,
        geometry: dict[str, Any],
        properties: dict[str, Any],
        *,
        reconciled: bool = False,
    ) -> SaveOutcome:
        payload = UpdateBoundaryPayload(geometry=geometry, properties=properties)
        result = await self._client.update_boundary(boundary_id, payload)
        if not result.success:
            return SaveOutcome.failed(result.error, result.kind)
        return SaveOutcome.updated(
            result.record_id or boundary_id,
            _to_record(result),
            reconciled=reconciled,
        )

    def _after_write(self, site_id: int, year: int) -> None:
        self._cache.invalidate()
        self._index.mark_pending(site_id, year)
        if self._refresh is None:
            return
        task = asyncio.ensure_future(self._refresh(year))
        self._background_tasks.add(task)
        task.add_done_callback(self._refresh_done)
        self.background_refresh = task

    def _refresh_done(self, task: asyncio.Future[object]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background boundary refresh failed | error=%s", exc, exc_info=exc)

    async def wait_for_refresh(self) -> None:
        """Wait for every background refresh started by earlier saves."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)


def _live_matches(items: list[Any], site_id: int, year: int) -> list[BoundaryRecord]:
    return [record for record in parse_records(items, BoundaryRecord) if record.matches(site_id, year)]


def _to_record(result: WriteResult) -> BoundaryRecord | None:
    if result.record is None:
        return None
    try:
        return BoundaryRecord.model_validate(result.record)
    except ValidationError:
        logger.debug("Write response is not a full boundary record | id=%s", result.record_id)
        return None
