"""Tests for the boundary save controller.

Covers:
- Create, and the 409 → lookup → PATCH reconciliation
- Saving twice converges on one record
- Failure outcomes (no geometry, lookup failure, unmatched conflict)
- Post-write ordering: invalidate → optimistic mark → background refresh
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from site_boundaries.cache.existence import BoundaryExistenceCache
from site_boundaries.cache.index import BoundaryIndex
from site_boundaries.models.results import ErrorKind, SaveStatus
from site_boundaries.services.layers import BoundaryLayerService
from site_boundaries.services.save_boundary import NO_GEOMETRY_REASON, BoundarySaveController

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from conftest import FakeClock, FakeVectorBackend

    from site_boundaries.api.client import ApiClient

VECTORS = "/api/v1/vectors"


@pytest.fixture()
def layers(client: ApiClient, clock: FakeClock) -> BoundaryLayerService:
    return BoundaryLayerService(client, cache=BoundaryExistenceCache(300, clock=clock))


@pytest_asyncio.fixture
async def controller(
    client: ApiClient,
    layers: BoundaryLayerService,
) -> AsyncIterator[BoundarySaveController]:
    save_controller = BoundarySaveController(client, layers.cache, layers.index, refresh=layers.refresh)
    yield save_controller
    await save_controller.wait_for_refresh()


def _sent_json(request: httpx.Request) -> dict[str, Any]:
    return json.loads(request.content)


class TestCreate:
    """No boundary yet for the site and year."""

    @pytest.mark.asyncio
    async def test_created(
        self,
        controller: BoundarySaveController,
        layers: BoundaryLayerService,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.status is SaveStatus.CREATED
        assert outcome.boundary_id == "100"
        assert outcome.record is not None
        assert outcome.record.site_id == 7
        assert len(backend.live_records(7, 2024)) == 1

        # Optimistic entry is visible before the refresh lands.
        assert layers.index.is_pending(7, 2024)
        assert controller.background_refresh is not None
        await controller.background_refresh
        assert layers.cache.get(2024) == frozenset({7})
        assert not layers.index.is_pending(7, 2024)

    @pytest.mark.asyncio
    async def test_created_id_looked_up_when_body_has_none(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        record = backend.seed(7, 2024)
        backend.queue("POST", VECTORS, httpx.Response(201, json={"success": True}))

        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.status is SaveStatus.CREATED
        assert outcome.boundary_id == str(record["id"])
        assert outcome.record is None
        assert backend.count("GET", VECTORS) == 1

    @pytest.mark.asyncio
    async def test_created_id_unresolved_is_logged(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        backend.queue("POST", VECTORS, httpx.Response(201))

        with caplog.at_level(logging.WARNING, logger="site_boundaries.services.save_boundary"):
            outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.status is SaveStatus.CREATED
        assert outcome.boundary_id == ""
        assert any("Created boundary id unresolved" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_undecodable_response_is_an_outcome(
        self,
        controller: BoundarySaveController,
        layers: BoundaryLayerService,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        backend.queue(
            "POST",
            VECTORS,
            httpx.Response(200, headers={"content-encoding": "gzip"}, stream=httpx.ByteStream(b"{}")),
        )

        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.status is SaveStatus.FAILED
        assert outcome.kind is ErrorKind.MALFORMED_RESPONSE
        assert not layers.index.is_pending(7, 2024)

    @pytest.mark.asyncio
    async def test_payload(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        await controller.save(7, 2024, square_polygon, source="upload", properties={"note": "north"})

        body = _sent_json(backend.requests[0])
        assert body == {
            "siteId": 7,
            "year": 2024,
            "geometry": square_polygon,
            "properties": {"source": "upload", "note": "north"},
        }

    @pytest.mark.asyncio
    async def test_wrapped_geometry_normalized(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        upload = {
            "type": "FeatureCollection",
            "features": [{"type": "Feature", "geometry": square_polygon, "properties": {}}],
        }

        await controller.save(7, 2024, upload)

        assert _sent_json(backend.requests[0])["geometry"] == square_polygon

    @pytest.mark.asyncio
    async def test_no_geometry(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
    ) -> None:
        outcome = await controller.save(7, 2024, {"type": "FeatureCollection", "features": []})

        assert outcome.status is SaveStatus.FAILED
        assert outcome.reason == NO_GEOMETRY_REASON
        assert backend.requests == []
        assert controller.background_refresh is None


class TestReconcile:
    """A 409 on create is resolved by patching the existing record."""

    @pytest.mark.asyncio
    async def test_repeat_save_updates(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        first = await controller.save(7, 2024, square_polygon)
        await controller.background_refresh
        second = await controller.save(7, 2024, square_polygon)

        assert second.status is SaveStatus.UPDATED
        assert second.boundary_id == first.boundary_id
        assert second.reconciled
        assert len(backend.live_records(7, 2024)) == 1
        methods = [(r.method, r.url.path) for r in backend.requests if r.url.path != "/api/vector-layers"]
        assert methods == [
            ("POST", VECTORS),
            ("POST", VECTORS),
            ("GET", VECTORS),
            ("PATCH", f"{VECTORS}/{first.boundary_id}"),
        ]

    @pytest.mark.asyncio
    async def test_second_geometry_wins(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
        second_polygon: dict[str, Any],
    ) -> None:
        await controller.save(7, 2024, square_polygon)
        await controller.background_refresh
        await controller.save(7, 2024, second_polygon)

        [record] = backend.live_records(7, 2024)
        assert record["geometry"] == second_polygon

    @pytest.mark.asyncio
    async def test_lookup_narrowed_to_site_and_year(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        backend.seed(7, 2024)

        await controller.save(7, 2024, square_polygon)

        lookup = next(r for r in backend.requests if r.method == "GET")
        assert lookup.url.params["siteId"] == "7"
        assert lookup.url.params["year"] == "2024"

    @pytest.mark.asyncio
    async def test_multiple_matches_patch_first(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        backend.seed(7, 2024)
        duplicates = [
            {"id": 41, "siteId": 7, "year": 2024, "geometry": square_polygon},
            {"id": 42, "siteId": 7, "year": 2024, "geometry": square_polygon},
        ]
        backend.queue("GET", VECTORS, httpx.Response(200, json=duplicates))
        backend.queue("PATCH", f"{VECTORS}/41", httpx.Response(200, json=duplicates[0]))

        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.status is SaveStatus.UPDATED
        assert outcome.boundary_id == "41"

    @pytest.mark.asyncio
    async def test_deleted_and_foreign_rows_ignored(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        rows = [
            {"id": 1, "siteId": 7, "year": 2024, "deletedAt": "2024-01-01T00:00:00Z"},
            {"id": 2, "siteId": 8, "year": 2024},
            {"id": 3, "siteId": 7, "year": 2024},
        ]
        backend.seed(7, 2024)
        backend.queue("GET", VECTORS, httpx.Response(200, json=rows))
        backend.queue("PATCH", f"{VECTORS}/3", httpx.Response(200, json=rows[2]))

        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.boundary_id == "3"

    @pytest.mark.asyncio
    async def test_conflict_without_match_fails(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        backend.queue("POST", VECTORS, httpx.Response(409, json={"error": "exists"}))

        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.status is SaveStatus.FAILED
        assert outcome.kind is ErrorKind.CONFLICT
        assert "409" in outcome.reason
        assert not outcome.can_retry

    @pytest.mark.asyncio
    async def test_lookup_failure_fails_with_lookup_kind(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        backend.seed(7, 2024)
        backend.queue("GET", VECTORS, *(httpx.Response(503) for _ in range(3)))

        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.status is SaveStatus.FAILED
        assert outcome.kind is ErrorKind.SERVICE_UNAVAILABLE
        assert outcome.can_retry
        assert "lookup failed" in outcome.reason

    @pytest.mark.asyncio
    async def test_patch_failure_after_conflict(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        layers: BoundaryLayerService,
        square_polygon: dict[str, Any],
    ) -> None:
        record = backend.seed(7, 2024)
        backend.queue("PATCH", f"{VECTORS}/{record['id']}", httpx.Response(500))

        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.status is SaveStatus.FAILED
        assert outcome.kind is ErrorKind.SERVER_ERROR
        assert not layers.index.is_pending(7, 2024)


class TestKnownExistingId:
    """A known boundary id goes straight to PATCH."""

    @pytest.mark.asyncio
    async def test_patch_directly(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        second_polygon: dict[str, Any],
    ) -> None:
        record = backend.seed(7, 2024)

        outcome = await controller.save(7, 2024, second_polygon, existing_id=str(record["id"]))

        assert outcome.status is SaveStatus.UPDATED
        assert not outcome.reconciled
        assert [r.method for r in backend.requests][0] == "PATCH"
        assert backend.count("POST", VECTORS) == 0

    @pytest.mark.asyncio
    async def test_empty_patch_body_keeps_known_id(
        self,
        controller: BoundarySaveController,
        backend: FakeVectorBackend,
        second_polygon: dict[str, Any],
    ) -> None:
        backend.queue("PATCH", f"{VECTORS}/55", httpx.Response(204))

        outcome = await controller.save(7, 2024, second_polygon, existing_id="55")

        assert outcome.boundary_id == "55"
        assert outcome.record is None


class TestAfterWrite:
    """Cache and index bookkeeping around a write."""

    @pytest.mark.asyncio
    async def test_order_of_side_effects(
        self,
        client: ApiClient,
        square_polygon: dict[str, Any],
    ) -> None:
        manager = MagicMock()
        cache = MagicMock(spec=BoundaryExistenceCache)
        index = MagicMock(spec=BoundaryIndex)
        refresh = AsyncMock(return_value=frozenset({7}))
        manager.attach_mock(cache, "cache")
        manager.attach_mock(index, "index")
        manager.attach_mock(refresh, "refresh")
        controller = BoundarySaveController(client, cache, index, refresh=refresh)

        await controller.save(7, 2024, square_polygon)
        await controller.background_refresh

        assert [name for name, _args, _kwargs in manager.mock_calls] == [
            "cache.invalidate",
            "index.mark_pending",
            "refresh",
        ]
        index.mark_pending.assert_called_once_with(7, 2024)
        refresh.assert_awaited_once_with(2024)

    @pytest.mark.asyncio
    async def test_failed_save_leaves_cache(
        self,
        controller: BoundarySaveController,
        layers: BoundaryLayerService,
        backend: FakeVectorBackend,
        square_polygon: dict[str, Any],
    ) -> None:
        layers.cache.set(2024, [8])
        backend.queue("POST", VECTORS, httpx.Response(400, json={"error": "bad geometry"}))

        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.kind is ErrorKind.CLIENT_ERROR
        assert "bad geometry" in outcome.user_message
        assert layers.cache.get(2024) == frozenset({8})
        assert controller.background_refresh is None

    @pytest.mark.asyncio
    async def test_without_refresh(
        self,
        client: ApiClient,
        square_polygon: dict[str, Any],
    ) -> None:
        index = BoundaryIndex()
        controller = BoundarySaveController(client, BoundaryExistenceCache(), index)

        outcome = await controller.save(7, 2024, square_polygon)

        assert outcome.succeeded
        assert index.is_pending(7, 2024)
        assert controller.background_refresh is None

    @pytest.mark.asyncio
    async def test_failed_refreshes_are_logged(
        self,
        client: ApiClient,
        square_polygon: dict[str, Any],
        second_polygon: dict[str, Any],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        refresh = AsyncMock(side_effect=RuntimeError("layers unavailable"))
        controller = BoundarySaveController(client, BoundaryExistenceCache(), BoundaryIndex(), refresh=refresh)

        with caplog.at_level(logging.ERROR, logger="site_boundaries.services.save_boundary"):
            await controller.save(7, 2024, square_polygon)
            await controller.save(7, 2024, second_polygon)
            await controller.wait_for_refresh()

        assert refresh.await_count == 2
        failures = [r for r in caplog.records if "Background boundary refresh failed" in r.getMessage()]
        assert len(failures) == 2

    @pytest.mark.asyncio
    async def test_wait_for_refresh_without_saves(self, controller: BoundarySaveController) -> None:
        await controller.wait_for_refresh()
        assert controller.background_refresh is None
