"""Shared pytest fixtures for the site boundaries test suite.

HTTP is served by ``FakeVectorBackend`` through ``httpx.MockTransport``;
time is a ``FakeClock`` advanced explicitly (and by ``RecordingSleep``
during backoff waits), so nothing in the suite waits in real time.
"""

from __future__ import annotations

import json
from collections import defaultdict, deque
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest
import pytest_asyncio

from site_boundaries.api.client import ApiClient
from site_boundaries.core.config import BoundaryClientConfig

API_BASE_URL = "http://test.local/api/v1"
VECTOR_LAYERS_URL = "http://test.local/api/vector-layers"

VECTORS_PATH = "/api/v1/vectors"
VECTOR_LAYERS_PATH = "/api/vector-layers"

# ---------------------------------------------------------------------------
# Sample geometries
# ---------------------------------------------------------------------------

# Roughly 1.1 km x 1.1 km block near the equator.
SQUARE_POLYGON: dict[str, Any] = {
    "type": "Polygon",
    "coordinates": [[[0.0, 0.0], [0.01, 0.0], [0.01, 0.01], [0.0, 0.01], [0.0, 0.0]]],
}

SECOND_POLYGON: dict[str, Any] = {
    "type": "Polygon",
    "coordinates": [[[1.0, 1.0], [1.02, 1.0], [1.02, 1.02], [1.0, 1.02], [1.0, 1.0]]],
}


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement recording each delay and advancing the clock."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.clock.advance(delay)


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------


class FakeVectorBackend:
    """In-memory boundaries API.

    - ``POST /vectors`` returns 409 when a live record exists for the
      same (siteId, year), otherwise 201 with the new record.
    - ``GET /vectors`` filters by ``siteId`` and ``year`` (bare array).
    - ``PATCH /vectors/{id}`` updates geometry and properties.
    - ``GET /api/vector-layers`` returns a ``{success, data}`` envelope of
      every live record with its site summary.

    ``queue(method, path, ...)`` scripts responses (or exceptions) that
    are returned ahead of the normal behaviour, one per request.
    """

    def __init__(self) -> None:
        self.records: dict[int, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self._next_id = 100
        self._scripted: dict[tuple[str, str], deque[httpx.Response | Exception]] = defaultdict(deque)

    # -- helpers for tests ---------------------------------------------------

    def seed(
        self,
        site_id: int,
        year: int,
        geometry: dict[str, Any] | None = None,
        *,
        deleted: bool = False,
    ) -> dict[str, Any]:
        record = self._new_record(
            {"siteId": site_id, "year": year, "geometry": geometry or SQUARE_POLYGON}
        )
        if deleted:
            record["deletedAt"] = "2024-01-01T00:00:00Z"
        return record

    def queue(self, method: str, path: str, *responses: httpx.Response | Exception) -> None:
        self._scripted[(method, path)].extend(responses)

    def live_records(self, site_id: int, year: int) -> list[dict[str, Any]]:
        return [
            record
            for record in self.records.values()
            if record["siteId"] == site_id and record["year"] == year and record["deletedAt"] is None
        ]

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    # -- transport ---------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if self._scripted[key]:
            scripted = self._scripted[key].popleft()
            if isinstance(scripted, Exception):
                raise scripted
            return scripted

        path = request.url.path
        if path == VECTOR_LAYERS_PATH and request.method == "GET":
            return self._list_layers()
        if path == VECTORS_PATH and request.method == "GET":
            return self._list_vectors(request)
        if path == VECTORS_PATH and request.method == "POST":
            return self._create(json.loads(request.content))
        if path.startswith(f"{VECTORS_PATH}/") and request.method == "PATCH":
            return self._update(path.rsplit("/", 1)[-1], json.loads(request.content))
        return httpx.Response(404, json={"error": "Not found"})

    def _new_record(self, body: dict[str, Any]) -> dict[str, Any]:
        record_id = self._next_id
        self._next_id += 1
        record = {
            "id": record_id,
            "siteId": body["siteId"],
            "year": body["year"],
            "geometry": body["geometry"],
            "properties": body.get("properties") or {},
            "createdAt": "2024-06-01T00:00:00Z",
            "updatedAt": "2024-06-01T00:00:00Z",
            "deletedAt": None,
        }
        self.records[record_id] = record
        return record

    def _list_layers(self) -> httpx.Response:
        data = []
        for record in self.records.values():
            if record["deletedAt"] is not None:
                continue
            site = {
                "id": record["siteId"],
                "name": f"Site {record['siteId']}",
                "slug": f"site-{record['siteId']}",
                "category": {"id": 1, "name": "Orchard", "slug": "orchard"},
            }
            data.append({**record, "site": site})
        return httpx.Response(200, json={"success": True, "data": data})

    def _list_vectors(self, request: httpx.Request) -> httpx.Response:
        site_id = request.url.params.get("siteId")
        year = request.url.params.get("year")
        matches = [
            record
            for record in self.records.values()
            if (site_id is None or record["siteId"] == int(site_id))
            and (year is None or record["year"] == int(year))
            and record["deletedAt"] is None
        ]
        return httpx.Response(200, json=matches)

    def _create(self, body: dict[str, Any]) -> httpx.Response:
        if self.live_records(body["siteId"], body["year"]):
            return httpx.Response(409, json={"error": "Boundary already exists for this site and year"})
        return httpx.Response(201, json={"success": True, "data": self._new_record(body)})

    def _update(self, raw_id: str, body: dict[str, Any]) -> httpx.Response:
        record = self.records.get(int(raw_id))
        if record is None:
            return httpx.Response(404, json={"error": "Boundary not found"})
        record["geometry"] = body["geometry"]
        record["properties"] = body.get("properties") or {}
        record["updatedAt"] = "2024-06-02T00:00:00Z"
        return httpx.Response(200, json=record)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def square_polygon() -> dict[str, Any]:
    """Small square polygon near the equator."""
    return json.loads(json.dumps(SQUARE_POLYGON))


@pytest.fixture()
def second_polygon() -> dict[str, Any]:
    """A different polygon, for update assertions."""
    return json.loads(json.dumps(SECOND_POLYGON))


@pytest.fixture()
def clock() -> FakeClock:
    """Fake monotonic clock shared by breakers and caches."""
    return FakeClock()


@pytest.fixture()
def sleeper(clock: FakeClock) -> RecordingSleep:
    """Backoff sleep that records delays instead of waiting."""
    return RecordingSleep(clock)


@pytest.fixture()
def backend() -> FakeVectorBackend:
    """Empty in-memory boundaries API."""
    return FakeVectorBackend()


@pytest.fixture()
def config() -> BoundaryClientConfig:
    """Default resilience settings pointed at the fake backend."""
    return BoundaryClientConfig(api_base_url=API_BASE_URL, vector_layers_url=VECTOR_LAYERS_URL)


@pytest_asyncio.fixture
async def client(
    config: BoundaryClientConfig,
    backend: FakeVectorBackend,
    clock: FakeClock,
    sleeper: RecordingSleep,
) -> AsyncIterator[ApiClient]:
    """ApiClient wired to the fake backend with fake time."""
    api = ApiClient(
        config,
        transport=httpx.MockTransport(backend.handler),
        clock=clock,
        sleep=sleeper,
    )
    yield api
    await api.close()
