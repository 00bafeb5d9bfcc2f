"""Resilient async client for the boundaries API.

``fetch_list`` wraps any idempotent list GET with:

- a per-resource ``CircuitBreaker`` (short-circuits while open),
- bounded retries with exponential backoff (``base * 2**retry_index``)
  on network errors, timeouts, 502/503/504 and 429,
- a hard timeout on every attempt.

It never raises: every failure mode resolves to a ``FetchResult`` with
``success=False``.  On final exhaustion the breaker is charged once per
call, not once per attempt.

Writes (``create_boundary`` / ``update_boundary``) are single attempts.
A POST is not idempotent, and conflict handling belongs to the save
controller, so writes neither retry nor consult the breaker.

Usage::

    async with ApiClient(BoundaryClientConfig.from_env()) as client:
        result = await client.list_boundaries(year=2024, site_id=7)
        if not result.success:
            show_retry_button(result.error)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from site_boundaries.api.breaker import BreakerSnapshot, CircuitBreaker
from site_boundaries.api.errors import (
    ConflictError,
    MalformedResponseError,
    NetworkError,
    RequestTimeoutError,
    TransportError,
    error_for_status,
    make_error,
)
from site_boundaries.api.responses import parse_list_body, parse_record_body
from site_boundaries.core.config import BoundaryClientConfig
from site_boundaries.core.constants import VECTORS_RESOURCE
from site_boundaries.models.results import ErrorKind, FetchResult, WriteResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping
    from types import TracebackType

    from site_boundaries.models.boundary import CreateBoundaryPayload, UpdateBoundaryPayload

logger = logging.getLogger(__name__)

# Longest response-body excerpt carried into a client-error message.
_MAX_DETAIL_CHARS = 200

CIRCUIT_OPEN_MESSAGE = "Service temporarily unavailable (circuit breaker open)"


class ApiClient:
    """Boundaries API client owning one circuit breaker per resource.

    Construct once per session and inject the same instance wherever
    shared breaker behaviour is wanted.

    Args:
        config: Client configuration (defaults when ``None``).
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``).
        clock: Monotonic clock in seconds, used by the breakers.
        sleep: Coroutine used for backoff waits.
    """

    def __init__(
        self,
        config: BoundaryClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config or BoundaryClientConfig()
        self._clock = clock
        self._sleep = sleep
        self._breakers: dict[str, CircuitBreaker] = {}
        self._http = httpx.AsyncClient(
            base_url=self._config.api_base_url,
            headers=self._config.auth_headers,
            timeout=httpx.Timeout(self._config.request_timeout_s),
            transport=transport,
        )

    @property
    def config(self) -> BoundaryClientConfig:
        return self._config

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Circuit breakers
    # ------------------------------------------------------------------

    def breaker(self, resource: str) -> CircuitBreaker:
        """Return the breaker for *resource*, creating it on first use."""
        breaker = self._breakers.get(resource)
        if breaker is None:
            breaker = CircuitBreaker(
                resource,
                failure_threshold=self._config.breaker_failure_threshold,
                cooldown_s=self._config.breaker_cooldown_s,
                clock=self._clock,
            )
            self._breakers[resource] = breaker
        return breaker

    def breaker_snapshot(self, resource: str) -> BreakerSnapshot:
        return self.breaker(resource).snapshot()

    def reset_breaker(self, resource: str | None = None) -> None:
        """Reset one breaker, or every breaker when *resource* is ``None``."""
        if resource is not None:
            self.breaker(resource).reset()
            return
        for breaker in self._breakers.values():
            breaker.reset()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_list(
        self,
        resource: str,
        params: Mapping[str, Any] | None = None,
    ) -> FetchResult:
        """GET a list resource with breaker, retry/backoff and per-attempt timeout.

        Args:
            resource: Path relative to ``api_base_url``, or an absolute URL.
            params: Query parameters.

        Returns:
            A ``FetchResult``; never raises for transport or HTTP failures.
        """
        breaker = self.breaker(resource)
        if not breaker.allow_request():
            logger.warning("Circuit breaker is OPEN - short-circuiting | resource=%s", resource)
            return FetchResult.failed(CIRCUIT_OPEN_MESSAGE, ErrorKind.CIRCUIT_OPEN)

        max_attempts = self._config.max_retries + 1
        last_error: TransportError | None = None
        attempts = 0

        for retry_index in range(max_attempts):
            attempts += 1
            logger.debug(
                "Fetching list | resource=%s | attempt=%d/%d",
                resource,
                attempts,
                max_attempts,
            )
            try:
                body, status_code = await self._attempt("GET", resource, params=params)
                items = parse_list_body(body, resource=resource, status_code=status_code)
            except TransportError as exc:
                last_error = exc
                if not exc.retryable or attempts >= max_attempts:
                    break
                delay = self._config.retry_base_delay_s * (2**retry_index)
                logger.warning(
                    "Retrying list fetch | resource=%s | kind=%s | attempt=%d/%d | delay=%.1fs",
                    resource,
                    exc.kind.value,
                    attempts,
                    max_attempts,
                    delay,
                )
                await self._sleep(delay)
                continue

            breaker.record_success()
            logger.info(
                "Fetched list | resource=%s | items=%d | attempts=%d",
                resource,
                len(items),
                attempts,
            )
            return FetchResult.ok(items, status_code=status_code, attempts=attempts)

        # max_attempts >= 1, so leaving the loop means an error was recorded.
        assert last_error is not None
        if last_error.trips_breaker:
            breaker.record_failure()
        logger.warning(
            "List fetch failed | resource=%s | attempts=%d | error=%s",
            resource,
            attempts,
            last_error.to_error_dict(),
        )
        return FetchResult.failed(
            last_error.message,
            last_error.kind,
            status_code=last_error.status_code,
            attempts=attempts,
        )

    async def list_boundaries(self, *, year: int, site_id: int | None = None) -> FetchResult:
        """``GET /vectors?year=`` (optionally narrowed to one site)."""
        params: dict[str, Any] = {"year": year}
        if site_id is not None:
            params = {"siteId": site_id, "year": year}
        return await self.fetch_list(VECTORS_RESOURCE, params)

    async def list_vector_layers(self) -> FetchResult:
        """``GET /api/vector-layers``: every boundary with its site summary."""
        return await self.fetch_list(self._config.vector_layers_url)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_boundary(self, payload: CreateBoundaryPayload) -> WriteResult:
        """``POST /vectors``.  A 409 comes back as ``kind=CONFLICT``."""
        return await self._write("POST", VECTORS_RESOURCE, payload.to_json())

    async def update_boundary(self, boundary_id: str, payload: UpdateBoundaryPayload) -> WriteResult:
        """``PATCH /vectors/{id}``."""
        return await self._write("PATCH", f"{VECTORS_RESOURCE}/{boundary_id}", payload.to_json())

    async def _write(self, method: str, resource: str, body: dict[str, Any]) -> WriteResult:
        try:
            response_body, status_code = await self._attempt(method, resource, json=body)
        except ConflictError as exc:
            # Expected on create: the save controller reconciles it.
            logger.info("Write conflict | method=%s | resource=%s", method, resource)
            return WriteResult(
                success=False,
                error=exc.message,
                kind=exc.kind,
                status_code=exc.status_code,
            )
        except TransportError as exc:
            logger.warning(
                "Write failed | method=%s | resource=%s | error=%s",
                method,
                resource,
                exc.to_error_dict(),
            )
            return WriteResult(
                success=False,
                error=exc.message,
                kind=exc.kind,
                status_code=exc.status_code,
            )

        logger.info("Write succeeded | method=%s | resource=%s | status=%d", method, resource, status_code)
        return WriteResult(
            success=True,
            record=parse_record_body(response_body),
            status_code=status_code,
        )

    # ------------------------------------------------------------------
    # Single attempt
    # ------------------------------------------------------------------

    async def _attempt(
        self,
        method: str,
        resource: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> tuple[object, int]:
        """Issue one request under the hard timeout and classify the result.

        Returns:
            ``(decoded_body, status_code)``; body is ``None`` for empty 2xx responses.

        Raises:
            TransportError: The subclass matching the failure.
        """
        timeout_s = self._config.request_timeout_s
        try:
            response = await asyncio.wait_for(
                self._http.request(method, resource, params=params, json=json),
                timeout=timeout_s,
            )
        except (TimeoutError, httpx.TimeoutException) as exc:
            msg = f"Request timed out after {timeout_s:g}s"
            raise make_error(RequestTimeoutError, msg, resource=resource) from exc
        except httpx.DecodingError as exc:
            msg = f"Response body could not be decoded: {exc}"
            raise make_error(MalformedResponseError, msg, resource=resource) from exc
        except httpx.RequestError as exc:
            # Connection failures, protocol errors and redirect loops alike.
            msg = f"Network error - could not reach API server: {exc}"
            raise make_error(NetworkError, msg, resource=resource) from exc

        if not response.is_success:
            detail = ""
            if 400 <= response.status_code < 500:
                detail = response.text.strip()[:_MAX_DETAIL_CHARS]
            raise error_for_status(
                response.status_code,
                response.reason_phrase,
                resource=resource,
                detail=detail,
            )

        if not response.content:
            return None, response.status_code

        try:
            return response.json(), response.status_code
        except ValueError as exc:
            raise make_error(
                MalformedResponseError,
                "Response body is not valid JSON",
                resource=resource,
                status_code=response.status_code,
            ) from exc
