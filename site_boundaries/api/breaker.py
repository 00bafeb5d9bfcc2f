"""Circuit breaker guarding one logical API resource.

States:
    CLOSED:    Requests pass through.  Each failed *call* (after its
               retries) increments ``failure_count``; reaching the
               threshold opens the breaker.
    OPEN:      Requests are short-circuited without touching the network
               until ``cooldown_s`` has elapsed since the last failure.
    HALF_OPEN: Cooldown has elapsed; the next call is let through to prove
               the service.  A failure reopens immediately, a success closes.

Any success resets ``failure_count`` to zero and closes the breaker,
whatever its current state.

The breaker is a plain object owned by an ``ApiClient``.  Callers that
need app-wide protection share one client instance; all mutation happens
synchronously inside a single event-loop turn, so no locking is needed.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from site_boundaries.core.constants import (
    DEFAULT_BREAKER_COOLDOWN_S,
    DEFAULT_BREAKER_FAILURE_THRESHOLD,
)

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class BreakerState(enum.Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class BreakerSnapshot:
    """Point-in-time view of a breaker, for diagnostics.

    Attributes:
        resource: Resource the breaker guards.
        state: Current state.
        failure_count: Consecutive failed calls.
        is_open: Whether calls are currently short-circuited.
        seconds_since_last_failure: ``None`` if no failure was ever recorded.
    """

    resource: str
    state: BreakerState
    failure_count: int
    is_open: bool
    seconds_since_last_failure: float | None


class CircuitBreaker:
    """Failure counter and open/closed switch for a single resource."""

    def __init__(
        self,
        resource: str,
        *,
        failure_threshold: int = DEFAULT_BREAKER_FAILURE_THRESHOLD,
        cooldown_s: float = DEFAULT_BREAKER_COOLDOWN_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.resource = resource
        self._failure_threshold = failure_threshold
        self._cooldown_s = cooldown_s
        self._clock = clock
        self.failure_count = 0
        self.last_failure_at: float | None = None
        self._state = BreakerState.CLOSED

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is BreakerState.OPEN

    def allow_request(self) -> bool:
        """Return ``True`` if a call may proceed to the network.

        Moves OPEN to HALF_OPEN once the cooldown has elapsed.
        """
        if self._state is not BreakerState.OPEN:
            return True

        elapsed = self._elapsed_since_failure()
        if elapsed is not None and elapsed < self._cooldown_s:
            return False

        logger.info(
            "Circuit breaker cooldown expired | resource=%s | elapsed=%.1fs",
            self.resource,
            elapsed or 0.0,
        )
        self._state = BreakerState.HALF_OPEN
        return True

    def record_success(self) -> None:
        """Reset the failure count and close the breaker."""
        if self.failure_count or self._state is not BreakerState.CLOSED:
            logger.info(
                "Request successful - resetting circuit breaker | resource=%s | previous_state=%s",
                self.resource,
                self._state.value,
            )
        self.failure_count = 0
        self._state = BreakerState.CLOSED

    def record_failure(self) -> None:
        """Count one failed call; open the breaker at the threshold.

        A failure while HALF_OPEN reopens the breaker immediately.
        """
        self.failure_count += 1
        self.last_failure_at = self._clock()

        if self._state is BreakerState.HALF_OPEN or self.failure_count >= self._failure_threshold:
            if self._state is not BreakerState.OPEN:
                logger.error(
                    "Circuit breaker OPENED | resource=%s | failures=%d",
                    self.resource,
                    self.failure_count,
                )
            self._state = BreakerState.OPEN

    def reset(self) -> None:
        """Forget all failures (manual recovery after fixing the backend)."""
        logger.info("Manually resetting circuit breaker | resource=%s", self.resource)
        self.failure_count = 0
        self.last_failure_at = None
        self._state = BreakerState.CLOSED

    def snapshot(self) -> BreakerSnapshot:
        return BreakerSnapshot(
            resource=self.resource,
            state=self._state,
            failure_count=self.failure_count,
            is_open=self.is_open,
            seconds_since_last_failure=self._elapsed_since_failure(),
        )

    def _elapsed_since_failure(self) -> float | None:
        if self.last_failure_at is None:
            return None
        return self._clock() - self.last_failure_at
