"""Boundaries API client.

- client: ``ApiClient`` with circuit breaker, retry/backoff and per-attempt timeout
- breaker: Per-resource ``CircuitBreaker`` state object
- responses: Tolerant parsing of list and write response bodies
- errors: Transport error taxonomy (internal to the client)
"""

from site_boundaries.api.breaker import BreakerSnapshot, BreakerState, CircuitBreaker
from site_boundaries.api.client import CIRCUIT_OPEN_MESSAGE, ApiClient

__all__ = [
    "ApiClient",
    "BreakerSnapshot",
    "BreakerState",
    "CIRCUIT_OPEN_MESSAGE",
    "CircuitBreaker",
]
