"""Transport error taxonomy for the boundaries API.

Each class maps one failure mode to a taxonomy category, an
``ErrorKind`` tag and a retry policy.  ``retryable`` (inherited from the
category unless overridden) drives the in-call retry loop; ``trips_breaker``
decides whether an exhausted call is charged to the circuit breaker.

These exceptions are raised and caught inside the API client only;
callers receive ``FetchResult`` / ``WriteResult`` values built from them.
"""

from __future__ import annotations

from typing import ClassVar

from site_boundaries.core.constants import (
    CONFLICT_STATUS,
    RATE_LIMITED_STATUS,
    SERVICE_UNAVAILABLE_STATUSES,
)
from site_boundaries.core.exceptions import (
    BoundaryError,
    ContractError,
    PermanentError,
    TransientError,
)
from site_boundaries.models.results import ErrorKind


class TransportError(BoundaryError):
    """Base class for every API client failure.

    Attributes:
        resource: The logical resource that was called (e.g. ``"vectors"``).
        status_code: HTTP status if a response was received.
    """

    kind: ClassVar[ErrorKind]
    default_stage = "transport"

    resource: str = ""
    status_code: int | None = None

    #: Whether this failure counts against the resource's circuit breaker.
    trips_breaker: ClassVar[bool] = False


class NetworkError(TransportError, TransientError):
    """Connection refused, DNS failure or connection reset."""

    kind = ErrorKind.NETWORK
    default_code = "NETWORK_ERROR"
    trips_breaker = True


class RequestTimeoutError(TransportError, TransientError):
    """A single attempt exceeded its hard timeout."""

    kind = ErrorKind.TIMEOUT
    default_code = "REQUEST_TIMEOUT"
    trips_breaker = True


class ServiceUnavailableError(TransportError, TransientError):
    """HTTP 502, 503 or 504."""

    kind = ErrorKind.SERVICE_UNAVAILABLE
    default_code = "SERVICE_UNAVAILABLE"
    trips_breaker = True


class RateLimitedError(TransportError, TransientError):
    """HTTP 429."""

    kind = ErrorKind.RATE_LIMITED
    default_code = "RATE_LIMITED"
    trips_breaker = True


class ServerError(TransportError, TransientError):
    """HTTP 5xx outside the service-unavailable class. Not retried in-call."""

    kind = ErrorKind.SERVER_ERROR
    default_code = "SERVER_ERROR"
    default_retryable = False
    trips_breaker = True


class BackendNotReadyError(TransportError, TransientError):
    """A 2xx response whose body is ``{}``; the backend is still starting."""

    kind = ErrorKind.BACKEND_NOT_READY
    default_code = "BACKEND_NOT_READY"
    default_retryable = False


class CircuitOpenError(TransportError, TransientError):
    """The resource's breaker is open; no request was attempted."""

    kind = ErrorKind.CIRCUIT_OPEN
    default_code = "CIRCUIT_OPEN"
    default_retryable = False


class ConflictError(TransportError, PermanentError):
    """HTTP 409: a boundary already exists for this site and year."""

    kind = ErrorKind.CONFLICT
    default_code = "CONFLICT"


class ClientError(TransportError, PermanentError):
    """HTTP 4xx other than 409 and 429."""

    kind = ErrorKind.CLIENT_ERROR
    default_code = "CLIENT_ERROR"


class MalformedResponseError(TransportError, ContractError):
    """A 2xx body in none of the recognised shapes."""

    kind = ErrorKind.MALFORMED_RESPONSE
    default_code = "MALFORMED_RESPONSE"


def make_error(
    cls: type[TransportError],
    message: str,
    *,
    resource: str = "",
    status_code: int | None = None,
) -> TransportError:
    """Instantiate a transport error with its resource and status attached."""
    error = cls(message)
    error.resource = resource
    error.status_code = status_code
    return error


def error_for_status(
    status_code: int,
    reason: str = "",
    *,
    resource: str = "",
    detail: str = "",
) -> TransportError:
    """Map a non-2xx HTTP status to its transport error.

    Args:
        status_code: The HTTP status.
        reason: The HTTP reason phrase.
        resource: Logical resource that was called.
        detail: Response body text, surfaced verbatim for client errors.
    """
    message = f"HTTP {status_code}: {reason}".rstrip(": ")
    if detail:
        message = f"{message} - {detail}"

    cls: type[TransportError]
    if status_code in SERVICE_UNAVAILABLE_STATUSES:
        cls = ServiceUnavailableError
    elif status_code == RATE_LIMITED_STATUS:
        cls = RateLimitedError
    elif status_code == CONFLICT_STATUS:
        cls = ConflictError
    elif status_code >= 500:
        cls = ServerError
    else:
        cls = ClientError
    return make_error(cls, message, resource=resource, status_code=status_code)
