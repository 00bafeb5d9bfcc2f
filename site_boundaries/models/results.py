"""Typed results returned across component boundaries.

- ``ErrorKind``: tag for every failure mode the API client can surface.
- ``FetchResult``: outcome of a list fetch (never an exception).
- ``WriteResult``: outcome of a single create/update request.
- ``SaveOutcome``: the only result a save caller ever sees:
  created, updated, or failed.

Design notes:
- All results are frozen dataclasses; failure is data, not control flow.
- ``SaveOutcome`` hides the create/conflict/patch sequence that produced it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from site_boundaries.models.boundary import BoundaryRecord


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ErrorKind(enum.Enum):
    """Failure modes surfaced by the API client.

    Values:
        NETWORK:             Connection refused, DNS failure, reset.
        TIMEOUT:             An attempt exceeded its hard timeout.
        SERVICE_UNAVAILABLE: HTTP 502/503/504.
        RATE_LIMITED:        HTTP 429.
        SERVER_ERROR:        Any other HTTP 5xx.
        CONFLICT:            HTTP 409 (boundary already exists).
        CLIENT_ERROR:        Any other HTTP 4xx.
        MALFORMED_RESPONSE:  2xx body in no recognised shape.
        BACKEND_NOT_READY:   2xx body ``{}``; backend still starting up.
        CIRCUIT_OPEN:        Short-circuited by an open breaker; no request made.
    """

    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CONFLICT = "conflict"
    CLIENT_ERROR = "client_error"
    MALFORMED_RESPONSE = "malformed_response"
    BACKEND_NOT_READY = "backend_not_ready"
    CIRCUIT_OPEN = "circuit_open"


#: Kinds that mean "the server could not be reached or could not answer".
UNREACHABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.NETWORK,
        ErrorKind.TIMEOUT,
        ErrorKind.SERVICE_UNAVAILABLE,
        ErrorKind.RATE_LIMITED,
        ErrorKind.SERVER_ERROR,
        ErrorKind.BACKEND_NOT_READY,
        ErrorKind.CIRCUIT_OPEN,
    }
)


class SaveStatus(enum.Enum):
    """Terminal state of one save attempt."""

    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Transport results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Outcome of a list fetch.

    Attributes:
        success: Whether a usable list was received.
        data: Raw list items (empty on failure).
        error: Human-readable failure description (empty on success).
        kind: Failure tag (``None`` on success).
        status_code: Last HTTP status seen, if any.
        attempts: Number of HTTP attempts made (0 when short-circuited).
    """

    success: bool
    data: list[Any] = field(default_factory=list)
    error: str = ""
    kind: ErrorKind | None = None
    status_code: int | None = None
    attempts: int = 0

    @classmethod
    def ok(cls, data: list[Any], *, status_code: int | None = None, attempts: int = 1) -> FetchResult:
        return cls(success=True, data=data, status_code=status_code, attempts=attempts)

    @classmethod
    def failed(
        cls,
        error: str,
        kind: ErrorKind,
        *,
        status_code: int | None = None,
        attempts: int = 0,
    ) -> FetchResult:
        return cls(
            success=False,
            error=error,
            kind=kind,
            status_code=status_code,
            attempts=attempts,
        )


@dataclass(frozen=True, slots=True)
class WriteResult:
    """Outcome of a single create or update request.

    Attributes:
        success: Whether the server accepted the write.
        record: The raw record returned by the server, if any.
        error: Human-readable failure description (empty on success).
        kind: Failure tag (``None`` on success).
        status_code: HTTP status, if a response was received.
    """

    success: bool
    record: dict[str, Any] | None = None
    error: str = ""
    kind: ErrorKind | None = None
    status_code: int | None = None

    @property
    def record_id(self) -> str:
        """Identity of the written record, or ``""`` if the body carried none."""
        if not self.record:
            return ""
        value = self.record.get("id")
        return "" if value is None else str(value)


# ---------------------------------------------------------------------------
# Save outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SaveOutcome:
    """Result of ``BoundarySaveController.save``.

    Exactly one of three shapes:
    ``CREATED`` with ``boundary_id``, ``UPDATED`` with ``boundary_id``,
    or ``FAILED`` with ``reason`` (and ``kind`` when the failure came
    from the transport).

    Attributes:
        status: Terminal state.
        boundary_id: Identity of the persisted boundary (success only).
        reason: Failure description (failure only).
        kind: Transport failure tag, if any.
        reconciled: ``True`` when an update was reached through a 409 conflict.
        record: The persisted record as returned by the server, if parsed.
    """

    status: SaveStatus
    boundary_id: str = ""
    reason: str = ""
    kind: ErrorKind | None = None
    reconciled: bool = False
    record: BoundaryRecord | None = None

    @classmethod
    def created(cls, boundary_id: str, record: BoundaryRecord | None = None) -> SaveOutcome:
        return cls(status=SaveStatus.CREATED, boundary_id=boundary_id, record=record)

    @classmethod
    def updated(
        cls,
        boundary_id: str,
        record: BoundaryRecord | None = None,
        *,
        reconciled: bool = False,
    ) -> SaveOutcome:
        return cls(
            status=SaveStatus.UPDATED,
            boundary_id=boundary_id,
            record=record,
            reconciled=reconciled,
        )

    @classmethod
    def failed(cls, reason: str, kind: ErrorKind | None = None) -> SaveOutcome:
        return cls(status=SaveStatus.FAILED, reason=reason, kind=kind)

    @property
    def succeeded(self) -> bool:
        return self.status is not SaveStatus.FAILED

    @property
    def can_retry(self) -> bool:
        """Whether the UI should offer a retry (server unreachable)."""
        return self.status is SaveStatus.FAILED and self.kind in UNREACHABLE_KINDS

    @property
    def user_message(self) -> str:
        """Message suitable for a toast; never a stack trace."""
        if self.status is SaveStatus.CREATED:
            return "Boundary saved successfully."
        if self.status is SaveStatus.UPDATED:
            if self.reconciled:
                return "A boundary already existed for this site and year; it was updated instead."
            return "Boundary updated successfully."
        if self.can_retry:
            return f"Could not reach the server. Please try again. ({self.reason})"
        return self.reason or "Error saving boundary"
