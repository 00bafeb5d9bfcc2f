"""Response-shape tolerance for the boundaries API.

A successful list response may legitimately be:

- a bare JSON array, or
- a ``{"success": ..., "data": [...]}`` envelope.

An empty object ``{}`` means the backend is still starting up.  It must
never be read as "no boundaries", which would mark every site as missing
and invite duplicate drawings, so it surfaces as ``BackendNotReadyError``.
Anything else is a ``MalformedResponseError``.

An envelope reporting success with an empty ``data`` array is different:
the backend answered and has no boundaries, so it is a real empty list.
Only ``{}`` and ``success: false`` mean "not ready".  Older clients of
this API treated every empty envelope as a failure; that made a year
with no boundaries yet indistinguishable from an outage.
"""

from __future__ import annotations

from typing import Any

from site_boundaries.api.errors import (
    BackendNotReadyError,
    MalformedResponseError,
    TransportError,
    make_error,
)


def parse_list_body(body: object, *, resource: str = "", status_code: int | None = None) -> list[Any]:
    """Extract the item list from a 2xx list body.

    Raises:
        BackendNotReadyError: Body is ``{}`` or an envelope reporting failure.
        MalformedResponseError: Body matches no recognised shape.
    """
    if isinstance(body, list):
        return body

    if isinstance(body, dict):
        data = body.get("data")
        if isinstance(data, list):
            if body.get("success") is False:
                detail = body.get("message") or body.get("error") or "backend reported failure"
                raise _error(BackendNotReadyError, str(detail), resource, status_code)
            return data

        if not body:
            raise _error(
                BackendNotReadyError,
                "Backend service returned empty response - please try again",
                resource,
                status_code,
            )

    raise _error(MalformedResponseError, "Unexpected response format", resource, status_code)


def parse_record_body(body: object) -> dict[str, Any] | None:
    """Extract a single record from a 2xx write body, if it carries one.

    Accepts a bare record, a ``{"data": {...}}`` envelope, or an array
    whose first element is the record.
    """
    if isinstance(body, list):
        body = body[0] if body else None

    if isinstance(body, dict):
        data = body.get("data")
        if isinstance(data, dict):
            return data
        if isinstance(data, list):
            return parse_record_body(data)
        return body

    return None


def _error(
    cls: type[TransportError],
    message: str,
    resource: str,
    status_code: int | None,
) -> TransportError:
    return make_error(cls, message, resource=resource, status_code=status_code)
