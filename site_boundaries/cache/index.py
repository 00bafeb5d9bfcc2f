"""In-memory "which sites have a boundary" set with optimistic entries.

After a successful save the saved site is added immediately as a
*pending* entry, before any refresh confirms it.  A pending entry is
settled only by a listing fetch that *started after* it was marked:

- the site is in that listing: confirmed (it stays, as a confirmed id);
- the site is missing: contradicted (dropped, logged).

A listing that started before the save cannot settle the entry, and a
failed refresh leaves it pending, so an optimistic id never silently
becomes permanent and a stale listing never erases a fresh save.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


class BoundaryIndex:
    """Confirmed site ids for one year plus pending optimistic ids."""

    def __init__(self) -> None:
        self._year: int | None = None
        self._confirmed: frozenset[int] = frozenset()
        # (year, site_id) -> number of fetches begun when the entry was marked
        self._pending: dict[tuple[int, int], int] = {}
        self._fetches_begun = 0

    @property
    def year(self) -> int | None:
        return self._year

    def begin_fetch(self) -> int:
        """Register a listing fetch about to start; returns its ticket."""
        self._fetches_begun += 1
        return self._fetches_begun

    def mark_pending(self, site_id: int, year: int) -> None:
        """Optimistically record a boundary for *site_id* in *year*."""
        self._pending[(year, site_id)] = self._fetches_begun
        logger.debug("Optimistic boundary recorded | site_id=%d | year=%d", site_id, year)

    def apply_listing(self, year: int, site_ids: Iterable[int], ticket: int) -> None:
        """Replace confirmed ids with a fetched listing and settle pending entries.

        Args:
            year: Year of the listing.
            site_ids: Sites the backend reports as having a boundary.
            ticket: Value returned by ``begin_fetch`` when the fetch started.
        """
        listed = frozenset(site_ids)
        self._year = year
        self._confirmed = listed

        for key, marked_at in list(self._pending.items()):
            pending_year, site_id = key
            if pending_year != year or ticket <= marked_at:
                continue
            del self._pending[key]
            if site_id in listed:
                logger.debug("Optimistic boundary confirmed | site_id=%d | year=%d", site_id, year)
            else:
                logger.warning(
                    "Optimistic boundary contradicted by backend | site_id=%d | year=%d",
                    site_id,
                    year,
                )

    def site_ids(self, year: int) -> frozenset[int]:
        """Sites with a boundary in *year*, confirmed or pending."""
        confirmed = self._confirmed if self._year == year else frozenset()
        pending = {site_id for (pending_year, site_id) in self._pending if pending_year == year}
        return confirmed | pending

    def has_boundary(self, site_id: int, year: int) -> bool:
        return site_id in self.site_ids(year)

    def is_pending(self, site_id: int, year: int) -> bool:
        return (year, site_id) in self._pending

    def clear(self) -> None:
        self._year = None
        self._confirmed = frozenset()
        self._pending.clear()
