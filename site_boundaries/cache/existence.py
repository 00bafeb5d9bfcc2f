"""TTL-bound, year-keyed cache of which sites already have a boundary.

The cache holds at most one entry: the set of site ids with a boundary
for one year, plus when it was fetched.  An entry is *valid* iff its
year matches and ``now - fetched_at < ttl``.

Lifecycle:
    - ``set`` replaces the entry wholesale on each fresh fetch (no merge).
    - ``invalidate`` clears it unconditionally; the save controller calls
      it after every successful write so the next read is forced fresh.
    - Teardown invalidates too.

An expired (but not invalidated) entry can still be read with
``get(year, allow_stale=True)``.  That is the degraded path used when the
backend rate-limits a refresh: a stale set is better than reporting zero
boundaries and letting a user draw a duplicate.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from site_boundaries.core.constants import DEFAULT_CACHE_TTL_S

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """One cached listing.

    Attributes:
        year: Year the listing was fetched for.
        site_ids: Sites with a live boundary in that year.
        fetched_at: Clock reading when the listing was stored.
        ttl_s: Lifetime of the entry in seconds.
    """

    year: int
    site_ids: frozenset[int]
    fetched_at: float
    ttl_s: float

    def is_fresh(self, now: float) -> bool:
        return now - self.fetched_at < self.ttl_s


class BoundaryExistenceCache:
    """Single-entry cache of boundary existence for one year at a time."""

    def __init__(
        self,
        ttl_s: float = DEFAULT_CACHE_TTL_S,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._entry: CacheEntry | None = None
        self._epoch = 0

    @property
    def entry(self) -> CacheEntry | None:
        return self._entry

    @property
    def epoch(self) -> int:
        """Invalidation counter.

        A fetch that started under an older epoch must not be stored:
        it may carry pre-write data.
        """
        return self._epoch

    def is_valid(self, year: int) -> bool:
        """True iff an entry exists for *year* and has not outlived its TTL."""
        entry = self._entry
        return entry is not None and entry.year == year and entry.is_fresh(self._clock())

    def get(self, year: int, *, allow_stale: bool = False) -> frozenset[int] | None:
        """Return the cached site ids for *year*, or ``None``.

        Args:
            year: Requested year.
            allow_stale: Also return an expired entry for the same year.
        """
        entry = self._entry
        if entry is None or entry.year != year:
            return None
        if not allow_stale and not entry.is_fresh(self._clock()):
            return None
        return entry.site_ids

    def set(
        self,
        year: int,
        site_ids: Iterable[int],
        *,
        expected_epoch: int | None = None,
    ) -> bool:
        """Replace the entry with a fresh listing.

        Args:
            year: Year the listing belongs to.
            site_ids: Sites with a boundary in *year*.
            expected_epoch: Epoch observed when the fetch started; if the
                cache was invalidated since, the listing is discarded.

        Returns:
            ``True`` if stored, ``False`` if discarded as stale.
        """
        if expected_epoch is not None and expected_epoch != self._epoch:
            logger.info(
                "Discarding listing fetched before invalidation | year=%d | fetch_epoch=%d | epoch=%d",
                year,
                expected_epoch,
                self._epoch,
            )
            return False

        self._entry = CacheEntry(
            year=year,
            site_ids=frozenset(site_ids),
            fetched_at=self._clock(),
            ttl_s=self._ttl_s,
        )
        logger.debug("Existence cache set | year=%d | sites=%d", year, len(self._entry.site_ids))
        return True

    def invalidate(self) -> None:
        """Clear the entry unconditionally."""
        self._entry = None
        self._epoch += 1
        logger.debug("Existence cache invalidated | epoch=%d", self._epoch)
