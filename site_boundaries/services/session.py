"""Drawing session: selected site/year, current drawing, next-site choice.

A thin sequencer over the layer service and the save controller.  It
holds the single selected (site, year) pair and clears everything that
depends on it (known boundary id, drawing) whenever the selection
changes.  After a successful save it advances to the first site that
still has no boundary, or to no selection at all.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from site_boundaries.core.constants import SOURCE_DRAWING, SOURCE_UPLOAD
from site_boundaries.geometry.area import AreaMeasurement, measure_geometry
from site_boundaries.geometry.normalization import is_polygonal, normalize_geometry
from site_boundaries.models.boundary import BoundaryRecord, parse_records
from site_boundaries.models.results import SaveOutcome
from site_boundaries.services.layers import BoundaryLayerService
from site_boundaries.services.save_boundary import NO_GEOMETRY_REASON, BoundarySaveController

if TYPE_CHECKING:
    from collections.abc import Iterable

    from site_boundaries.api.client import ApiClient

logger = logging.getLogger(__name__)

NO_SITE_REASON = "No site selected"


@dataclass(frozen=True, slots=True)
class Drawing:
    """A normalized geometry waiting to be saved.

    Attributes:
        geometry: Canonical GeoJSON geometry.
        source: ``"drawing"`` or ``"upload"``.
        measurement: Geodesic area of the geometry.
    """

    geometry: dict[str, Any]
    source: str = SOURCE_DRAWING
    measurement: AreaMeasurement = AreaMeasurement()


def recent_years(count: int = 10, *, current: int | None = None) -> list[int]:
    """The *count* most recent years, oldest first, ending at *current*."""
    last = current if current is not None else dt.date.today().year
    return list(range(last - count + 1, last + 1))


class DrawingSession:
    """One user's boundary-drawing session over an ordered list of sites."""

    def __init__(
        self,
        client: ApiClient,
        layers: BoundaryLayerService,
        controller: BoundarySaveController,
        site_ids: Iterable[int],
        *,
        year: int | None = None,
    ) -> None:
        self._client = client
        self._layers = layers
        self._controller = controller
        self._site_ids: list[int] = list(site_ids)
        self.year: int = year if year is not None else dt.date.today().year
        self.site_id: int | None = None
        self.known_existing_id: str | None = None
        self.drawing: Drawing | None = None

    @classmethod
    def create(
        cls,
        client: ApiClient,
        site_ids: Iterable[int],
        *,
        year: int | None = None,
    ) -> DrawingSession:
        """Wire a session, its layer service and save controller around *client*."""
        layers = BoundaryLayerService(client)
        controller = BoundarySaveController(
            client,
            layers.cache,
            layers.index,
            refresh=layers.refresh,
        )
        return cls(client, layers, controller, site_ids, year=year)

    @property
    def layers(self) -> BoundaryLayerService:
        return self._layers

    @property
    def controller(self) -> BoundarySaveController:
        return self._controller

    @property
    def site_ids(self) -> list[int]:
        return list(self._site_ids)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_site(self, site_id: int | None) -> None:
        """Select *site_id*; per-site state is cleared when it changes."""
        if site_id == self.site_id:
            return
        self.site_id = site_id
        self._clear_site_state()
        logger.debug("Site selected | site_id=%s | year=%d", site_id, self.year)

    def select_year(self, year: int) -> None:
        """Select *year*; per-site state is cleared when it changes."""
        if year == self.year:
            return
        self.year = year
        self._clear_site_state()
        logger.debug("Year selected | site_id=%s | year=%d", self.site_id, year)

    def _clear_site_state(self) -> None:
        self.known_existing_id = None
        self.drawing = None

    async def load_selection(self) -> str | None:
        """Look up the existing boundary id for the selected site and year.

        Returns:
            The id, or ``None`` when there is none, the lookup failed, or
            the selection changed while the lookup was in flight.
        """
        site_id, year = self.site_id, self.year
        if site_id is None:
            return None

        result = await self._client.list_boundaries(year=year, site_id=site_id)
        if (self.site_id, self.year) != (site_id, year):
            logger.debug("Selection changed during lookup - ignoring | site_id=%d", site_id)
            return None
        if not result.success:
            logger.warning(
                "Existing boundary lookup failed | site_id=%d | year=%d | error=%s",
                site_id,
                year,
                result.error,
            )
            return None

        for record in parse_records(result.data, BoundaryRecord):
            if record.matches(site_id, year):
                self.known_existing_id = record.id
                return record.id
        self.known_existing_id = None
        return None

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def set_drawing(self, geometry: object, *, source: str = SOURCE_DRAWING) -> Drawing | None:
        """Normalize and measure *geometry* as the current drawing.

        A boundary must enclose an area, so only Polygon and MultiPolygon
        shapes are accepted.  Returns ``None`` (and leaves the drawing
        cleared) for anything else.
        """
        normalized = normalize_geometry(geometry)
        if normalized is None or not is_polygonal(normalized):
            if normalized is not None:
                logger.warning(
                    "Drawing rejected - not a polygon | site_id=%s | type=%s",
                    self.site_id,
                    normalized["type"],
                )
            self.drawing = None
            return None
        self.drawing = Drawing(
            geometry=normalized,
            source=source,
            measurement=measure_geometry(normalized),
        )
        return self.drawing

    def load_upload(self, geojson: object) -> Drawing | None:
        """Use the first feature of an uploaded GeoJSON document as the drawing."""
        drawing = self.set_drawing(geojson, source=SOURCE_UPLOAD)
        if drawing is None:
            logger.warning("Uploaded file has no usable polygon | site_id=%s", self.site_id)
        return drawing

    def clear_drawing(self) -> None:
        self.drawing = None

    # ------------------------------------------------------------------
    # Save and advance
    # ------------------------------------------------------------------

    async def save(self) -> SaveOutcome:
        """Save the current drawing and advance to the next site on success."""
        if self.site_id is None:
            return SaveOutcome.failed(NO_SITE_REASON)
        if self.drawing is None:
            return SaveOutcome.failed(NO_GEOMETRY_REASON)

        saved_site, saved_year = self.site_id, self.year
        outcome = await self._controller.save(
            saved_site,
            saved_year,
            self.drawing.geometry,
            existing_id=self.known_existing_id,
            source=self.drawing.source,
        )
        if not outcome.succeeded:
            return outcome

        if outcome.record is not None:
            self._layers.merge_saved([outcome.record])
        if (self.site_id, self.year) != (saved_site, saved_year):
            # The user moved on while the save was in flight; keep their new work.
            logger.debug(
                "Selection changed during save - not advancing | saved_site=%d | site_id=%s",
                saved_site,
                self.site_id,
            )
            return outcome

        self.drawing = None
        self.select_site(self.next_site_id(saved_site))
        return outcome

    def next_site_id(self, saved_site_id: int | None = None) -> int | None:
        """First site without a boundary this year, other than *saved_site_id*."""
        done = self._layers.index.site_ids(self.year)
        for site_id in self._site_ids:
            if site_id != saved_site_id and site_id not in done:
                return site_id
        return None

    def boundary_site_ids(self) -> frozenset[int]:
        """Sites known to have a boundary this year (confirmed or pending)."""
        return self._layers.index.site_ids(self.year)

    def available_site_ids(self) -> list[int]:
        """Sites, in order, with no known boundary this year."""
        done = self.boundary_site_ids()
        return [site_id for site_id in self._site_ids if site_id not in done]

    async def refresh_boundaries(self) -> frozenset[int]:
        """Sites with a boundary this year, via the existence cache."""
        return await self._layers.site_ids_with_boundary(self.year)

    async def confirm_boundaries(self) -> frozenset[int]:
        """Wait for the post-save refresh, then return the confirmed set."""
        await self._controller.wait_for_refresh()
        return self.boundary_site_ids()

    def teardown(self) -> None:
        self._layers.teardown()
        self.site_id = None
        self._clear_site_state()
