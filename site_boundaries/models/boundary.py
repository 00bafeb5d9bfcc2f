"""Pydantic models for boundary records exchanged with the API.

- ``BoundaryRecord``: one persisted boundary (``GET/POST/PATCH /vectors``).
- ``VectorLayer``: a boundary plus its site summary (``GET /api/vector-layers``).
- ``CreateBoundaryPayload`` / ``UpdateBoundaryPayload``: request bodies.

The API speaks camelCase; models expose snake_case attributes and
serialise back with ``by_alias=True``.  Unknown keys are ignored so that
backend additions never break parsing.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CategorySummary(_ApiModel):
    """Category a site belongs to."""

    id: int
    name: str = ""
    slug: str = ""


class SiteSummary(_ApiModel):
    """Site summary embedded in an all-layers listing entry."""

    id: int
    name: str = ""
    slug: str = ""
    category: CategorySummary | None = None


class BoundaryRecord(_ApiModel):
    """A persisted boundary polygon for one site and one calendar year.

    Attributes:
        id: Opaque identity (the API may emit integers; always stored as str).
        site_id: Owning site.
        year: Calendar year of the boundary.
        geometry: GeoJSON-shaped geometry value, as stored.
        properties: Open key/value map (e.g. ``{"source": "drawing"}``).
        deleted_at: Soft-deletion timestamp; ``None`` for live records.
    """

    id: str
    site_id: int = Field(alias="siteId")
    year: int
    geometry: dict[str, Any] | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")
    deleted_at: str | None = Field(default=None, alias="deletedAt")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("properties", mode="before")
    @classmethod
    def _null_properties(cls, value: object) -> object:
        return {} if value is None else value

    @property
    def is_deleted(self) -> bool:
        """Whether the record has been soft-deleted."""
        return self.deleted_at is not None

    def matches(self, site_id: int, year: int) -> bool:
        """Whether this is a live record for *site_id* in *year*."""
        return not self.is_deleted and self.site_id == site_id and self.year == year


class VectorLayer(BoundaryRecord):
    """An all-layers listing entry: a boundary with its site summary."""

    site: SiteSummary | None = None


_RecordT = TypeVar("_RecordT", bound=BoundaryRecord)


class CreateBoundaryPayload(_ApiModel):
    """Body of ``POST /vectors``."""

    site_id: int = Field(alias="siteId")
    year: int
    geometry: dict[str, Any]
    properties: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        """Serialise with the API's camelCase keys."""
        return self.model_dump(by_alias=True)


class UpdateBoundaryPayload(_ApiModel):
    """Body of ``PATCH /vectors/{id}``."""

    geometry: dict[str, Any]
    properties: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        """Serialise with the API's camelCase keys."""
        return self.model_dump(by_alias=True)


def parse_records(items: list[Any], model: type[_RecordT]) -> list[_RecordT]:
    """Validate raw API items into *model* instances, skipping bad ones.

    A malformed entry is logged and dropped rather than failing the whole
    listing, so one corrupt row cannot hide every other boundary.
    """
    records: list[_RecordT] = []
    for index, item in enumerate(items):
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                "Skipping unparseable %s | index=%d | errors=%d",
                model.__name__,
                index,
                exc.error_count(),
            )
    return records
