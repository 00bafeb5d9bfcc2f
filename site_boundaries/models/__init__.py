"""Data models and schemas.

Defines the data structures used throughout the package:
- BoundaryRecord / VectorLayer: persisted boundaries as returned by the API
- Create/Update payloads: request bodies for writes
- FetchResult / WriteResult: transport outcomes (failures as values)
- SaveOutcome: created / updated / failed result of a save
"""

from site_boundaries.models.boundary import (
    BoundaryRecord,
    CategorySummary,
    CreateBoundaryPayload,
    SiteSummary,
    UpdateBoundaryPayload,
    VectorLayer,
    parse_records,
)
from site_boundaries.models.results import (
    ErrorKind,
    FetchResult,
    SaveOutcome,
    SaveStatus,
    WriteResult,
)

__all__ = [
    "BoundaryRecord",
    "CategorySummary",
    "CreateBoundaryPayload",
    "ErrorKind",
    "FetchResult",
    "SaveOutcome",
    "SaveStatus",
    "SiteSummary",
    "UpdateBoundaryPayload",
    "VectorLayer",
    "WriteResult",
    "parse_records",
]
