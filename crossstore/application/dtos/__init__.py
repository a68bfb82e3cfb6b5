"""Application DTOs (no ORM dependency)."""

from crossstore.application.dtos.saga import SagaStep
from crossstore.application.dtos.search import SearchHit
from crossstore.application.dtos.sync import (
    CanonicalRecord,
    MappingResolution,
    RelationalRow,
    SearchDocumentData,
    SyncItemResult,
    SyncReport,
)
from crossstore.application.dtos.transaction import HybridResult

__all__ = [
    "CanonicalRecord",
    "HybridResult",
    "MappingResolution",
    "RelationalRow",
    "SagaStep",
    "SearchHit",
    "SearchDocumentData",
    "SyncItemResult",
    "SyncReport",
]
