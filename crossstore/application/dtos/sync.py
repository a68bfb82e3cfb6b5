"""DTOs for canonical -> mirror synchronization (no dependency on ORM or SDKs)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from crossstore.domain.enums import MappingDirection, SyncOutcome


@dataclass(frozen=True)
class CanonicalRecord:
    """A record read from the canonical document store."""

    id: str
    data: dict[str, Any]
    updated_at: datetime | None = None


@dataclass(frozen=True)
class RelationalRow:
    """Projection of a canonical record into the relational mirror."""

    business_key: str
    attributes: dict[str, Any]


@dataclass(frozen=True)
class SearchDocumentData:
    """Projection of a canonical record into the search mirror."""

    title: str
    body: str
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SyncItemResult:
    """Outcome of syncing one canonical record."""

    entity_type: str
    canonical_id: str
    outcome: SyncOutcome
    mirrored: tuple[str, ...] = ()
    target_id: str | None = None  # relational mirror id, when the entity has one
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == SyncOutcome.SUCCEEDED


@dataclass
class SyncReport:
    """Aggregate result of a sweep. A cancelled sweep resumes from next_offset."""

    entity_type: str
    succeeded: int = 0
    failed: int = 0
    items: list[SyncItemResult] = field(default_factory=list)
    next_offset: int = 0
    completed: bool = False

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    @property
    def failures(self) -> list[SyncItemResult]:
        return [i for i in self.items if not i.succeeded]


@dataclass(frozen=True)
class MappingResolution:
    """Result of an identity-mapping lookup; absence is a normal outcome."""

    source_id: str
    direction: MappingDirection
    target_id: str | None = None

    @property
    def found(self) -> bool:
        return self.target_id is not None
