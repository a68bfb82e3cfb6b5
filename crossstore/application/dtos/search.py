"""DTOs for full-text search results over the search mirror (no dependency on ORM)."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SearchHit:
    """Single search hit from the search mirror (read-model)."""

    entity_type: str
    id: str  # canonical id
    title: str
    snippet: str | None
    rank: float
    attributes: dict[str, Any]
