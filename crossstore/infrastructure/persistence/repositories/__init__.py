"""SQL mirror repositories."""

from crossstore.infrastructure.persistence.repositories.relational_mirror_repo import (
    RelationalMirrorRepository,
)
from crossstore.infrastructure.persistence.repositories.search_mirror_repo import (
    SearchMirrorRepository,
)

__all__ = ["RelationalMirrorRepository", "SearchMirrorRepository"]
