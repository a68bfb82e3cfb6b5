"""Store interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
All types reference application DTOs only; no infrastructure imports.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, TypeVar

if TYPE_CHECKING:
    from crossstore.application.dtos.sync import CanonicalRecord
    from crossstore.application.services.entity_sync_specs import EntitySyncSpec

H = TypeVar("H")


class ICanonicalStore(Protocol):
    """Primary document store for one collection (authoritative)."""

    async def find_by_id(self, record_id: str) -> CanonicalRecord | None:
        """Return record by ID, or None."""

    async def find(self, offset: int = 0, limit: int = 100) -> list[CanonicalRecord]:
        """Return a page of records in stable (id) order."""

    async def upsert(self, record_id: str, data: dict[str, Any]) -> CanonicalRecord:
        """Create or replace the record and return it."""

    async def delete_by_id(self, record_id: str) -> bool:
        """Delete record; return False if it did not exist."""


class IMirrorStore(Protocol):
    """Secondary store holding a derived copy. Writes are idempotent and retry-safe.

    Implementations raise TransientStoreException for retryable failures.
    """

    name: str

    async def upsert(self, spec: EntitySyncSpec, record: CanonicalRecord) -> str | None:
        """Upsert the projection of record; return the mirror's own ID, or None
        when the mirror is keyed by the canonical ID."""

    async def delete(self, spec: EntitySyncSpec, canonical_id: str) -> bool:
        """Remove the projection of a canonical record; False if absent."""


class TransactionalStore(Protocol[H]):
    """A store that supports begin/commit/rollback around a handle."""

    name: str

    async def begin(self) -> H:
        """Open a transaction and return its handle."""

    async def commit(self, handle: H) -> None:
        """Commit the transaction."""

    async def rollback(self, handle: H) -> None:
        """Roll back the transaction."""

    async def release(self, handle: H) -> None:
        """Return resources held by the handle (always called last)."""
