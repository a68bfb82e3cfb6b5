"""Relational mirror: idempotent upsert of mirror_record by business key."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert

from crossstore.application.dtos.sync import CanonicalRecord
from crossstore.infrastructure.persistence.models.mirror_record import MirrorRecord
from crossstore.infrastructure.persistence.repositories.base import SqlMirrorRepository
from crossstore.shared.utils.generators import generate_cuid

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from crossstore.application.services.entity_sync_specs import EntitySyncSpec

_table = MirrorRecord.__table__


class RelationalMirrorRepository(SqlMirrorRepository):
    """IMirrorStore over mirror_record. The returned mirror id is stable across replays."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        name: str = "relational",
    ) -> None:
        super().__init__(session_factory, name)

    async def upsert(self, spec: EntitySyncSpec, record: CanonicalRecord) -> str:
        """Upsert the row for record and return its mirror id.

        A row already linked to this canonical id is updated in place (so a
        changed business key keeps its mirror id); otherwise insert, or update
        on (entity_type, business_key) conflict.
        """
        row = spec.relational_row(record)
        async with self._transaction() as session:
            moved = await session.execute(
                update(_table)
                .where(
                    _table.c.entity_type == spec.entity_type,
                    _table.c.canonical_id == record.id,
                )
                .values(
                    business_key=row.business_key,
                    attributes=row.attributes,
                    updated_at=func.now(),
                )
                .returning(_table.c.id)
            )
            mirror_id = moved.scalar_one_or_none()
            if mirror_id is not None:
                return mirror_id

            stmt = insert(_table).values(
                id=generate_cuid(),
                entity_type=spec.entity_type,
                business_key=row.business_key,
                canonical_id=record.id,
                attributes=row.attributes,
            )
            stmt = stmt.on_conflict_do_update(
                constraint="uq_mirror_record_entity_business_key",
                set_={
                    "canonical_id": stmt.excluded.canonical_id,
                    "attributes": stmt.excluded.attributes,
                    "updated_at": func.now(),
                },
            ).returning(_table.c.id)
            result = await session.execute(stmt)
            return result.scalar_one()

    async def delete(self, spec: EntitySyncSpec, canonical_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(_table).where(
                    _table.c.entity_type == spec.entity_type,
                    _table.c.canonical_id == canonical_id,
                )
            )
            return (result.rowcount or 0) > 0

    async def get_by_business_key(
        self, entity_type: str, business_key: str
    ) -> MirrorRecord | None:
        """Return the mirror row for a business key, or None."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(MirrorRecord).where(
                    MirrorRecord.entity_type == entity_type,
                    MirrorRecord.business_key == business_key,
                )
            )
            return result.scalar_one_or_none()

    async def count(self, entity_type: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(_table).where(_table.c.entity_type == entity_type)
            )
            return int(result.scalar_one())
