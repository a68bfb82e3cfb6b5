"""Search mirror: search_document upsert/delete by canonical id, plus full-text query."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, func, text
from sqlalchemy.dialects.postgresql import insert

from crossstore.application.dtos.search import SearchHit
from crossstore.application.dtos.sync import CanonicalRecord
from crossstore.infrastructure.persistence.models.search_document import SearchDocument
from crossstore.infrastructure.persistence.repositories.base import SqlMirrorRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from crossstore.application.services.entity_sync_specs import EntitySyncSpec

_table = SearchDocument.__table__
_TITLE_MAX = 500


class SearchMirrorRepository(SqlMirrorRepository):
    """IMirrorStore over search_document. Documents are keyed by canonical id."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        name: str = "search",
    ) -> None:
        super().__init__(session_factory, name)

    async def upsert(self, spec: EntitySyncSpec, record: CanonicalRecord) -> None:
        """Index (or re-index) record. Returns None: no separate mirror id."""
        doc = spec.search_document(record)
        stmt = insert(_table).values(
            entity_type=spec.entity_type,
            id=record.id,
            title=doc.title[:_TITLE_MAX],
            body=doc.body,
            attributes=doc.attributes,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[_table.c.entity_type, _table.c.id],
            set_={
                "title": stmt.excluded.title,
                "body": stmt.excluded.body,
                "attributes": stmt.excluded.attributes,
                "updated_at": func.now(),
            },
        )
        async with self._transaction() as session:
            await session.execute(stmt)
        return None

    async def delete(self, spec: EntitySyncSpec, canonical_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(_table).where(
                    _table.c.entity_type == spec.entity_type,
                    _table.c.id == canonical_id,
                )
            )
            return (result.rowcount or 0) > 0

    async def search(
        self,
        q: str,
        entity_type: str | None = None,
        limit: int = 50,
    ) -> list[SearchHit]:
        """Full-text search over title/body/attributes, best match first."""
        if not q or not q.strip():
            return []
        limit = min(max(1, limit), 100)
        stmt = text("""
            SELECT d.entity_type, d.id, d.title, d.attributes,
                   ts_headline('english', coalesce(d.title, '') || ' ' || coalesce(d.body, ''),
                     plainto_tsquery('english', :q), 'MaxFragments=1, MaxWords=30, MinWords=15') AS snippet,
                   ts_rank(d.search_vector, plainto_tsquery('english', :q)) AS rank
            FROM search_document d
            WHERE d.search_vector @@ plainto_tsquery('english', :q)
              AND (CAST(:entity_type AS varchar) IS NULL OR d.entity_type = :entity_type)
            ORDER BY rank DESC
            LIMIT :limit
        """)
        async with self.session_factory() as session:
            r = await session.execute(
                stmt, {"q": q.strip(), "entity_type": entity_type, "limit": limit}
            )
            rows = r.mappings().all()
        return [
            SearchHit(
                entity_type=row["entity_type"],
                id=row["id"],
                title=row["title"],
                snippet=row["snippet"] or None,
                rank=float(row["rank"]),
                attributes=row["attributes"] or {},
            )
            for row in rows
        ]
