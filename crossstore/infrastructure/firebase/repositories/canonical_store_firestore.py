"""Firestore-backed canonical store for one collection (implements ICanonicalStore)."""

from __future__ import annotations

from typing import Any

from crossstore.application.dtos.sync import CanonicalRecord
from crossstore.infrastructure.firebase._rest_client import (
    DocumentSnapshot,
    FirestoreRESTClient,
)
from crossstore.shared.utils.datetime import utc_now


class FirestoreCanonicalStore:
    """Authoritative records of one entity type, one document per record."""

    def __init__(self, client: FirestoreRESTClient, collection: str) -> None:
        self._client = client
        self.collection = collection
        self._coll = client.collection(collection)

    @staticmethod
    def _to_record(snapshot: DocumentSnapshot) -> CanonicalRecord:
        return CanonicalRecord(
            id=snapshot.id, data=snapshot.to_dict(), updated_at=snapshot.update_time
        )

    async def find_by_id(self, record_id: str) -> CanonicalRecord | None:
        doc = await self._coll.document(record_id).get()
        if doc is None:
            return None
        return self._to_record(doc)

    async def find(self, offset: int = 0, limit: int = 100) -> list[CanonicalRecord]:
        """Page of records ordered by document ID (stable across sweeps)."""
        query = self._coll.query().order_by("__name__").offset(offset).limit(limit)
        return [self._to_record(doc) async for doc in query.stream()]

    async def upsert(self, record_id: str, data: dict[str, Any]) -> CanonicalRecord:
        await self._coll.document(record_id).set(data)
        return CanonicalRecord(id=record_id, data=dict(data), updated_at=utc_now())

    async def delete_by_id(self, record_id: str) -> bool:
        ref = self._coll.document(record_id)
        if await ref.get() is None:
            return False
        await ref.delete()
        return True
