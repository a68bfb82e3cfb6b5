"""Firestore transactional store: REST beginTransaction / commit / rollback.

Writes made through a FirestoreTransaction are buffered client-side and
applied atomically by commit(); reads through it lock the documents for the
life of the transaction.
"""

from __future__ import annotations

import logging
from typing import Any

from crossstore.infrastructure.firebase._rest_client import (
    DocumentSnapshot,
    FirestoreRESTClient,
)
from crossstore.infrastructure.firebase._rest_encoding import encode_fields

logger = logging.getLogger(__name__)


class FirestoreTransaction:
    """Handle for one open Firestore transaction."""

    def __init__(self, client: FirestoreRESTClient, transaction_id: str) -> None:
        self._client = client
        self.transaction_id = transaction_id
        self.writes: list[dict[str, Any]] = []
        self.committed = False

    def _name(self, collection: str, document_id: str) -> str:
        return f"{self._client.prefix}/{collection}/{document_id}"

    async def get(self, collection: str, document_id: str) -> DocumentSnapshot | None:
        return await self._client.collection(collection).document(document_id).get(
            transaction=self.transaction_id
        )

    def set(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        self.writes.append(
            {"update": {"name": self._name(collection, document_id), "fields": encode_fields(data)}}
        )

    def delete(self, collection: str, document_id: str) -> None:
        self.writes.append({"delete": self._name(collection, document_id)})


class FirestoreTransactionalStore:
    """TransactionalStore over the Firestore REST transaction endpoints."""

    def __init__(self, client: FirestoreRESTClient, name: str = "firestore") -> None:
        self._client = client
        self.name = name

    async def begin(self) -> FirestoreTransaction:
        return FirestoreTransaction(self._client, await self._client.begin_transaction())

    async def commit(self, handle: FirestoreTransaction) -> None:
        await self._client.commit(handle.writes, transaction=handle.transaction_id)
        handle.committed = True
        logger.debug("Firestore transaction committed (%s writes)", len(handle.writes))

    async def rollback(self, handle: FirestoreTransaction) -> None:
        if handle.committed:
            return
        await self._client.rollback(handle.transaction_id)

    async def release(self, handle: FirestoreTransaction) -> None:
        handle.writes.clear()
