"""Thin Firestore REST API client (no firebase-admin).

Uses google-auth for service account tokens and Firestore REST v1, with
httpx.AsyncClient so no call blocks the event loop. Besides document
get/set/delete and paged queries it exposes the transaction endpoints
(beginTransaction / commit / rollback) used by the transactional store.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from crossstore.domain.exceptions import TransientStoreException
from crossstore.infrastructure.firebase._rest_encoding import (
    parse_timestamp,
    decode_fields,
    encode_fields,
)

_FIRESTORE_SCOPE = "https://www.googleapis.com/auth/datastore"
_BASE = "https://firestore.googleapis.com/v1"
_STORE_NAME = "firestore"
# 409 ABORTED (transaction contention) is retryable as well
_RETRYABLE_STATUS = frozenset({409, 429, 500, 502, 503, 504})


def _get_credentials(key_dict: dict):
    """Return google.oauth2.service_account.Credentials for Firestore."""
    from google.oauth2 import service_account

    return service_account.Credentials.from_service_account_info(
        key_dict, scopes=[_FIRESTORE_SCOPE]
    )


def _get_access_token(credentials) -> str:
    from google.auth.transport.requests import Request

    if not credentials.valid:
        credentials.refresh(Request())
    return credentials.token


async def _request_async(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    body: dict | None = None,
    access_token: str | None = None,
) -> Any:
    """Perform one Firestore REST call. 404 returns None.

    Raises:
        TransientStoreException: transport error or retryable status.
        httpx.HTTPStatusError: any other non-2xx status.
    """
    headers = {"Content-Type": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    try:
        resp = await client.request(method, url, headers=headers, json=body)
    except httpx.TransportError as e:
        raise TransientStoreException(_STORE_NAME, f"{type(e).__name__}: {e}") from e
    if resp.status_code == 404:
        return None
    if resp.status_code in _RETRYABLE_STATUS:
        raise TransientStoreException(_STORE_NAME, f"HTTP {resp.status_code}")
    resp.raise_for_status()
    raw = resp.content
    return json.loads(raw.decode()) if raw else {}


class DocumentSnapshot:
    """Snapshot of a document (id + data + update time)."""

    def __init__(self, id_: str, data: dict, update_time: datetime | None = None):
        self.id = id_
        self._data = data
        self.update_time = update_time

    def to_dict(self) -> dict:
        return self._data

    @classmethod
    def from_rest(cls, doc: dict) -> DocumentSnapshot:
        name = doc.get("name", "")
        update_time = doc.get("updateTime")
        return cls(
            name.split("/")[-1] if name else "",
            decode_fields(doc.get("fields")),
            parse_timestamp(update_time) if update_time else None,
        )


class DocumentReference:
    """Reference to a single document; matches firestore API style."""

    def __init__(self, client: FirestoreRESTClient, path: str):
        self._client = client
        self.path = path

    @property
    def id(self) -> str:
        return self.path.split("/")[-1]

    async def set(self, data: dict[str, Any]) -> None:
        """Create or overwrite the document (PATCH with full replace)."""
        await self._client.request(
            f"{_BASE}/{self.path}", "PATCH", {"fields": encode_fields(data)}
        )

    async def get(self, transaction: str | None = None) -> DocumentSnapshot | None:
        """Fetch the document; None if not found. Reads inside a transaction lock the doc."""
        url = f"{_BASE}/{self.path}"
        if transaction:
            url = f"{url}?transaction={quote(transaction, safe='')}"
        out = await self._client.request(url)
        if not out:
            return None
        return DocumentSnapshot.from_rest(out)

    async def delete(self) -> None:
        """Delete the document. Idempotent if document is already missing."""
        await self._client.request(f"{_BASE}/{self.path}", "DELETE")


class _Query:
    """Ordered, paged collection query run via runQuery (offset/limit on server)."""

    def __init__(self, client: FirestoreRESTClient, parent: str, collection_id: str):
        self._client = client
        self._parent = parent
        self._collection_id = collection_id
        self._order_by_field = "__name__"
        self._order_direction = "ASCENDING"
        self._offset = 0
        self._limit = 100

    def order_by(self, field: str, direction: str = "ASCENDING") -> _Query:
        self._order_by_field = field
        self._order_direction = direction
        return self

    def offset(self, n: int) -> _Query:
        self._offset = n
        return self

    def limit(self, n: int) -> _Query:
        self._limit = n
        return self

    def to_structured_query(self) -> dict[str, Any]:
        structured: dict[str, Any] = {
            "from": [{"collectionId": self._collection_id}],
            "orderBy": [
                {
                    "field": {"fieldPath": self._order_by_field},
                    "direction": self._order_direction,
                }
            ],
        }
        if self._offset:
            structured["offset"] = self._offset
        if self._limit:
            structured["limit"] = self._limit
        return structured

    async def stream(self) -> AsyncIterator[DocumentSnapshot]:
        """Execute the query and yield document snapshots."""
        resp = await self._client.request(
            f"{_BASE}/{self._parent}:runQuery",
            "POST",
            {"structuredQuery": self.to_structured_query()},
        )
        items = resp if isinstance(resp, list) else ([resp] if resp else [])
        for item in items:
            if "document" in item:
                yield DocumentSnapshot.from_rest(item["document"])


class CollectionReference:
    """Reference to a collection; matches firestore API style."""

    def __init__(self, client: FirestoreRESTClient, path: str):
        self._client = client
        self.path = path.rstrip("/")

    def document(self, document_id: str) -> DocumentReference:
        return DocumentReference(self._client, f"{self.path}/{document_id}")

    def query(self) -> _Query:
        """Start an ordered query; use .order_by(), .offset(), .limit(), then .stream()."""
        parent, collection_id = self.path.rsplit("/", 1)
        return _Query(self._client, parent, collection_id)


class FirestoreRESTClient:
    """Lightweight Firestore client using REST API (no firebase-admin)."""

    def __init__(
        self,
        project_id: str,
        credentials,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.project_id = project_id
        self._credentials = credentials
        self.database = f"projects/{project_id}/databases/(default)"
        self.prefix = f"{self.database}/documents"
        self._http = http_client if http_client is not None else httpx.AsyncClient(timeout=30.0)
        self._owns_http = http_client is None

    async def aclose(self) -> None:
        """Close the HTTP client only if we created it (do not close injected client)."""
        if self._owns_http:
            await self._http.aclose()

    async def get_token(self) -> str:
        """Return a valid access token; refreshes in thread pool to avoid blocking."""
        return await asyncio.to_thread(_get_access_token, self._credentials)

    async def request(
        self,
        url: str,
        method: str = "GET",
        body: dict | None = None,
    ) -> Any:
        return await _request_async(
            self._http,
            url,
            method=method,
            body=body,
            access_token=await self.get_token(),
        )

    def collection(self, collection_id: str) -> CollectionReference:
        return CollectionReference(self, f"{self.prefix}/{collection_id}")

    # ---- transactions ----

    async def begin_transaction(self) -> str:
        """Open a read-write transaction; return its opaque ID."""
        out = await self.request(
            f"{_BASE}/{self.prefix}:beginTransaction",
            "POST",
            {"options": {"readWrite": {}}},
        )
        return out["transaction"]

    async def commit(self, writes: list[dict[str, Any]], transaction: str | None = None) -> None:
        """Apply writes atomically (inside `transaction` when given)."""
        body: dict[str, Any] = {"writes": writes}
        if transaction:
            body["transaction"] = transaction
        await self.request(f"{_BASE}/{self.prefix}:commit", "POST", body)

    async def rollback(self, transaction: str) -> None:
        await self.request(
            f"{_BASE}/{self.prefix}:rollback", "POST", {"transaction": transaction}
        )
