"""Per-entity sync definitions: which collection, which business key, which projections.

A spec is pure data plus projection functions; the orchestrator and mirror
stores read it, never the other way round. Credentials (password hashes,
tokens) are never projected into mirrors.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from crossstore.application.dtos.sync import CanonicalRecord, RelationalRow, SearchDocumentData
from crossstore.infrastructure.firebase.collections import COLLECTION_CONTENT, COLLECTION_USERS


def _jsonable(value: Any) -> Any:
    """Make a projected value safe for JSON columns."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class EntitySyncSpec:
    """How one entity type is mirrored out of the canonical store."""

    entity_type: str
    collection: str
    business_key_field: str
    relational_projection: Callable[[CanonicalRecord], dict[str, Any]] | None = None
    search_projection: Callable[[CanonicalRecord], SearchDocumentData] | None = None

    @property
    def has_relational_mirror(self) -> bool:
        return self.relational_projection is not None

    @property
    def has_search_mirror(self) -> bool:
        return self.search_projection is not None

    def business_key(self, record: CanonicalRecord) -> str:
        """Natural key the relational mirror upserts on.

        Raises:
            ValueError: record has no usable business key.
        """
        value = record.data.get(self.business_key_field)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(
                f"{self.entity_type} {record.id} has no {self.business_key_field!r}"
            )
        return value.strip().lower() if self.business_key_field == "email" else value.strip()

    def relational_row(self, record: CanonicalRecord) -> RelationalRow:
        if self.relational_projection is None:
            raise ValueError(f"{self.entity_type} has no relational mirror")
        return RelationalRow(
            business_key=self.business_key(record),
            attributes=_jsonable(self.relational_projection(record)),
        )

    def search_document(self, record: CanonicalRecord) -> SearchDocumentData:
        if self.search_projection is None:
            raise ValueError(f"{self.entity_type} has no search mirror")
        doc = self.search_projection(record)
        return SearchDocumentData(
            title=doc.title, body=doc.body, attributes=_jsonable(doc.attributes)
        )


def _user_relational(record: CanonicalRecord) -> dict[str, Any]:
    data = record.data
    return {
        "first_name": data.get("first_name") or "",
        "last_name": data.get("last_name") or "",
        "username": data.get("username"),
        "role": data.get("role") or "user",
        "is_verified": bool(data.get("is_verified", False)),
        "is_active": data.get("is_active") is not False,
        "created_at": data.get("created_at"),
        "updated_at": data.get("updated_at"),
    }


def _user_search(record: CanonicalRecord) -> SearchDocumentData:
    data = record.data
    full_name = " ".join(p for p in (data.get("first_name"), data.get("last_name")) if p)
    email = data.get("email") or ""
    return SearchDocumentData(
        title=full_name or email,
        body=" ".join(p for p in (email, data.get("username"), data.get("role")) if p),
        attributes={
            "email": email,
            "username": data.get("username"),
            "role": data.get("role") or "user",
            "is_active": data.get("is_active") is not False,
            "is_verified": data.get("is_verified") is True,
            "last_login": data.get("last_login"),
        },
    )


def _content_search(record: CanonicalRecord) -> SearchDocumentData:
    data = record.data
    body = "\n".join(p for p in (data.get("description"), data.get("content")) if p)
    return SearchDocumentData(
        title=data.get("title") or "",
        body=body,
        attributes={
            "slug": data.get("slug"),
            "tags": list(data.get("tags") or []),
            "categories": list(data.get("categories") or []),
            "author_id": data.get("author_id"),
            "status": data.get("status") or "draft",
            "published_at": data.get("published_at"),
        },
    )


USER_SYNC_SPEC = EntitySyncSpec(
    entity_type="user",
    collection=COLLECTION_USERS,
    business_key_field="email",
    relational_projection=_user_relational,
    search_projection=_user_search,
)

CONTENT_SYNC_SPEC = EntitySyncSpec(
    entity_type="content",
    collection=COLLECTION_CONTENT,
    business_key_field="slug",
    search_projection=_content_search,
)

DEFAULT_SYNC_SPECS: dict[str, EntitySyncSpec] = {
    USER_SYNC_SPEC.entity_type: USER_SYNC_SPEC,
    CONTENT_SYNC_SPEC.entity_type: CONTENT_SYNC_SPEC,
}
