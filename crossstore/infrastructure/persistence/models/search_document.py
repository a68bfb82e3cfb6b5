"""Search mirror document keyed by (entity_type, canonical id)."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, TSVECTOR
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from crossstore.infrastructure.persistence.database import Base


class SearchDocument(Base):
    """Full-text searchable projection. search_vector is maintained by a trigger."""

    __tablename__ = "search_document"

    entity_type: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    attributes: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    search_vector: Mapped[Any | None] = mapped_column(TSVECTOR, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_search_document_search_vector", "search_vector", postgresql_using="gin"),
    )


# DDL for the trigger maintaining search_vector (mirrors the Alembic revision).
SEARCH_VECTOR_FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION search_document_vector_fn()
RETURNS trigger AS $$
BEGIN
  NEW.search_vector :=
    setweight(to_tsvector('english', coalesce(NEW.title, '')), 'A')
    || setweight(to_tsvector('english', coalesce(NEW.body, '')), 'B')
    || setweight(to_tsvector('english', coalesce(NEW.attributes::text, '')), 'C');
  RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""

SEARCH_VECTOR_TRIGGER_SQL = """
CREATE OR REPLACE TRIGGER search_document_vector_trigger
BEFORE INSERT OR UPDATE ON search_document
FOR EACH ROW EXECUTE FUNCTION search_document_vector_fn()
"""
