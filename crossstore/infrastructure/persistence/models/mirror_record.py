"""Relational mirror row: one per (entity_type, business_key)."""

from typing import Any

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from crossstore.infrastructure.persistence.database import Base
from crossstore.infrastructure.persistence.models.mixins import CuidMixin, TimestampMixin


class MirrorRecord(CuidMixin, TimestampMixin, Base):
    """Denormalized copy of a canonical record. Table: mirror_record.

    id is the mirror's own identity (target of the identity mapping);
    upserts key on (entity_type, business_key) so replays never duplicate.
    """

    __tablename__ = "mirror_record"

    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    business_key: Mapped[str] = mapped_column(String(320), nullable=False)
    canonical_id: Mapped[str] = mapped_column(String(128), nullable=False)
    attributes: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "business_key", name="uq_mirror_record_entity_business_key"
        ),
        UniqueConstraint(
            "entity_type", "canonical_id", name="uq_mirror_record_entity_canonical"
        ),
    )
