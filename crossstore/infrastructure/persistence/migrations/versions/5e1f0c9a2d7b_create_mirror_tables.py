"""create mirror_record and search_document

Revision ID: 5e1f0c9a2d7b
Revises:
Create Date: 2026-10-19

Relational mirror (unique per entity_type + business_key) and search mirror
with a trigger-maintained tsvector over title, body, attributes.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5e1f0c9a2d7b"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "mirror_record",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("business_key", sa.String(length=320), nullable=False),
        sa.Column("canonical_id", sa.String(length=128), nullable=False),
        sa.Column(
            "attributes",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "entity_type", "business_key", name="uq_mirror_record_entity_business_key"
        ),
        sa.UniqueConstraint(
            "entity_type", "canonical_id", name="uq_mirror_record_entity_canonical"
        ),
    )

    op.create_table(
        "search_document",
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("body", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "attributes",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("search_vector", postgresql.TSVECTOR(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("entity_type", "id"),
    )
    op.execute(
        """
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
    )
    op.execute(
        """
        CREATE TRIGGER search_document_vector_trigger
        BEFORE INSERT OR UPDATE ON search_document
        FOR EACH ROW EXECUTE FUNCTION search_document_vector_fn()
        """
    )
    op.create_index(
        "ix_search_document_search_vector",
        "search_document",
        ["search_vector"],
        unique=False,
        postgresql_using="gin",
    )


def downgrade() -> None:
    op.drop_index(
        "ix_search_document_search_vector",
        table_name="search_document",
        postgresql_using="gin",
    )
    op.execute("DROP TRIGGER IF EXISTS search_document_vector_trigger ON search_document")
    op.execute("DROP FUNCTION IF EXISTS search_document_vector_fn()")
    op.drop_table("search_document")
    op.drop_table("mirror_record")
