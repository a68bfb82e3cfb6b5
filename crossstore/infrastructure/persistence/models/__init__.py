"""SQLAlchemy models for the mirror stores."""

from crossstore.infrastructure.persistence.models.mirror_record import MirrorRecord
from crossstore.infrastructure.persistence.models.search_document import SearchDocument

__all__ = ["MirrorRecord", "SearchDocument"]
