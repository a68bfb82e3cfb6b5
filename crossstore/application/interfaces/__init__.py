"""Application ports."""

from crossstore.application.interfaces.repositories import (
    ICanonicalStore,
    IMirrorStore,
    TransactionalStore,
)

__all__ = ["ICanonicalStore", "IMirrorStore", "TransactionalStore"]
