"""Firestore repositories."""

from crossstore.infrastructure.firebase.repositories.canonical_store_firestore import (
    FirestoreCanonicalStore,
)

__all__ = ["FirestoreCanonicalStore"]
