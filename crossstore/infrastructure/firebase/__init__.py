"""Firestore document store (canonical records, transactional store)."""

from crossstore.infrastructure.firebase._rest_client import (
    DocumentSnapshot,
    FirestoreRESTClient,
)
from crossstore.infrastructure.firebase.client import build_firestore_client
from crossstore.infrastructure.firebase.repositories import FirestoreCanonicalStore
from crossstore.infrastructure.firebase.transactional_store_firestore import (
    FirestoreTransaction,
    FirestoreTransactionalStore,
)

__all__ = [
    "DocumentSnapshot",
    "FirestoreCanonicalStore",
    "FirestoreRESTClient",
    "FirestoreTransaction",
    "FirestoreTransactionalStore",
    "build_firestore_client",
]
