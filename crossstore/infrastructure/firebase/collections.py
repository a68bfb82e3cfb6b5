"""Firestore collection names (schema-in-code).

Firestore has no DDL or migrations; collections appear on first write. These
constants are the single source of truth for canonical collection names and
match EntitySyncSpec.collection.
"""

COLLECTION_USERS = "users"
COLLECTION_CONTENT = "content"
