"""Firestore client construction (REST-based, no firebase-admin).

Credentials come from FIREBASE_SERVICE_ACCOUNT_KEY (JSON string) or
FIREBASE_SERVICE_ACCOUNT_PATH (file path). The CoreRegistry builds the
client once and closes it on shutdown; nothing here is module-global.
"""

import json
import logging
from pathlib import Path

import httpx

from crossstore.core.config import Settings
from crossstore.infrastructure.firebase._rest_client import (
    FirestoreRESTClient,
    _get_credentials,
)

logger = logging.getLogger(__name__)


def _load_key_dict(settings: Settings) -> dict | None:
    """Return service account dict from env key or file path."""
    key = settings.firebase_service_account_key
    key_json = key.get_secret_value() if key else None
    if key_json:
        try:
            return json.loads(key_json)
        except json.JSONDecodeError as e:
            raise ValueError("FIREBASE_SERVICE_ACCOUNT_KEY is not valid JSON") from e
    path = settings.firebase_service_account_path
    if path:
        resolved = Path(path).expanduser().resolve()
        if not resolved.is_file():
            logger.warning(
                "FIREBASE_SERVICE_ACCOUNT_PATH set but file not found: %s (resolved: %s)",
                path,
                resolved,
            )
            return None
        with open(resolved, encoding="utf-8") as f:
            return json.load(f)
    return None


def build_firestore_client(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> FirestoreRESTClient | None:
    """Build the Firestore client, or None when no credentials are configured.

    Raises:
        ValueError: credentials are present but malformed.
    """
    key_dict = _load_key_dict(settings)
    if not key_dict:
        logger.info("Firestore not configured; canonical document store disabled")
        return None
    project_id = key_dict.get("project_id")
    if not project_id:
        raise ValueError("Firebase service account JSON missing 'project_id'")
    client = FirestoreRESTClient(
        project_id, _get_credentials(key_dict), http_client=http_client
    )
    logger.info("Firestore client initialized for project %s", project_id)
    return client
