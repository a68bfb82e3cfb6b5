"""Core constants: cache key structure, service namespaces, default limits.

Single source of truth for cache key layout. Full keys are always
{global_prefix}{service}:{purpose}:{id}; ServiceCache adds the
{global_prefix}{service}: part, keys.py builds {purpose}:{id}.
"""

# Delimiter for composite keys
CACHE_KEY_SEP = ":"

DEFAULT_GLOBAL_PREFIX = "sap:"

# Cache purposes
CACHE_PURPOSE_LOCK = "lock"
CACHE_PURPOSE_MAPPING = "mapping"
CACHE_PURPOSE_RECORD = "record"

# Service namespaces owned by this library
SERVICE_LOCKS = "locks"
SERVICE_SYNC = "sync"

# Each service gets its own Redis logical database number.
SERVICE_DB_MAPPING: dict[str, int] = {
    "api-gateway": 0,
    "auth": 1,
    "user": 2,
    "subscription": 3,
    "content": 4,
    "notification": 5,
    "payment": 6,
    "monitoring": 7,
    "analytics": 8,
    "default": 0,
}

# Circuit breaker
CIRCUIT_FAILURE_THRESHOLD = 3
CIRCUIT_COOLDOWN_SECONDS = 30.0

# Identity mapping sides (used in mapping:{source}:{id} keys)
MAPPING_SIDE_CANONICAL = "canonical"
MAPPING_SIDE_MIRROR = "mirror"

# Sync
SYNC_RECORD_TTL_SECONDS = 60
SYNC_PAGE_SIZE = 100

# delete_by_pattern batch size for SCAN + UNLINK
CACHE_DELETE_CHUNK_SIZE = 500


def db_for_service(service: str) -> int:
    """Return the logical Redis DB for a service (default DB when unmapped)."""
    return SERVICE_DB_MAPPING.get(service, SERVICE_DB_MAPPING["default"])
