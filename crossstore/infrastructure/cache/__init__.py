"""Cache infrastructure: namespaced Redis cache, circuit breaker, locks."""

from crossstore.infrastructure.cache.cache_protocol import CacheProtocol
from crossstore.infrastructure.cache.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from crossstore.infrastructure.cache.codecs import (
    JSON_CODEC,
    STR_CODEC,
    CacheCodec,
    JsonCodec,
    PydanticCodec,
    StrCodec,
)
from crossstore.infrastructure.cache.lock_manager import Lock, LockManager
from crossstore.infrastructure.cache.redis_cache import CacheNamespace, ServiceCache

__all__ = [
    "JSON_CODEC",
    "STR_CODEC",
    "CacheCodec",
    "CacheNamespace",
    "CacheProtocol",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "JsonCodec",
    "Lock",
    "LockManager",
    "PydanticCodec",
    "ServiceCache",
    "StrCodec",
]
