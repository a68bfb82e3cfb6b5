"""Redis-backed ServiceCache: namespaced key-value facade with a circuit breaker.

Every key is {global_prefix}{service}:{purpose}:{id}. Every call consults the
service's CircuitBreaker first; while open, calls return a miss / False / 0
without touching Redis. Connection and timeout errors are counted by the
breaker; command errors (WRONGTYPE and the like) are not. Neither reaches
callers.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

import redis.asyncio as redis
from redis.exceptions import WatchError

from crossstore.core.constants import CACHE_DELETE_CHUNK_SIZE, DEFAULT_GLOBAL_PREFIX
from crossstore.domain.exceptions import BackendUnavailableException
from crossstore.infrastructure.cache.circuit_breaker import CircuitBreaker
from crossstore.infrastructure.cache.codecs import JSON_CODEC, CacheCodec
from crossstore.infrastructure.cache.keys import build_key

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class ServiceCache:
    """Async Redis cache scoped to one service namespace.

    get() never raises: backend faults and undecodable payloads become a
    miss. set() is last-write-wins. The Redis client is owned by the caller
    (CoreRegistry); close it there.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        service: str,
        breaker: CircuitBreaker,
        global_prefix: str = DEFAULT_GLOBAL_PREFIX,
        codec: CacheCodec[Any] = JSON_CODEC,
    ) -> None:
        """Initialize the cache.

        Args:
            redis_client: Async Redis client (decode_responses=True).
            service: Service namespace, e.g. 'auth' or 'sync'.
            breaker: Circuit breaker shared by all caches of this service.
            global_prefix: Prefix shared by all services, e.g. 'sap:'.
            codec: Default codec for get/set.
        """
        self.redis = redis_client
        self.service = service
        self.breaker = breaker
        self.prefix = f"{global_prefix}{service}:"
        self.codec = codec

    def full_key(self, key: str) -> str:
        """Return the backend key for a relative {purpose}:{id} key."""
        return f"{self.prefix}{key}"

    def _relative(self, full_key: str) -> str:
        return full_key[len(self.prefix):] if full_key.startswith(self.prefix) else full_key

    async def _execute(self, operation: str, key: str, call: Callable[[], Awaitable[R]]) -> R:
        """Run one backend call under the circuit breaker.

        Raises:
            BackendUnavailableException: circuit open or Redis error (callers
                in this class convert it to their degraded return value).
        """
        if not self.breaker.allow_request():
            logger.debug("[%s] Circuit open, skipping Redis %s for %s", self.service, operation, key)
            raise BackendUnavailableException(self.service, "circuit open")
        try:
            result = await call()
        except (redis.ConnectionError, redis.TimeoutError) as e:
            # BusyLoadingError is a ConnectionError
            self.breaker.record_failure()
            logger.warning(
                "[%s] Redis %s failed for %s: %s", self.service, operation, key, e
            )
            raise BackendUnavailableException(self.service, str(e)) from e
        except redis.RedisError as e:
            # the server answered (WRONGTYPE, bad argument): not a backend outage
            self.breaker.record_success()
            logger.warning(
                "[%s] Redis %s rejected for %s: %s", self.service, operation, key, e
            )
            raise BackendUnavailableException(self.service, str(e)) from e
        except BaseException:
            # cancellation or a non-backend error: neither success nor failure
            self.breaker.abandon_trial()
            raise
        self.breaker.record_success()
        return result

    async def get(self, key: str, codec: CacheCodec[Any] | None = None) -> Any | None:
        """Return cached value (decoded) or None if missing/unavailable/undecodable.

        Args:
            key: Relative key (use crossstore.infrastructure.cache.keys builders).
            codec: Codec overriding the cache default.
        """
        try:
            raw = await self._execute("GET", key, lambda: self.redis.get(self.full_key(key)))
        except BackendUnavailableException:
            return None
        if raw is None:
            logger.debug("Cache MISS: %s%s", self.prefix, key)
            return None
        try:
            return (codec or self.codec).loads(raw)
        except ValueError:
            logger.warning("Undecodable cache payload for %s%s, treating as miss", self.prefix, key)
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
        codec: CacheCodec[Any] | None = None,
    ) -> bool:
        """Store value with optional TTL in seconds. Returns True on success."""
        try:
            payload = (codec or self.codec).dumps(value)
        except (TypeError, ValueError) as e:
            logger.error("Cannot serialize value for %s%s: %s", self.prefix, key, e)
            return False
        try:
            await self._execute(
                "SET",
                key,
                lambda: self.redis.set(self.full_key(key), payload, ex=ttl_seconds or None),
            )
        except BackendUnavailableException:
            return False
        logger.debug("Cache SET: %s%s (TTL: %ss)", self.prefix, key, ttl_seconds)
        return True

    async def delete(self, key: str) -> bool:
        """Remove key. Returns True once the backend acknowledged (idempotent)."""
        try:
            await self._execute("DEL", key, lambda: self.redis.delete(self.full_key(key)))
        except BackendUnavailableException:
            return False
        return True

    async def exists(self, key: str) -> bool:
        """Return True if key exists; False when missing or backend unavailable."""
        try:
            count = await self._execute(
                "EXISTS", key, lambda: self.redis.exists(self.full_key(key))
            )
        except BackendUnavailableException:
            return False
        return int(count) > 0

    async def keys(self, pattern: str) -> list[str]:
        """Return relative keys in this namespace matching a glob (SCAN, not KEYS)."""

        async def _scan() -> list[str]:
            return [k async for k in self.redis.scan_iter(match=self.full_key(pattern))]

        try:
            found = await self._execute("SCAN", pattern, _scan)
        except BackendUnavailableException:
            return []
        return [self._relative(k) for k in found]

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete all keys in this namespace matching a glob; return the count deleted.

        Uses SCAN + batched UNLINK so the server is never blocked by KEYS.
        """

        async def _scan_and_unlink() -> int:
            deleted = 0
            chunk: list[str] = []
            async for k in self.redis.scan_iter(match=self.full_key(pattern)):
                chunk.append(k)
                if len(chunk) >= CACHE_DELETE_CHUNK_SIZE:
                    deleted += int(await self.redis.unlink(*chunk))
                    chunk = []
            if chunk:
                deleted += int(await self.redis.unlink(*chunk))
            return deleted

        try:
            deleted = await self._execute("UNLINK", pattern, _scan_and_unlink)
        except BackendUnavailableException:
            return 0
        if deleted:
            logger.info("Cache INVALIDATE: %s%s (%s keys)", self.prefix, pattern, deleted)
        return deleted

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """SET NX EX: create key=value expiring after ttl_seconds if absent."""
        try:
            created = await self._execute(
                "SETNX",
                key,
                lambda: self.redis.set(self.full_key(key), value, nx=True, ex=ttl_seconds),
            )
        except BackendUnavailableException:
            return False
        return bool(created)

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete key only if it still holds `expected`.

        WATCH/MULTI makes the read and the delete atomic: if another client
        rewrites the key in between, EXEC aborts and nothing is deleted.
        """
        full = self.full_key(key)

        async def _cad() -> bool:
            async with self.redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(full)
                    current = await pipe.get(full)
                    if current != expected:
                        await pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.delete(full)
                    results = await pipe.execute()
                except WatchError:
                    return False
            return bool(results and results[0])

        try:
            return await self._execute("CAD", key, _cad)
        except BackendUnavailableException:
            return False

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T | None]],
        ttl_seconds: int | None = None,
        codec: CacheCodec[Any] | None = None,
    ) -> T | None:
        """Read-through: return cached value, else load, cache (if not None), and return."""
        cached_value = await self.get(key, codec=codec)
        if cached_value is not None:
            return cached_value
        value = await loader()
        if value is not None:
            await self.set(key, value, ttl_seconds=ttl_seconds, codec=codec)
        return value

    def namespace(
        self,
        purpose: str,
        codec: CacheCodec[T],
        default_ttl_seconds: int | None = None,
    ) -> CacheNamespace[T]:
        """Typed view over {purpose}:* keys bound to one codec."""
        return CacheNamespace(self, purpose, codec, default_ttl_seconds)

    async def ping(self) -> bool:
        """Return True if Redis answered PING."""
        try:
            return bool(await self._execute("PING", "-", lambda: self.redis.ping()))
        except BackendUnavailableException:
            return False

    async def health(self) -> dict[str, Any] | None:
        """Backend health metrics from INFO, or None if unavailable."""
        try:
            info = await self._execute("INFO", "-", lambda: self.redis.info())
            total_keys = await self._execute("DBSIZE", "-", lambda: self.redis.dbsize())
        except BackendUnavailableException:
            return None
        hits = int(info.get("keyspace_hits", 0) or 0)
        misses = int(info.get("keyspace_misses", 0) or 0)
        total = hits + misses
        return {
            "service": self.service,
            "circuit": self.breaker.status.value,
            "uptime_seconds": info.get("uptime_in_seconds"),
            "connected_clients": info.get("connected_clients"),
            "used_memory": info.get("used_memory_human"),
            "total_keys": int(total_keys),
            "hit_rate": f"{(hits / total) * 100:.2f}%" if total else "0%",
        }


class CacheNamespace(Generic[T]):
    """Typed cache view: one purpose, one codec, optional default TTL."""

    def __init__(
        self,
        cache: ServiceCache,
        purpose: str,
        codec: CacheCodec[T],
        default_ttl_seconds: int | None = None,
    ) -> None:
        self.cache = cache
        self.purpose = purpose
        self.codec = codec
        self.default_ttl_seconds = default_ttl_seconds

    def key(self, identifier: str) -> str:
        return build_key(self.purpose, identifier)

    async def get(self, identifier: str) -> T | None:
        return await self.cache.get(self.key(identifier), codec=self.codec)

    async def set(self, identifier: str, value: T, ttl_seconds: int | None = None) -> bool:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        return await self.cache.set(self.key(identifier), value, ttl_seconds=ttl, codec=self.codec)

    async def delete(self, identifier: str) -> bool:
        return await self.cache.delete(self.key(identifier))

    async def exists(self, identifier: str) -> bool:
        return await self.cache.exists(self.key(identifier))

    async def clear(self) -> int:
        return await self.cache.delete_by_pattern(f"{self.purpose}:*")
