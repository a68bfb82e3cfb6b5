"""Distributed mutual exclusion over the shared cache.

A lock is a cache entry lock:{resource} holding a random owner token,
created with SET NX EX and removed with compare-and-delete, so a holder
whose lease expired can never delete a successor's lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TypeVar

from crossstore.domain.exceptions import LockTimeoutException
from crossstore.infrastructure.cache.cache_protocol import CacheProtocol
from crossstore.infrastructure.cache.keys import lock_key
from crossstore.shared.telemetry.tracing import TracedOperation
from crossstore.shared.utils.generators import generate_owner_token
from crossstore.shared.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOCK_TTL_SECONDS = 10


@dataclass(frozen=True)
class Lock:
    """A held lock. Only the holder knows owner_token."""

    key: str
    owner_token: str
    ttl_seconds: int


class LockManager:
    """Acquire/release named locks with bounded exponential backoff.

    Mutual exclusion holds only while the body finishes within the lease TTL;
    there is no automatic lease renewal.
    """

    def __init__(
        self,
        cache: CacheProtocol,
        retry_policy: RetryPolicy | None = None,
        default_ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        token_factory: Callable[[], str] = generate_owner_token,
    ) -> None:
        if default_ttl_seconds < 1:
            raise ValueError("default_ttl_seconds must be >= 1")
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_ttl_seconds = default_ttl_seconds
        self._sleep = sleep
        self._token_factory = token_factory

    async def acquire(self, key: str, ttl_seconds: int | None = None) -> Lock:
        """Acquire the lock on `key`, retrying with backoff.

        Raises:
            LockTimeoutException: all attempts found the lock held (or the
                backend unavailable).
        """
        ttl = ttl_seconds or self.default_ttl_seconds
        cache_key = lock_key(key)
        token = self._token_factory()
        policy = self.retry_policy
        for attempt in range(1, policy.max_attempts + 1):
            if await self.cache.set_if_absent(cache_key, token, ttl):
                logger.debug("Lock acquired: %s (attempt %s, ttl %ss)", key, attempt, ttl)
                return Lock(key=key, owner_token=token, ttl_seconds=ttl)
            if attempt < policy.max_attempts:
                await self._sleep(policy.delay_for(attempt))
        logger.warning("Lock timeout: %s after %s attempts", key, policy.max_attempts)
        raise LockTimeoutException(key, policy.max_attempts)

    async def release(self, lock: Lock) -> bool:
        """Release a held lock. Returns False if ownership was already lost."""
        released = await self.cache.compare_and_delete(lock_key(lock.key), lock.owner_token)
        if not released:
            logger.warning(
                "Lock %s was not released by its owner (lease expired or backend unavailable)",
                lock.key,
            )
        return released

    @asynccontextmanager
    async def lock(self, key: str, ttl_seconds: int | None = None) -> AsyncIterator[Lock]:
        """`async with manager.lock("user:42:balance"):` critical section."""
        held = await self.acquire(key, ttl_seconds)
        try:
            yield held
        finally:
            await self.release(held)

    async def with_lock(
        self,
        key: str,
        body: Callable[[], Awaitable[T]],
        ttl_seconds: int | None = None,
    ) -> T:
        """Run body while holding the lock; body's result or error passes through."""
        async with TracedOperation("lock.with_lock", {"key": key}):
            async with self.lock(key, ttl_seconds):
                return await body()
