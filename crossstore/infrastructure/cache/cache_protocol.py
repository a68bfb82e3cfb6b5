"""Cache protocol consumed by the lock manager and sync orchestrator (DIP)."""

from typing import Any, Protocol

from crossstore.infrastructure.cache.codecs import CacheCodec


class CacheProtocol(Protocol):
    """Namespaced cache with graceful degradation.

    Keys passed in are relative ({purpose}:{id}); implementations add the
    service prefix. No method raises for backend faults.
    """

    service: str

    async def get(self, key: str, codec: CacheCodec[Any] | None = None) -> Any | None:
        """Return cached value or None (miss, expired, or backend unavailable)."""
        ...

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
        codec: CacheCodec[Any] | None = None,
    ) -> bool:
        """Store value with optional TTL. False if not stored."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove key. False if the backend did not acknowledge."""
        ...

    async def delete_by_pattern(self, pattern: str) -> int:
        """Remove keys matching a glob; return the count removed."""
        ...

    async def exists(self, key: str) -> bool:
        """Return True if key exists."""
        ...

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Atomically create key=value with expiry if absent."""
        ...

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Atomically delete key only if its value equals expected."""
        ...
