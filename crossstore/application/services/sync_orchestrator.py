"""Canonical -> mirror propagation with a cache-backed identity mapping.

One orchestrator per entity type. Every write is an upsert keyed by the
business key (relational) or the canonical ID (search), so re-running
sync_entity after a crash or timeout converges to the same end state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Any

from crossstore.application.dtos.sync import (
    CanonicalRecord,
    MappingResolution,
    SyncItemResult,
    SyncReport,
)
from crossstore.application.interfaces.repositories import ICanonicalStore, IMirrorStore
from crossstore.application.services.entity_sync_specs import EntitySyncSpec
from crossstore.core.constants import (
    MAPPING_SIDE_CANONICAL,
    MAPPING_SIDE_MIRROR,
    SYNC_PAGE_SIZE,
    SYNC_RECORD_TTL_SECONDS,
)
from crossstore.domain.enums import MappingDirection, SyncOutcome
from crossstore.domain.exceptions import (
    CanonicalRecordNotFoundException,
    SyncItemFailedException,
    TransientStoreException,
)
from crossstore.infrastructure.cache.codecs import STR_CODEC
from crossstore.infrastructure.cache.keys import (
    mapping_key,
    mapping_pattern,
    mapping_source,
    record_key,
)
from crossstore.infrastructure.cache.redis_cache import ServiceCache
from crossstore.shared.telemetry.tracing import add_span_attributes, add_span_event, traced
from crossstore.shared.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


def _record_to_payload(record: CanonicalRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "data": record.data,
        "updated_at": record.updated_at.isoformat() if record.updated_at else None,
    }


def _payload_to_record(payload: dict[str, Any]) -> CanonicalRecord:
    updated = payload.get("updated_at")
    return CanonicalRecord(
        id=payload["id"],
        data=payload.get("data") or {},
        updated_at=datetime.fromisoformat(updated) if updated else None,
    )


class SyncOrchestrator:
    """Keeps the mirrors of one entity type in sync with the canonical store."""

    def __init__(
        self,
        spec: EntitySyncSpec,
        canonical_store: ICanonicalStore,
        mirrors: Sequence[IMirrorStore],
        cache: ServiceCache,
        retry_policy: RetryPolicy | None = None,
        record_ttl_seconds: int = SYNC_RECORD_TTL_SECONDS,
        page_size: int = SYNC_PAGE_SIZE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.spec = spec
        self.canonical = canonical_store
        self.mirrors = list(mirrors)
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3)
        self.record_ttl_seconds = record_ttl_seconds
        self.page_size = page_size
        self._sleep = sleep
        self._canonical_source = mapping_source(spec.entity_type, MAPPING_SIDE_CANONICAL)
        self._mirror_source = mapping_source(spec.entity_type, MAPPING_SIDE_MIRROR)

    @property
    def entity_type(self) -> str:
        return self.spec.entity_type

    # ---- single record ----

    @traced("sync.sync_entity")
    async def sync_entity(self, canonical_id: str) -> SyncItemResult:
        """Fetch the canonical record and upsert it into every mirror.

        Raises:
            CanonicalRecordNotFoundException: no canonical record with this ID.
            SyncItemFailedException: one or more mirrors failed (after retries);
                successful mirrors and the mapping are still written.
        """
        add_span_attributes(entity_type=self.entity_type, canonical_id=canonical_id)
        record = await self.canonical.find_by_id(canonical_id)
        if record is None:
            raise CanonicalRecordNotFoundException(self.entity_type, canonical_id)
        return await self._sync_record(record)

    async def _sync_record(self, record: CanonicalRecord) -> SyncItemResult:
        mirrored: list[str] = []
        errors: dict[str, str] = {}
        first_error: Exception | None = None
        target_id: str | None = None
        for mirror in self.mirrors:
            try:
                mirror_id = await self._with_retry(
                    mirror.name, lambda m=mirror: m.upsert(self.spec, record)
                )
            except Exception as e:
                logger.warning(
                    "Mirror %s failed for %s %s: %s", mirror.name, self.entity_type, record.id, e
                )
                errors[mirror.name] = str(e)
                first_error = first_error or e
                continue
            mirrored.append(mirror.name)
            if mirror_id is not None and target_id is None:
                target_id = mirror_id
                await self._store_mapping(record.id, mirror_id)

        await self.cache.set(
            record_key(self.entity_type, record.id),
            _record_to_payload(record),
            ttl_seconds=self.record_ttl_seconds,
        )

        if errors:
            raise SyncItemFailedException(self.entity_type, record.id, errors) from first_error
        logger.debug("Synced %s %s to %s", self.entity_type, record.id, ", ".join(mirrored))
        return SyncItemResult(
            entity_type=self.entity_type,
            canonical_id=record.id,
            outcome=SyncOutcome.SUCCEEDED,
            mirrored=tuple(mirrored),
            target_id=target_id,
        )

    async def _with_retry(self, store: str, call: Callable[[], Awaitable[Any]]) -> Any:
        """Retry call on TransientStoreException per the retry policy."""
        policy = self.retry_policy
        attempt = 1
        while True:
            try:
                return await call()
            except TransientStoreException as e:
                if attempt >= policy.max_attempts:
                    raise
                delay = policy.delay_for(attempt)
                logger.info(
                    "Transient failure in %s (attempt %s/%s), retrying in %.2fs: %s",
                    store,
                    attempt,
                    policy.max_attempts,
                    delay,
                    e.details.get("reason"),
                )
                await self._sleep(delay)
                attempt += 1

    async def _store_mapping(self, canonical_id: str, target_id: str) -> None:
        """Upsert both mapping directions (no expiry); drop a stale reverse entry."""
        forward = mapping_key(self._canonical_source, canonical_id)
        previous = await self.cache.get(forward, codec=STR_CODEC)
        if previous is not None and previous != target_id:
            await self.cache.delete(mapping_key(self._mirror_source, previous))
        ok_forward = await self.cache.set(forward, target_id, codec=STR_CODEC)
        ok_reverse = await self.cache.set(
            mapping_key(self._mirror_source, target_id), canonical_id, codec=STR_CODEC
        )
        if not (ok_forward and ok_reverse):
            logger.warning(
                "Identity mapping for %s %s not stored (cache unavailable); next sweep repairs it",
                self.entity_type,
                canonical_id,
            )

    # ---- sweep ----

    async def _sync_item(self, record: CanonicalRecord) -> SyncItemResult:
        try:
            return await self._sync_record(record)
        except SyncItemFailedException as e:
            error = e.message
        except Exception as e:
            logger.exception("Unexpected error syncing %s %s", self.entity_type, record.id)
            error = str(e)
        return SyncItemResult(
            entity_type=self.entity_type,
            canonical_id=record.id,
            outcome=SyncOutcome.FAILED,
            error=error,
        )

    @traced("sync.sync_all")
    async def sync_all(
        self,
        page_size: int | None = None,
        start_offset: int = 0,
        stop_event: asyncio.Event | None = None,
    ) -> SyncReport:
        """Sync every canonical record, page by page, never aborting on an item.

        Checks stop_event between items; a stopped sweep returns
        completed=False and next_offset to resume from. A page fetch that
        still fails after retries ends the sweep the same way.
        """
        size = page_size or self.page_size
        if size < 1:
            raise ValueError("page_size must be >= 1")
        report = SyncReport(entity_type=self.entity_type, next_offset=start_offset)
        offset = start_offset
        stopped = False
        while not stopped:
            try:
                page = await self._with_retry(
                    "canonical", lambda o=offset: self.canonical.find(offset=o, limit=size)
                )
            except Exception as e:
                logger.error(
                    "Sync sweep of %s aborted fetching page at offset %s: %s",
                    self.entity_type,
                    offset,
                    e,
                )
                add_span_event("sync.page_fetch_failed", {"offset": offset, "error": str(e)})
                break
            for record in page:
                if stop_event is not None and stop_event.is_set():
                    stopped = True
                    break
                item = await self._sync_item(record)
                report.items.append(item)
                if item.succeeded:
                    report.succeeded += 1
                else:
                    report.failed += 1
                offset += 1
                report.next_offset = offset
            if len(page) < size and not stopped:
                report.completed = True
                break
        add_span_attributes(succeeded=report.succeeded, failed=report.failed)
        if report.completed:
            logger.info(
                "Sync sweep of %s finished: %s succeeded, %s failed",
                self.entity_type,
                report.succeeded,
                report.failed,
            )
        else:
            logger.info(
                "Sync sweep of %s stopped at offset %s: %s succeeded, %s failed",
                self.entity_type,
                report.next_offset,
                report.succeeded,
                report.failed,
            )
        return report

    # ---- reads ----

    async def resolve_mapping(
        self, source_id: str, direction: MappingDirection
    ) -> MappingResolution:
        """O(1) mapping lookup. Not-yet-synced IDs resolve with found == False."""
        source = (
            self._canonical_source
            if direction == MappingDirection.CANONICAL_TO_MIRROR
            else self._mirror_source
        )
        target = await self.cache.get(mapping_key(source, source_id), codec=STR_CODEC)
        return MappingResolution(source_id=source_id, direction=direction, target_id=target)

    async def get_record(self, canonical_id: str) -> CanonicalRecord | None:
        """Read-through: cached record, else the canonical store (then cached)."""

        async def _load() -> dict[str, Any] | None:
            record = await self.canonical.find_by_id(canonical_id)
            return _record_to_payload(record) if record is not None else None

        payload = await self.cache.get_or_load(
            record_key(self.entity_type, canonical_id),
            _load,
            ttl_seconds=self.record_ttl_seconds,
        )
        if not isinstance(payload, dict):
            return None
        return _payload_to_record(payload)

    # ---- removal ----

    async def remove_entity(self, canonical_id: str) -> None:
        """Purge mirrors, mappings, and the cached record after a canonical delete.

        Raises:
            SyncItemFailedException: a mirror delete failed after retries.
        """
        errors: dict[str, str] = {}
        first_error: Exception | None = None
        for mirror in self.mirrors:
            try:
                await self._with_retry(
                    mirror.name, lambda m=mirror: m.delete(self.spec, canonical_id)
                )
            except Exception as e:
                logger.warning(
                    "Mirror %s delete failed for %s %s: %s",
                    mirror.name,
                    self.entity_type,
                    canonical_id,
                    e,
                )
                errors[mirror.name] = str(e)
                first_error = first_error or e

        forward = mapping_key(self._canonical_source, canonical_id)
        target = await self.cache.get(forward, codec=STR_CODEC)
        if target is not None:
            await self.cache.delete(mapping_key(self._mirror_source, target))
        await self.cache.delete(forward)
        await self.cache.delete(record_key(self.entity_type, canonical_id))

        if errors:
            raise SyncItemFailedException(self.entity_type, canonical_id, errors) from first_error
        logger.info("Removed %s %s from mirrors", self.entity_type, canonical_id)

    async def clear_mappings(self) -> int:
        """Delete every identity mapping of this entity type; return the count."""
        removed = await self.cache.delete_by_pattern(mapping_pattern(self._canonical_source))
        removed += await self.cache.delete_by_pattern(mapping_pattern(self._mirror_source))
        logger.info("Cleared %s %s mapping keys", removed, self.entity_type)
        return removed
