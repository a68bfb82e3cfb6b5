"""Tests for SyncOrchestrator: idempotent mirroring, identity mapping, sweeps."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from crossstore.application.services.entity_sync_specs import CONTENT_SYNC_SPEC, USER_SYNC_SPEC
from crossstore.application.services.sync_orchestrator import SyncOrchestrator
from crossstore.domain.enums import MappingDirection, SyncOutcome
from crossstore.domain.exceptions import (
    CanonicalRecordNotFoundException,
    SyncItemFailedException,
    TransientStoreException,
)
from crossstore.infrastructure.cache.circuit_breaker import CircuitBreaker
from crossstore.infrastructure.cache.codecs import STR_CODEC
from crossstore.infrastructure.cache.redis_cache import ServiceCache
from crossstore.shared.utils.retry import RetryPolicy


def _user(n: int) -> dict:
    return {
        "email": f"user{n}@example.com",
        "first_name": f"First{n}",
        "last_name": "Tester",
        "role": "user",
        "hashed_password": "secret-hash",
    }


@pytest.fixture
def orchestrator(canonical_store, relational_mirror, search_mirror, cache, sleep_recorder):
    return SyncOrchestrator(
        USER_SYNC_SPEC,
        canonical_store,
        [relational_mirror, search_mirror],
        cache,
        retry_policy=RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=1.0, jitter=0.0),
        record_ttl_seconds=60,
        page_size=2,
        sleep=sleep_recorder,
    )


async def test_sync_entity_writes_mirrors_mapping_and_record(
    orchestrator, canonical_store, relational_mirror, search_mirror, fake_redis
) -> None:
    await canonical_store.upsert("u1", _user(1))

    result = await orchestrator.sync_entity("u1")

    assert result.outcome == SyncOutcome.SUCCEEDED
    assert result.mirrored == ("relational", "search")
    row = relational_mirror.rows[("user", "user1@example.com")]
    assert result.target_id == row["id"]
    assert "hashed_password" not in row["attributes"]
    assert ("user", "u1") in search_mirror.documents
    assert await fake_redis.get("sap:sync:mapping:user.canonical:u1") == row["id"]
    assert await fake_redis.get(f"sap:sync:mapping:user.mirror:{row['id']}") == "u1"
    assert await fake_redis.ttl("sap:sync:mapping:user.canonical:u1") == -1
    assert 0 < await fake_redis.ttl("sap:sync:record:user:u1") <= 60


async def test_sync_entity_twice_is_idempotent(orchestrator, canonical_store, relational_mirror, cache) -> None:
    """Re-syncing an unchanged record creates no duplicate and keeps the mapping."""
    await canonical_store.upsert("u1", _user(1))

    first = await orchestrator.sync_entity("u1")
    mapping_before = await cache.get("mapping:user.canonical:u1", codec=STR_CODEC)
    second = await orchestrator.sync_entity("u1")

    assert len(relational_mirror.rows) == 1
    assert first.target_id == second.target_id
    assert await cache.get("mapping:user.canonical:u1", codec=STR_CODEC) == mapping_before
    assert sorted(await cache.keys("mapping:*")) == sorted(
        ["mapping:user.canonical:u1", f"mapping:user.mirror:{first.target_id}"]
    )


async def test_sync_entity_missing_record_raises(orchestrator) -> None:
    with pytest.raises(CanonicalRecordNotFoundException) as exc_info:
        await orchestrator.sync_entity("nope")
    assert exc_info.value.details == {"entity_type": "user", "canonical_id": "nope"}


async def test_mirror_failure_raises_sync_item_failed_but_keeps_other_writes(
    orchestrator, canonical_store, relational_mirror, search_mirror
) -> None:
    await canonical_store.upsert("u1", _user(1))
    relational_mirror.fail_for.add("u1")

    with pytest.raises(SyncItemFailedException) as exc_info:
        await orchestrator.sync_entity("u1")

    assert list(exc_info.value.details["errors"]) == ["relational"]
    assert ("user", "u1") in search_mirror.documents


async def test_transient_mirror_failures_are_retried(
    orchestrator, canonical_store, search_mirror, sleep_recorder
) -> None:
    await canonical_store.upsert("u1", _user(1))
    search_mirror.transient_failures = 2

    result = await orchestrator.sync_entity("u1")

    assert result.outcome == SyncOutcome.SUCCEEDED
    assert sleep_recorder.delays == [0.1, 0.2]


async def test_transient_failures_beyond_policy_fail_the_item(
    orchestrator, canonical_store, search_mirror
) -> None:
    await canonical_store.upsert("u1", _user(1))
    search_mirror.transient_failures = 5

    with pytest.raises(SyncItemFailedException) as exc_info:
        await orchestrator.sync_entity("u1")
    assert "search" in exc_info.value.details["errors"]


async def test_sync_all_with_one_failing_item_reports_counts(
    orchestrator, canonical_store, relational_mirror
) -> None:
    """N entities, exactly one mirror write fails: success=N-1, failure=1, no exception."""
    for n in range(5):
        await canonical_store.upsert(f"u{n}", _user(n))
    relational_mirror.fail_for.add("u3")

    report = await orchestrator.sync_all()

    assert report.succeeded == 4
    assert report.failed == 1
    assert report.total == 5
    assert report.completed is True
    assert report.next_offset == 5
    assert [f.canonical_id for f in report.failures] == ["u3"]


async def test_sync_all_stops_between_items_and_resumes(orchestrator, canonical_store) -> None:
    for n in range(5):
        await canonical_store.upsert(f"u{n}", _user(n))
    stop = asyncio.Event()
    original = orchestrator._sync_item
    synced = 0

    async def counting_sync_item(record):
        nonlocal synced
        synced += 1
        if synced == 3:
            stop.set()
        return await original(record)

    orchestrator._sync_item = counting_sync_item

    partial = await orchestrator.sync_all(stop_event=stop)
    assert partial.completed is False
    assert partial.succeeded == 3
    assert partial.next_offset == 3

    orchestrator._sync_item = original
    rest = await orchestrator.sync_all(start_offset=partial.next_offset)
    assert rest.completed is True
    assert rest.succeeded == 2
    assert rest.next_offset == 5


def _find_failing_on(canonical_store, calls: set[int]) -> list[int]:
    """Make the canonical store raise a 503 on the given (1-based) find calls."""
    original = canonical_store.find
    seen: list[int] = []

    async def flaky_find(offset: int = 0, limit: int = 100):
        seen.append(offset)
        if len(seen) in calls:
            raise TransientStoreException("firestore", "HTTP 503")
        return await original(offset=offset, limit=limit)

    canonical_store.find = flaky_find
    return seen


async def test_sync_all_retries_transient_page_fetch(
    orchestrator, canonical_store, sleep_recorder
) -> None:
    for n in range(5):
        await canonical_store.upsert(f"u{n}", _user(n))
    offsets = _find_failing_on(canonical_store, {2})

    report = await orchestrator.sync_all()

    assert report.completed is True
    assert report.succeeded == 5
    assert offsets == [0, 2, 2, 4]
    assert sleep_recorder.delays == [0.1]


async def test_sync_all_page_fetch_exhausting_retries_returns_partial_report(
    orchestrator, canonical_store
) -> None:
    for n in range(5):
        await canonical_store.upsert(f"u{n}", _user(n))
    _find_failing_on(canonical_store, {2, 3, 4})

    partial = await orchestrator.sync_all()

    assert partial.completed is False
    assert partial.succeeded == 2
    assert partial.failed == 0
    assert partial.next_offset == 2

    rest = await orchestrator.sync_all(start_offset=partial.next_offset)
    assert rest.completed is True
    assert rest.succeeded == 3
    assert rest.next_offset == 5


async def test_sync_all_on_empty_store(orchestrator) -> None:
    report = await orchestrator.sync_all()
    assert report.completed is True
    assert report.total == 0


async def test_resolve_mapping_not_found_is_a_result(orchestrator) -> None:
    resolution = await orchestrator.resolve_mapping("u1", MappingDirection.CANONICAL_TO_MIRROR)
    assert resolution.found is False
    assert resolution.target_id is None


async def test_resolve_mapping_both_directions(orchestrator, canonical_store) -> None:
    await canonical_store.upsert("u1", _user(1))
    result = await orchestrator.sync_entity("u1")

    forward = await orchestrator.resolve_mapping("u1", MappingDirection.CANONICAL_TO_MIRROR)
    reverse = await orchestrator.resolve_mapping(
        result.target_id, MappingDirection.MIRROR_TO_CANONICAL
    )
    assert forward.found and forward.target_id == result.target_id
    assert reverse.found and reverse.target_id == "u1"


async def test_search_only_entity_has_no_mapping(
    canonical_store, search_mirror, cache, sleep_recorder
) -> None:
    orchestrator = SyncOrchestrator(
        CONTENT_SYNC_SPEC, canonical_store, [search_mirror], cache, sleep=sleep_recorder
    )
    await canonical_store.upsert(
        "c1", {"title": "Mercury retrograde", "slug": "mercury-retrograde", "content": "..."}
    )

    result = await orchestrator.sync_entity("c1")

    assert result.target_id is None
    assert search_mirror.documents[("content", "c1")].title == "Mercury retrograde"
    assert await cache.keys("mapping:*") == []


async def test_get_record_reads_through(orchestrator, canonical_store) -> None:
    await canonical_store.upsert("u1", _user(1))

    first = await orchestrator.get_record("u1")
    second = await orchestrator.get_record("u1")

    assert first is not None and second is not None
    assert second.data["email"] == "user1@example.com"
    assert canonical_store.find_by_id_calls == 1
    assert await orchestrator.get_record("missing") is None


async def test_remove_entity_purges_mirrors_mappings_and_record(
    orchestrator, canonical_store, relational_mirror, search_mirror, cache
) -> None:
    await canonical_store.upsert("u1", _user(1))
    await orchestrator.sync_entity("u1")

    await orchestrator.remove_entity("u1")

    assert relational_mirror.rows == {}
    assert search_mirror.documents == {}
    assert await cache.keys("mapping:*") == []
    assert await cache.exists("record:user:u1") is False


async def test_clear_mappings(orchestrator, canonical_store) -> None:
    for n in range(3):
        await canonical_store.upsert(f"u{n}", _user(n))
    await orchestrator.sync_all()

    assert await orchestrator.clear_mappings() == 6
    resolution = await orchestrator.resolve_mapping("u0", MappingDirection.CANONICAL_TO_MIRROR)
    assert resolution.found is False


async def test_changed_business_key_keeps_mirror_id_and_single_reverse_mapping(
    orchestrator, canonical_store, relational_mirror, cache
) -> None:
    await canonical_store.upsert("u1", _user(1))
    first = await orchestrator.sync_entity("u1")
    await canonical_store.upsert("u1", {**_user(1), "email": "renamed@example.com"})

    second = await orchestrator.sync_entity("u1")

    assert second.target_id == first.target_id
    assert list(relational_mirror.rows) == [("user", "renamed@example.com")]
    assert len(await cache.keys("mapping:user.mirror:*")) == 1


async def test_degraded_cache_does_not_fail_sync(
    canonical_store, relational_mirror, search_mirror, clock, sleep_recorder
) -> None:
    client = MagicMock()
    client.get = AsyncMock(side_effect=redis.ConnectionError("down"))
    client.set = AsyncMock(side_effect=redis.ConnectionError("down"))
    cache = ServiceCache(client, "sync", CircuitBreaker("sync", clock=clock))
    orchestrator = SyncOrchestrator(
        USER_SYNC_SPEC, canonical_store, [relational_mirror, search_mirror], cache,
        sleep=sleep_recorder,
    )
    await canonical_store.upsert("u1", _user(1))

    result = await orchestrator.sync_entity("u1")

    assert result.outcome == SyncOutcome.SUCCEEDED
    assert len(relational_mirror.rows) == 1
