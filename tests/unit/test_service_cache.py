"""Tests for ServiceCache: namespacing, degradation, atomic primitives, circuit breaker."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis
from pydantic import BaseModel

from crossstore.domain.enums import CircuitStatus
from crossstore.infrastructure.cache.circuit_breaker import CircuitBreaker
from crossstore.infrastructure.cache.codecs import STR_CODEC, PydanticCodec
from crossstore.infrastructure.cache.keys import build_key
from crossstore.infrastructure.cache.redis_cache import ServiceCache


class Profile(BaseModel):
    name: str
    plan: str


def _failing_client() -> MagicMock:
    client = MagicMock()
    client.get = AsyncMock(side_effect=redis.ConnectionError("connection refused"))
    client.set = AsyncMock(side_effect=redis.ConnectionError("connection refused"))
    client.delete = AsyncMock(side_effect=redis.ConnectionError("connection refused"))
    client.exists = AsyncMock(side_effect=redis.ConnectionError("connection refused"))
    return client


@pytest.mark.parametrize(
    "value",
    [
        {"plan": "pro", "seats": 3},
        ["a", "b"],
        "plain",
        42,
        True,
    ],
)
async def test_set_then_get_returns_value(cache: ServiceCache, value) -> None:
    """A set followed by a get returns the value while the backend is healthy."""
    assert await cache.set("profile:u1", value, ttl_seconds=60) is True
    assert await cache.get("profile:u1") == value


async def test_keys_are_prefixed_with_global_prefix_and_service(cache, fake_redis) -> None:
    await cache.set("profile:u1", {"a": 1})
    assert await fake_redis.exists("sap:sync:profile:u1") == 1
    assert cache.full_key("profile:u1") == "sap:sync:profile:u1"


async def test_same_key_in_two_services_does_not_collide(fake_redis, clock) -> None:
    auth = ServiceCache(fake_redis, "auth", CircuitBreaker("auth", clock=clock))
    user = ServiceCache(fake_redis, "user", CircuitBreaker("user", clock=clock))
    await auth.set("session:1", "auth-value", codec=STR_CODEC)
    await user.set("session:1", "user-value", codec=STR_CODEC)
    assert await auth.get("session:1", codec=STR_CODEC) == "auth-value"
    assert await user.get("session:1", codec=STR_CODEC) == "user-value"


async def test_ttl_is_applied(cache, fake_redis) -> None:
    await cache.set("profile:u1", {"a": 1}, ttl_seconds=30)
    ttl = await fake_redis.ttl("sap:sync:profile:u1")
    assert 0 < ttl <= 30


async def test_get_missing_key_returns_none(cache) -> None:
    assert await cache.get("profile:missing") is None


async def test_get_undecodable_payload_is_a_miss(cache, fake_redis) -> None:
    await fake_redis.set("sap:sync:profile:bad", "{not json")
    assert await cache.get("profile:bad") is None


async def test_set_unserializable_value_returns_false(cache) -> None:
    assert await cache.set("profile:obj", object()) is False


async def test_json_codec_handles_datetimes(cache) -> None:
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    await cache.set("event:1", {"at": when})
    assert await cache.get("event:1") == {"at": "2024-05-01T12:00:00+00:00"}


async def test_delete_is_idempotent(cache) -> None:
    await cache.set("profile:u1", {"a": 1})
    assert await cache.delete("profile:u1") is True
    assert await cache.delete("profile:u1") is True
    assert await cache.get("profile:u1") is None


async def test_exists(cache) -> None:
    assert await cache.exists("profile:u1") is False
    await cache.set("profile:u1", {"a": 1})
    assert await cache.exists("profile:u1") is True


async def test_delete_by_pattern_counts_and_stays_in_namespace(cache, fake_redis, clock) -> None:
    other = ServiceCache(fake_redis, "auth", CircuitBreaker("auth", clock=clock))
    for i in range(3):
        await cache.set(f"profile:{i}", i)
    await cache.set("session:1", "keep")
    await other.set("profile:0", "other-service")

    assert await cache.delete_by_pattern("profile:*") == 3
    assert await cache.exists("session:1") is True
    assert await other.get("profile:0") == "other-service"


async def test_delete_by_pattern_with_no_matches_returns_zero(cache) -> None:
    assert await cache.delete_by_pattern("nothing:*") == 0


async def test_keys_returns_relative_keys(cache) -> None:
    await cache.set("profile:1", 1)
    await cache.set("profile:2", 2)
    await cache.set("other:1", 1)
    assert sorted(await cache.keys("profile:*")) == ["profile:1", "profile:2"]


async def test_set_if_absent_only_creates_once(cache, fake_redis) -> None:
    assert await cache.set_if_absent("lock:r", "t1", 10) is True
    assert await cache.set_if_absent("lock:r", "t2", 10) is False
    assert await fake_redis.get("sap:sync:lock:r") == "t1"
    assert 0 < await fake_redis.ttl("sap:sync:lock:r") <= 10


async def test_compare_and_delete_requires_matching_value(cache, fake_redis) -> None:
    await cache.set_if_absent("lock:r", "t1", 10)
    assert await cache.compare_and_delete("lock:r", "other") is False
    assert await fake_redis.get("sap:sync:lock:r") == "t1"
    assert await cache.compare_and_delete("lock:r", "t1") is True
    assert await fake_redis.get("sap:sync:lock:r") is None


async def test_compare_and_delete_missing_key_returns_false(cache) -> None:
    assert await cache.compare_and_delete("lock:none", "t1") is False


async def test_get_or_load_reads_through_once(cache) -> None:
    loader = AsyncMock(return_value={"v": 1})
    assert await cache.get_or_load("profile:u1", loader, ttl_seconds=60) == {"v": 1}
    assert await cache.get_or_load("profile:u1", loader, ttl_seconds=60) == {"v": 1}
    loader.assert_awaited_once()


async def test_get_or_load_does_not_cache_none(cache) -> None:
    loader = AsyncMock(return_value=None)
    assert await cache.get_or_load("profile:u1", loader) is None
    assert await cache.get_or_load("profile:u1", loader) is None
    assert loader.await_count == 2


async def test_typed_namespace_round_trips_model(cache, fake_redis) -> None:
    profiles = cache.namespace("profile", PydanticCodec(Profile), default_ttl_seconds=120)
    await profiles.set("u1", Profile(name="Ada", plan="pro"))
    assert await profiles.get("u1") == Profile(name="Ada", plan="pro")
    assert await profiles.exists("u1") is True
    assert 0 < await fake_redis.ttl("sap:sync:profile:u1") <= 120
    assert await profiles.clear() == 1
    assert await profiles.get("u1") is None


async def test_typed_namespace_invalid_payload_is_a_miss(cache, fake_redis) -> None:
    profiles = cache.namespace("profile", PydanticCodec(Profile))
    await fake_redis.set("sap:sync:profile:u1", '{"name": "Ada"}')
    assert await profiles.get("u1") is None


async def test_backend_errors_degrade_to_miss_false_and_zero(clock) -> None:
    client = _failing_client()
    cache = ServiceCache(client, "sync", CircuitBreaker("sync", clock=clock))
    assert await cache.get("profile:u1") is None
    assert await cache.set("profile:u1", 1) is False
    assert await cache.exists("profile:u1") is False


async def test_circuit_opens_after_threshold_and_short_circuits(clock) -> None:
    """After N consecutive failures, calls within the cooldown never reach the backend."""
    client = _failing_client()
    breaker = CircuitBreaker("sync", failure_threshold=3, cooldown_seconds=30, clock=clock)
    cache = ServiceCache(client, "sync", breaker)

    for _ in range(3):
        assert await cache.get("profile:u1") is None
    assert client.get.await_count == 3
    assert breaker.status == CircuitStatus.OPEN

    for _ in range(5):
        assert await cache.get("profile:u1") is None
        assert await cache.set("profile:u1", 1) is False
    assert client.get.await_count == 3
    assert client.set.await_count == 0

    clock.advance(29)
    assert await cache.get("profile:u1") is None
    assert client.get.await_count == 3


async def test_circuit_trial_after_cooldown_closes_on_success(clock) -> None:
    client = _failing_client()
    breaker = CircuitBreaker("sync", failure_threshold=3, cooldown_seconds=30, clock=clock)
    cache = ServiceCache(client, "sync", breaker)
    for _ in range(3):
        await cache.get("profile:u1")

    clock.advance(30)
    client.get = AsyncMock(return_value='"back"')
    assert await cache.get("profile:u1") == "back"
    assert breaker.status == CircuitStatus.CLOSED
    assert breaker.snapshot().failure_count == 0


async def test_circuit_trial_failure_reopens(clock) -> None:
    client = _failing_client()
    breaker = CircuitBreaker("sync", failure_threshold=3, cooldown_seconds=30, clock=clock)
    cache = ServiceCache(client, "sync", breaker)
    for _ in range(3):
        await cache.get("profile:u1")

    clock.advance(31)
    assert await cache.get("profile:u1") is None
    assert client.get.await_count == 4
    assert breaker.status == CircuitStatus.OPEN

    assert await cache.get("profile:u1") is None
    assert client.get.await_count == 4


async def test_command_errors_do_not_open_circuit(cache, fake_redis) -> None:
    """WRONGTYPE from a healthy server degrades that key only."""
    await fake_redis.rpush("sap:sync:record:list", "x")
    for _ in range(3):
        assert await cache.get("record:list") is None
    assert cache.breaker.status == CircuitStatus.CLOSED

    assert await cache.set("record:good", {"v": 1}) is True
    assert await cache.get("record:good") == {"v": 1}


async def test_command_error_during_trial_closes_circuit(clock) -> None:
    client = _failing_client()
    breaker = CircuitBreaker("sync", failure_threshold=3, cooldown_seconds=30, clock=clock)
    cache = ServiceCache(client, "sync", breaker)
    for _ in range(3):
        await cache.get("profile:u1")

    clock.advance(30)
    client.get = AsyncMock(side_effect=redis.ResponseError("WRONGTYPE"))
    assert await cache.get("profile:u1") is None
    assert breaker.status == CircuitStatus.CLOSED


async def test_health_reports_metrics(clock) -> None:
    client = MagicMock()
    client.info = AsyncMock(
        return_value={
            "uptime_in_seconds": 120,
            "connected_clients": 4,
            "used_memory_human": "1.2M",
            "keyspace_hits": 75,
            "keyspace_misses": 25,
        }
    )
    client.dbsize = AsyncMock(return_value=10)
    cache = ServiceCache(client, "auth", CircuitBreaker("auth", clock=clock))

    health = await cache.health()

    assert health == {
        "service": "auth",
        "circuit": "closed",
        "uptime_seconds": 120,
        "connected_clients": 4,
        "used_memory": "1.2M",
        "total_keys": 10,
        "hit_rate": "75.00%",
    }


async def test_health_and_ping_when_backend_down(clock) -> None:
    client = MagicMock()
    client.info = AsyncMock(side_effect=redis.ConnectionError("down"))
    client.ping = AsyncMock(side_effect=redis.ConnectionError("down"))
    cache = ServiceCache(client, "auth", CircuitBreaker("auth", clock=clock))
    assert await cache.health() is None
    assert await cache.ping() is False


async def test_ping_healthy(cache) -> None:
    assert await cache.ping() is True


def test_build_key_allows_colons_in_identifier() -> None:
    assert build_key("mapping", "user.canonical:abc") == "mapping:user.canonical:abc"
