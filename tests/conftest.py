"""Pytest configuration and fixtures for crossstore.

Redis behaviour runs against fakeredis; stores are in-memory fakes with the
same contracts as the Firestore/SQL implementations. DB-dependent fixtures
skip unless DATABASE_URL points at PostgreSQL.
"""

import os
from typing import Any

import fakeredis
import pytest

from crossstore.application.dtos.sync import CanonicalRecord
from crossstore.domain.exceptions import TransientStoreException
from crossstore.infrastructure.cache.circuit_breaker import CircuitBreaker
from crossstore.infrastructure.cache.redis_cache import ServiceCache
from crossstore.shared.utils.generators import generate_cuid


class FakeClock:
    """Manually advanced monotonic clock for breaker tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class InMemoryCanonicalStore:
    """ICanonicalStore over a dict, ordered by id like the Firestore store."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.find_by_id_calls = 0

    async def find_by_id(self, record_id: str) -> CanonicalRecord | None:
        self.find_by_id_calls += 1
        data = self.records.get(record_id)
        if data is None:
            return None
        return CanonicalRecord(id=record_id, data=dict(data))

    async def find(self, offset: int = 0, limit: int = 100) -> list[CanonicalRecord]:
        ids = sorted(self.records)[offset : offset + limit]
        return [CanonicalRecord(id=i, data=dict(self.records[i])) for i in ids]

    async def upsert(self, record_id: str, data: dict[str, Any]) -> CanonicalRecord:
        self.records[record_id] = dict(data)
        return CanonicalRecord(id=record_id, data=dict(data))

    async def delete_by_id(self, record_id: str) -> bool:
        return self.records.pop(record_id, None) is not None


class InMemoryRelationalMirror:
    """IMirrorStore keyed by (entity_type, business_key); ids stable across upserts."""

    def __init__(self, name: str = "relational") -> None:
        self.name = name
        self.rows: dict[tuple[str, str], dict[str, Any]] = {}
        self.upsert_calls = 0
        self.fail_for: set[str] = set()

    async def upsert(self, spec, record: CanonicalRecord) -> str:
        self.upsert_calls += 1
        if record.id in self.fail_for:
            raise RuntimeError(f"constraint violation for {record.id}")
        row = spec.relational_row(record)
        for key, existing in list(self.rows.items()):
            if key[0] == spec.entity_type and existing["canonical_id"] == record.id:
                if key[1] != row.business_key:
                    del self.rows[key]
                    self.rows[(spec.entity_type, row.business_key)] = existing
                existing["attributes"] = row.attributes
                return existing["id"]
        key = (spec.entity_type, row.business_key)
        existing = self.rows.get(key)
        if existing is None:
            existing = {"id": generate_cuid(), "canonical_id": record.id}
            self.rows[key] = existing
        existing["canonical_id"] = record.id
        existing["attributes"] = row.attributes
        return existing["id"]

    async def delete(self, spec, canonical_id: str) -> bool:
        for key, existing in list(self.rows.items()):
            if key[0] == spec.entity_type and existing["canonical_id"] == canonical_id:
                del self.rows[key]
                return True
        return False


class InMemorySearchMirror:
    """IMirrorStore keyed by canonical id (returns no mirror id)."""

    def __init__(self, name: str = "search") -> None:
        self.name = name
        self.documents: dict[tuple[str, str], Any] = {}
        self.transient_failures = 0

    async def upsert(self, spec, record: CanonicalRecord) -> None:
        if self.transient_failures > 0:
            self.transient_failures -= 1
            raise TransientStoreException(self.name, "connection reset")
        self.documents[(spec.entity_type, record.id)] = spec.search_document(record)
        return None

    async def delete(self, spec, canonical_id: str) -> bool:
        return self.documents.pop((spec.entity_type, canonical_id), None) is not None


@pytest.fixture
def fake_redis():
    """Async fakeredis client with its own server (isolated per test)."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker("sync", failure_threshold=3, cooldown_seconds=30, clock=clock)


@pytest.fixture
def cache(fake_redis, breaker: CircuitBreaker) -> ServiceCache:
    """ServiceCache for the 'sync' service over fakeredis."""
    return ServiceCache(fake_redis, "sync", breaker, global_prefix="sap:")


@pytest.fixture
def lock_cache(fake_redis, clock: FakeClock) -> ServiceCache:
    """ServiceCache for the 'locks' service over fakeredis."""
    return ServiceCache(
        fake_redis, "locks", CircuitBreaker("locks", clock=clock), global_prefix="sap:"
    )


@pytest.fixture
def canonical_store() -> InMemoryCanonicalStore:
    return InMemoryCanonicalStore()


@pytest.fixture
def relational_mirror() -> InMemoryRelationalMirror:
    return InMemoryRelationalMirror()


@pytest.fixture
def search_mirror() -> InMemorySearchMirror:
    return InMemorySearchMirror()


@pytest.fixture
async def session_factory():
    """Session factory on a real PostgreSQL (tables created, then dropped).

    Requires DATABASE_URL (postgresql+asyncpg://...). Skips when not set.
    Use @pytest.mark.requires_db on tests using this fixture; run without DB
    via: pytest -m 'not requires_db'.
    """
    url = os.environ.get("DATABASE_URL", "")
    if "postgresql" not in url:
        pytest.skip("Postgres not configured: set DATABASE_URL=postgresql+asyncpg://...")

    from sqlalchemy import text
    from sqlalchemy.ext.asyncio import create_async_engine

    from crossstore.infrastructure.persistence.database import Base, build_session_factory
    from crossstore.infrastructure.persistence.models import search_document
    from crossstore.infrastructure.persistence.models.mirror_record import MirrorRecord

    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(search_document.SEARCH_VECTOR_FUNCTION_SQL))
        await conn.execute(text(search_document.SEARCH_VECTOR_TRIGGER_SQL))
    try:
        yield build_session_factory(engine)
    finally:
        async with engine.begin() as conn:
            await conn.execute(
                MirrorRecord.__table__.delete().where(
                    MirrorRecord.__table__.c.entity_type.like("test-%")
                )
            )
            await conn.execute(
                search_document.SearchDocument.__table__.delete().where(
                    search_document.SearchDocument.__table__.c.entity_type.like("test-%")
                )
            )
        await engine.dispose()
