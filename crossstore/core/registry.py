"""Process-wide component registry and its lifespan.

Single place for startup/shutdown wiring (SRP). Built once per process by
core_lifespan() and passed to service code; nothing in crossstore holds
import-time global clients or breaker maps.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import redis.asyncio as redis

from crossstore.application.interfaces.repositories import IMirrorStore
from crossstore.application.services.compensation_runner import CompensationRunner
from crossstore.application.services.entity_sync_specs import DEFAULT_SYNC_SPECS, EntitySyncSpec
from crossstore.application.services.reconciliation import run_reconciliation_loop
from crossstore.application.services.sync_orchestrator import SyncOrchestrator
from crossstore.application.services.transaction_coordinator import TransactionCoordinator
from crossstore.core.config import Settings, get_settings
from crossstore.core.constants import SERVICE_LOCKS, SERVICE_SYNC, db_for_service
from crossstore.infrastructure.cache.circuit_breaker import CircuitBreakerRegistry
from crossstore.infrastructure.cache.lock_manager import LockManager
from crossstore.infrastructure.cache.redis_cache import ServiceCache
from crossstore.infrastructure.firebase._rest_client import FirestoreRESTClient
from crossstore.infrastructure.firebase.client import build_firestore_client
from crossstore.infrastructure.firebase.repositories import FirestoreCanonicalStore
from crossstore.infrastructure.firebase.transactional_store_firestore import (
    FirestoreTransactionalStore,
)
from crossstore.infrastructure.persistence.database import build_engine, build_session_factory
from crossstore.infrastructure.persistence.repositories import (
    RelationalMirrorRepository,
    SearchMirrorRepository,
)
from crossstore.infrastructure.persistence.transactional_store_sql import (
    SqlAlchemyTransactionalStore,
)
from crossstore.shared.telemetry.telemetry import TelemetryConfig
from crossstore.shared.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

RedisFactory = Callable[[int], redis.Redis]


class CoreRegistry:
    """Holds every shared client and component for one process.

    Redis clients are created per logical DB (SERVICE_DB_MAPPING) and shared
    by all caches on that DB; one CircuitBreaker per service is shared by all
    caches of that service.
    """

    def __init__(self, settings: Settings, redis_factory: RedisFactory | None = None) -> None:
        self.settings = settings
        self.breakers = CircuitBreakerRegistry(
            failure_threshold=settings.circuit_failure_threshold,
            cooldown_seconds=settings.circuit_cooldown_seconds,
        )
        self._redis_factory = redis_factory or self._default_redis
        self._redis_clients: dict[int, redis.Redis] = {}
        self._caches: dict[str, ServiceCache] = {}

        self.coordinator = TransactionCoordinator()
        self.compensation_runner = CompensationRunner()
        self.lock_manager = LockManager(
            self.cache_for(SERVICE_LOCKS),
            retry_policy=RetryPolicy.from_milliseconds(
                settings.lock_max_attempts,
                settings.lock_base_delay_ms,
                settings.lock_max_delay_ms,
                settings.lock_jitter_ms,
            ),
            default_ttl_seconds=settings.lock_default_ttl_seconds,
        )

        self.engine = None
        self.session_factory = None
        self.sql_store: SqlAlchemyTransactionalStore | None = None
        self.relational_mirror: RelationalMirrorRepository | None = None
        self.search_mirror: SearchMirrorRepository | None = None
        self.firestore: FirestoreRESTClient | None = None
        self.document_store: FirestoreTransactionalStore | None = None
        self.orchestrators: dict[str, SyncOrchestrator] = {}
        self.telemetry: TelemetryConfig | None = None
        self._sweep_stop: asyncio.Event | None = None
        self._sweep_task: asyncio.Task[None] | None = None

    def _default_redis(self, db: int) -> redis.Redis:
        s = self.settings
        return redis.Redis(
            host=s.redis_host,
            port=s.redis_port,
            db=db,
            password=s.redis_password.get_secret_value() if s.redis_password else None,
            decode_responses=True,
            socket_connect_timeout=s.redis_socket_timeout,
            socket_timeout=s.redis_socket_timeout,
            max_connections=s.redis_max_connections,
        )

    def redis_for(self, service: str) -> redis.Redis:
        db = db_for_service(service)
        client = self._redis_clients.get(db)
        if client is None:
            client = self._redis_factory(db)
            self._redis_clients[db] = client
        return client

    def cache_for(self, service: str) -> ServiceCache:
        """Return the ServiceCache for a service namespace (created on first use)."""
        cache = self._caches.get(service)
        if cache is None:
            cache = ServiceCache(
                self.redis_for(service),
                service,
                self.breakers.get(service),
                global_prefix=self.settings.cache_global_prefix,
            )
            self._caches[service] = cache
        return cache

    def build_orchestrators(
        self,
        specs: dict[str, EntitySyncSpec] | None = None,
    ) -> dict[str, SyncOrchestrator]:
        """One orchestrator per spec whose canonical and mirror stores are configured."""
        if self.firestore is None:
            return {}
        s = self.settings
        orchestrators: dict[str, SyncOrchestrator] = {}
        for entity_type, spec in (specs or DEFAULT_SYNC_SPECS).items():
            mirrors: list[IMirrorStore] = []
            if spec.has_relational_mirror and self.relational_mirror is not None:
                mirrors.append(self.relational_mirror)
            if spec.has_search_mirror and self.search_mirror is not None:
                mirrors.append(self.search_mirror)
            if not mirrors:
                logger.info("No mirror stores configured for %s; sync disabled", entity_type)
                continue
            orchestrators[entity_type] = SyncOrchestrator(
                spec,
                FirestoreCanonicalStore(self.firestore, spec.collection),
                mirrors,
                self.cache_for(SERVICE_SYNC),
                retry_policy=RetryPolicy(max_attempts=s.sync_mirror_max_attempts),
                record_ttl_seconds=s.sync_record_ttl_seconds,
                page_size=s.sync_page_size,
            )
        return orchestrators

    async def start(self) -> None:
        """Startup order: telemetry, Redis ping, SQL engine, Firestore, orchestrators, sweep."""
        s = self.settings
        if s.telemetry_enabled:
            self.telemetry = TelemetryConfig.from_settings(s)
            self.telemetry.setup_telemetry(
                exporter_type=s.telemetry_exporter,
                otlp_endpoint=s.telemetry_otlp_endpoint,
                sample_rate=s.telemetry_sample_rate,
            )

        for service, cache in self._caches.items():
            if not await cache.ping():
                logger.warning("Redis unreachable for service %s; cache degraded", service)

        self.engine = build_engine(s)
        if self.engine is not None:
            self.session_factory = build_session_factory(self.engine)
            self.sql_store = SqlAlchemyTransactionalStore(self.session_factory)
            self.relational_mirror = RelationalMirrorRepository(self.session_factory)
            self.search_mirror = SearchMirrorRepository(self.session_factory)
        if self.telemetry is not None:
            self.telemetry.instrument(self.engine)

        self.firestore = build_firestore_client(s)
        if self.firestore is not None:
            self.document_store = FirestoreTransactionalStore(self.firestore)

        self.orchestrators = self.build_orchestrators()

        if s.sync_sweep_enabled and self.orchestrators:
            self._sweep_stop = asyncio.Event()
            self._sweep_task = asyncio.create_task(
                run_reconciliation_loop(
                    list(self.orchestrators.values()),
                    s.sync_sweep_interval_seconds,
                    self._sweep_stop,
                )
            )

    async def stop(self) -> None:
        """Shutdown order: sweep task, Redis clients, Firestore, SQL engine, telemetry."""
        if self._sweep_task is not None:
            if self._sweep_stop is not None:
                self._sweep_stop.set()
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                logger.info("Reconciliation task stopped")
            self._sweep_task = None

        for db, client in self._redis_clients.items():
            try:
                await client.aclose()
            except redis.RedisError:
                logger.exception("Closing Redis client for db %s failed", db)
        self._redis_clients.clear()
        logger.info("Redis clients closed")

        if self.firestore is not None:
            await self.firestore.aclose()
            self.firestore = None
            logger.info("Firestore HTTP client closed")

        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database engine disposed")

        if self.telemetry is not None:
            self.telemetry.shutdown()
            self.telemetry = None
            logger.info("Telemetry shutdown complete")


@asynccontextmanager
async def core_lifespan(
    settings: Settings | None = None,
    redis_factory: RedisFactory | None = None,
) -> AsyncIterator[CoreRegistry]:
    """Build the registry, start it, yield it; on exit stop it.

    Example:
        async with core_lifespan() as core:
            await core.lock_manager.with_lock("user:42:balance", body)
    """
    registry = CoreRegistry(settings or get_settings(), redis_factory=redis_factory)
    await registry.start()
    try:
        yield registry
    finally:
        await registry.stop()
