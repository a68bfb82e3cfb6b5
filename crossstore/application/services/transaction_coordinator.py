"""Single-store and best-effort two-store transactional execution.

Hybrid mode is NOT a distributed transaction: both callbacks run inside their
own store transactions, then store A commits, then store B commits. If the
process dies (or B's commit fails) between the two commits, A's effects are
durable and B's are not. That window is reported as
TransactionFailedException and repaired by the reconciliation sweep
(SyncOrchestrator.sync_all), not prevented here.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from crossstore.application.dtos.transaction import HybridResult
from crossstore.application.interfaces.repositories import TransactionalStore
from crossstore.domain.exceptions import TransactionFailedException
from crossstore.shared.telemetry.tracing import add_span_attributes, traced

logger = logging.getLogger(__name__)

A = TypeVar("A")
B = TypeVar("B")
R = TypeVar("R")
HA = TypeVar("HA")
HB = TypeVar("HB")


class TransactionCoordinator:
    """Runs callbacks inside store transactions with guaranteed rollback/release."""

    async def _rollback_quietly(self, store: TransactionalStore[Any], handle: Any) -> None:
        """Roll back; a rollback error is logged and never replaces the caller's error."""
        try:
            await store.rollback(handle)
        except Exception:
            logger.exception("Rollback failed for store %s", store.name)
        else:
            logger.error("Transaction rolled back on %s", store.name)

    async def _release_quietly(self, store: TransactionalStore[Any], handle: Any) -> None:
        try:
            await store.release(handle)
        except Exception:
            logger.exception("Releasing transaction handle failed for store %s", store.name)

    async def run(
        self,
        store: TransactionalStore[HA],
        callback: Callable[[HA], Awaitable[R]],
    ) -> R:
        """begin -> callback(handle) -> commit; on error rollback and re-raise.

        The handle is released on every path.
        """
        handle = await store.begin()
        try:
            try:
                result = await callback(handle)
                await store.commit(handle)
            except BaseException:
                await self._rollback_quietly(store, handle)
                raise
            return result
        finally:
            await self._release_quietly(store, handle)

    @traced("transaction.run_hybrid")
    async def run_hybrid(
        self,
        store_a: TransactionalStore[HA],
        callback_a: Callable[[HA], Awaitable[A]],
        store_b: TransactionalStore[HB],
        callback_b: Callable[[HB], Awaitable[B]],
    ) -> HybridResult[A, B]:
        """Run two callbacks in two stores; commit A then B.

        Raises:
            Exception: the original callback (or A-commit) error, after both
                stores were rolled back.
            TransactionFailedException: A committed but B's commit failed;
                chained from B's error.
        """
        add_span_attributes(store_a=store_a.name, store_b=store_b.name)
        handle_a = await store_a.begin()
        try:
            handle_b = await store_b.begin()
        except BaseException:
            await self._rollback_quietly(store_a, handle_a)
            await self._release_quietly(store_a, handle_a)
            raise
        try:
            try:
                result_a = await callback_a(handle_a)
                result_b = await callback_b(handle_b)
                await store_a.commit(handle_a)
            except BaseException:
                await self._rollback_quietly(store_a, handle_a)
                await self._rollback_quietly(store_b, handle_b)
                raise
            try:
                await store_b.commit(handle_b)
            except Exception as e:
                logger.critical(
                    "Hybrid transaction partially committed: %s committed, %s failed: %s",
                    store_a.name,
                    store_b.name,
                    e,
                )
                await self._rollback_quietly(store_b, handle_b)
                raise TransactionFailedException([store_a.name], store_b.name, str(e)) from e
            return HybridResult(a=result_a, b=result_b)
        finally:
            await self._release_quietly(store_b, handle_b)
            await self._release_quietly(store_a, handle_a)
