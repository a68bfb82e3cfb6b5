"""Periodic reconciliation sweep repairing mirrors and mappings.

Mitigates (does not eliminate) the partial-commit window of hybrid
transactions and any sync that was lost to a crash or outage.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from crossstore.application.dtos.sync import SyncReport
from crossstore.application.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


async def run_reconciliation_pass(
    orchestrators: Sequence[SyncOrchestrator],
    stop_event: asyncio.Event | None = None,
) -> list[SyncReport]:
    """Run sync_all for each orchestrator in turn; one failing sweep does not stop the rest."""
    reports: list[SyncReport] = []
    for orchestrator in orchestrators:
        if stop_event is not None and stop_event.is_set():
            break
        try:
            reports.append(await orchestrator.sync_all(stop_event=stop_event))
        except Exception:
            logger.exception("Reconciliation sweep of %s failed", orchestrator.entity_type)
    return reports


async def run_reconciliation_loop(
    orchestrators: Sequence[SyncOrchestrator],
    interval_seconds: float,
    stop_event: asyncio.Event,
) -> None:
    """Sweep every interval_seconds until stop_event is set.

    Start as a background task from core_lifespan; setting stop_event (or
    cancelling the task) stops the loop between items.
    """
    logger.info(
        "Reconciliation loop started for %s (every %ss)",
        ", ".join(o.entity_type for o in orchestrators),
        interval_seconds,
    )
    try:
        while not stop_event.is_set():
            await run_reconciliation_pass(orchestrators, stop_event)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
    except asyncio.CancelledError:
        logger.info("Reconciliation loop cancelled")
        raise
    logger.info("Reconciliation loop stopped")
