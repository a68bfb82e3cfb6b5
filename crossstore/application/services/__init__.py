"""Application services: transactions, sagas, synchronization."""

from crossstore.application.services.compensation_runner import CompensationRunner
from crossstore.application.services.entity_sync_specs import (
    CONTENT_SYNC_SPEC,
    DEFAULT_SYNC_SPECS,
    USER_SYNC_SPEC,
    EntitySyncSpec,
)
from crossstore.application.services.reconciliation import (
    run_reconciliation_loop,
    run_reconciliation_pass,
)
from crossstore.application.services.sync_orchestrator import SyncOrchestrator
from crossstore.application.services.transaction_coordinator import TransactionCoordinator

__all__ = [
    "CONTENT_SYNC_SPEC",
    "DEFAULT_SYNC_SPECS",
    "USER_SYNC_SPEC",
    "CompensationRunner",
    "EntitySyncSpec",
    "SyncOrchestrator",
    "TransactionCoordinator",
    "run_reconciliation_loop",
    "run_reconciliation_pass",
]
