"""Domain exceptions for crossstore.

Every error raised by the consistency layer derives from CrossStoreException
so service processes can map them uniformly. Callback and store errors
raised by collaborators are re-raised unchanged; these types are only used
where the layer itself has something to report.
"""

from typing import Any


class CrossStoreException(Exception):
    """Base exception for all crossstore errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. key, entity_type).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class BackendUnavailableException(CrossStoreException):
    """Cache backend failed or its circuit is open.

    Internal to ServiceCache: converted to a miss / False / 0 at its boundary.
    """

    def __init__(self, service: str, reason: str) -> None:
        super().__init__(
            f"Cache backend unavailable for service {service!r}: {reason}",
            "BACKEND_UNAVAILABLE",
            {"service": service, "reason": reason},
        )


class LockTimeoutException(CrossStoreException):
    """Lock could not be acquired within the retry policy. Retryable by the caller."""

    def __init__(self, key: str, attempts: int) -> None:
        super().__init__(
            f"Failed to acquire lock {key!r} after {attempts} attempts",
            "LOCK_TIMEOUT",
            {"key": key, "attempts": attempts},
        )


class TransactionFailedException(CrossStoreException):
    """Hybrid transaction left store A committed while store B failed to commit.

    Raised from the commit error. The stores are inconsistent until the next
    reconciliation sweep repairs them.
    """

    def __init__(self, committed: list[str], failed: str, reason: str) -> None:
        super().__init__(
            f"Partial commit: {', '.join(committed)} committed, {failed} failed: {reason}",
            "TRANSACTION_PARTIAL_COMMIT",
            {"committed": committed, "failed": failed, "reason": reason},
        )


class CompensationFailedException(CrossStoreException):
    """A saga compensation raised. Reported for manual reconciliation, never raised over the saga error."""

    def __init__(self, step_index: int, step_name: str, reason: str) -> None:
        super().__init__(
            f"Compensation for step {step_index} ({step_name}) failed: {reason}",
            "COMPENSATION_FAILED",
            {"step_index": step_index, "step_name": step_name, "reason": reason},
        )


class CanonicalRecordNotFoundException(CrossStoreException):
    """Canonical record to sync does not exist."""

    def __init__(self, entity_type: str, canonical_id: str) -> None:
        super().__init__(
            f"{entity_type} not found in canonical store: {canonical_id}",
            "CANONICAL_RECORD_NOT_FOUND",
            {"entity_type": entity_type, "canonical_id": canonical_id},
        )


class TransientStoreException(CrossStoreException):
    """Retryable mirror-store failure (connection drop, timeout, 5xx)."""

    def __init__(self, store: str, reason: str) -> None:
        super().__init__(
            f"Transient failure in {store}: {reason}",
            "TRANSIENT_STORE_ERROR",
            {"store": store, "reason": reason},
        )


class SyncItemFailedException(CrossStoreException):
    """One or more mirror writes for a canonical record failed."""

    def __init__(
        self, entity_type: str, canonical_id: str, errors: dict[str, str]
    ) -> None:
        super().__init__(
            f"Sync of {entity_type} {canonical_id} failed for: {', '.join(sorted(errors))}",
            "SYNC_ITEM_FAILED",
            {"entity_type": entity_type, "canonical_id": canonical_id, "errors": errors},
        )
