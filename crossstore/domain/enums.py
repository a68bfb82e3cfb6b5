"""Domain enums."""

from enum import Enum


class CircuitStatus(str, Enum):
    """Circuit breaker state for one service namespace."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class MappingDirection(str, Enum):
    """Direction of an identity-mapping lookup."""

    CANONICAL_TO_MIRROR = "canonical_to_mirror"
    MIRROR_TO_CANONICAL = "mirror_to_canonical"


class SyncOutcome(str, Enum):
    """Result of syncing one canonical record."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
