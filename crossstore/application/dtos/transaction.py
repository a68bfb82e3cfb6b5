"""DTOs for transactional execution."""

from dataclasses import dataclass
from typing import Generic, TypeVar

A = TypeVar("A")
B = TypeVar("B")


@dataclass(frozen=True)
class HybridResult(Generic[A, B]):
    """Callback results of a committed two-store transaction."""

    a: A
    b: B
