"""DTOs for saga execution."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

R = TypeVar("R")


@dataclass(frozen=True)
class SagaStep(Generic[R]):
    """One saga step: forward() produces a result, compensate(result) undoes it."""

    forward: Callable[[], Awaitable[R]]
    compensate: Callable[[R], Awaitable[Any]]
    name: str = ""

    def label(self, index: int) -> str:
        return self.name or f"step-{index}"
