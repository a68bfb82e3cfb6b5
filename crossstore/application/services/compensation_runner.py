"""Saga execution: forward steps in order, reverse-order compensation on failure."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from crossstore.application.dtos.saga import SagaStep
from crossstore.domain.exceptions import CompensationFailedException
from crossstore.shared.telemetry.tracing import add_span_attributes, add_span_event, traced

logger = logging.getLogger(__name__)


class CompensationRunner:
    """Runs saga steps; on the first failure undoes completed steps newest-first.

    A compensation that raises is logged, attached as a note to the original
    error, and handed to failure_sink (e.g. a manual-reconciliation queue).
    It never stops the unwind and never replaces the original error.
    """

    def __init__(
        self,
        failure_sink: Callable[[CompensationFailedException], None] | None = None,
    ) -> None:
        self.failure_sink = failure_sink

    @traced("saga.run")
    async def run(self, steps: Sequence[SagaStep[Any]]) -> list[Any]:
        """Execute steps; return their results, or re-raise the triggering error."""
        completed: list[tuple[int, SagaStep[Any], Any]] = []
        add_span_attributes(saga_steps=len(steps))
        for index, step in enumerate(steps):
            try:
                result = await step.forward()
            except BaseException as error:
                # cancellation mid-saga unwinds too
                logger.error(
                    "Saga step %s (%s) failed: %r; compensating %s completed step(s)",
                    index,
                    step.label(index),
                    error,
                    len(completed),
                )
                await self._unwind(completed, error)
                raise
            completed.append((index, step, result))
        return [result for _, _, result in completed]

    async def _unwind(
        self,
        completed: list[tuple[int, SagaStep[Any], Any]],
        error: BaseException,
    ) -> None:
        for index, step, result in reversed(completed):
            try:
                await step.compensate(result)
            except Exception as comp_error:
                logger.exception(
                    "Compensation for saga step %s (%s) failed; manual reconciliation required",
                    index,
                    step.label(index),
                )
                failure = CompensationFailedException(index, step.label(index), str(comp_error))
                error.add_note(failure.message)
                add_span_event("saga.compensation_failed", failure.details)
                if self.failure_sink is not None:
                    self.failure_sink(failure)
            else:
                logger.info("Compensated saga step %s (%s)", index, step.label(index))
