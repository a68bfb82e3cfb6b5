"""Per-service circuit breaker for the shared cache backend.

closed -> open after `failure_threshold` consecutive failures;
open -> half-open once `cooldown_seconds` have passed since the last failure,
admitting exactly one trial call; trial success -> closed (counters reset),
trial failure -> open with a fresh cooldown.

Transitions are plain synchronous methods guarded by a threading.Lock, so a
transition never spans an await.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from crossstore.core.constants import CIRCUIT_COOLDOWN_SECONDS, CIRCUIT_FAILURE_THRESHOLD
from crossstore.domain.enums import CircuitStatus

logger = logging.getLogger(__name__)


@dataclass
class CircuitState:
    """Mutable breaker state for one service. Lives for the process lifetime."""

    failure_count: int = 0
    last_failure_at: float | None = None
    is_open: bool = False
    trial_in_flight: bool = False


class CircuitBreaker:
    """Circuit breaker guarding one service namespace of the cache backend."""

    def __init__(
        self,
        service: str,
        failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        cooldown_seconds: float = CIRCUIT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.service = service
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._state = CircuitState()
        self._mutex = threading.Lock()

    @property
    def status(self) -> CircuitStatus:
        with self._mutex:
            if not self._state.is_open:
                return CircuitStatus.CLOSED
            if self._state.trial_in_flight or self._cooldown_elapsed():
                return CircuitStatus.HALF_OPEN
            return CircuitStatus.OPEN

    def snapshot(self) -> CircuitState:
        """Return a copy of the current state (for health output and tests)."""
        with self._mutex:
            s = self._state
            return CircuitState(s.failure_count, s.last_failure_at, s.is_open, s.trial_in_flight)

    def _cooldown_elapsed(self) -> bool:
        last = self._state.last_failure_at
        return last is not None and self._clock() - last >= self.cooldown_seconds

    def allow_request(self) -> bool:
        """Return True if a backend call may proceed now.

        While open and within cooldown, or while another caller's trial is in
        flight, returns False without touching the backend.
        """
        with self._mutex:
            if not self._state.is_open:
                return True
            if self._state.trial_in_flight or not self._cooldown_elapsed():
                return False
            self._state.trial_in_flight = True
        logger.info("[%s] Cache circuit half-open, allowing trial call", self.service)
        return True

    def record_success(self) -> None:
        """Close the circuit on a trial success; reset failures while closed.

        A success from a call admitted before the circuit opened is ignored:
        only the half-open trial may close an open circuit.
        """
        with self._mutex:
            was_open = self._state.is_open
            if was_open and not self._state.trial_in_flight:
                return
            self._state = CircuitState()
        if was_open:
            logger.info("[%s] Cache circuit closed after successful trial", self.service)

    def record_failure(self) -> None:
        with self._mutex:
            state = self._state
            state.failure_count += 1
            state.last_failure_at = self._clock()
            if state.trial_in_flight:
                state.trial_in_flight = False
                state.is_open = True
                reopened, opened = True, False
            elif not state.is_open and state.failure_count >= self.failure_threshold:
                state.is_open = True
                reopened, opened = False, True
            else:
                reopened = opened = False
            failures = state.failure_count
        if opened:
            logger.warning(
                "[%s] Cache circuit opened after %s consecutive failures",
                self.service,
                failures,
            )
        elif reopened:
            logger.warning("[%s] Cache circuit trial failed, re-opened", self.service)

    def abandon_trial(self) -> None:
        """Release a trial slot whose call was cancelled before it resolved."""
        with self._mutex:
            self._state.trial_in_flight = False


class CircuitBreakerRegistry:
    """Process-wide map of service name -> CircuitBreaker, created lazily.

    Built once by the CoreRegistry and injected into every ServiceCache, so
    caches for the same service share one breaker.
    """

    def __init__(
        self,
        failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        cooldown_seconds: float = CIRCUIT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._mutex = threading.Lock()

    def get(self, service: str) -> CircuitBreaker:
        with self._mutex:
            breaker = self._breakers.get(service)
            if breaker is None:
                breaker = CircuitBreaker(
                    service,
                    failure_threshold=self.failure_threshold,
                    cooldown_seconds=self.cooldown_seconds,
                    clock=self._clock,
                )
                self._breakers[service] = breaker
            return breaker

    def statuses(self) -> dict[str, CircuitStatus]:
        with self._mutex:
            breakers = list(self._breakers.values())
        return {b.service: b.status for b in breakers}
