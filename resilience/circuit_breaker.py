"""
MODULE OVERVIEW:
Circuit breaker for a single downstream dependency.

WHAT IS HAPPENING HERE:
    CLOSED     calls pass through; failures are counted
    OPEN       calls fail fast with CircuitOpenError until `reset_timeout_ms`
               has passed since the last failure
    HALF_OPEN  one probe call is let through; success closes the breaker,
               failure re-opens it immediately

Create ONE breaker per logical dependency and keep it for the life of the
process. A fresh breaker per call never opens; one breaker shared by unrelated
services opens for all of them when one goes down.
"""
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from shared.errors import CircuitOpenError

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout_ms: float = 60000,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout_ms = reset_timeout_ms
        self.name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._probe_in_flight = False

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float | None:
        return self._last_failure_time

    def get_state(self) -> CircuitState:
        return self._state

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None
        self._probe_in_flight = False

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        old_state, self._state = self._state, new_state
        if new_state == CircuitState.OPEN:
            logger.error(f"breaker={self.name} event=opened from={old_state.value} failures={self._failure_count}")
        else:
            logger.info(f"breaker={self.name} event=transition from={old_state.value} to={new_state.value}")

    def _elapsed_ms(self) -> float:
        return (self._clock() - (self._last_failure_time or 0.0)) * 1000

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        if self._state == CircuitState.OPEN:
            if self._elapsed_ms() < self.reset_timeout_ms:
                raise CircuitOpenError()
            self._transition(CircuitState.HALF_OPEN)

        if self._state == CircuitState.HALF_OPEN:
            # Only one probe at a time; everyone else waits for its verdict.
            if self._probe_in_flight:
                raise CircuitOpenError("Circuit breaker is HALF-OPEN - probe already in flight")
            self._probe_in_flight = True

        probing = self._state == CircuitState.HALF_OPEN
        try:
            result = await fn()
        except Exception:
            self._failure_count += 1
            self._last_failure_time = self._clock()
            if probing or self._failure_count >= self.failure_threshold:
                self._transition(CircuitState.OPEN)
            raise
        finally:
            if probing:
                self._probe_in_flight = False

        if probing:
            self._failure_count = 0
            self._transition(CircuitState.CLOSED)
        return result
