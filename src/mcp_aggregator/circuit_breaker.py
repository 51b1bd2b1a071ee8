"""
Per-backend circuit breakers.

    CLOSED     calls pass; failures are counted within a rolling window
    OPEN       calls fail fast with CircuitOpenError until the cool-down elapses
    HALF_OPEN  calls pass as probes; enough successes close the circuit,
               any failure re-opens it

Errors listed in ``ignored_exceptions`` (by default upstream JSON-RPC error
envelopes) are re-raised without counting: the backend did answer.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from mcp_aggregator.errors import CircuitOpenError, UpstreamRpcError

if TYPE_CHECKING:
    from mcp_aggregator.config import CircuitBreakerConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Failure isolation for a single backend."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        open_timeout: float = 30.0,
        monitoring_window: float = 60.0,
        ignored_exceptions: tuple[type[BaseException], ...] = (UpstreamRpcError,),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Backend id this breaker guards
            failure_threshold: Failures within the window before opening
            success_threshold: HALF_OPEN successes before closing
            open_timeout: Seconds spent OPEN before a probe is allowed
            monitoring_window: Seconds after which CLOSED failure counts reset
            ignored_exceptions: Errors that neither trip nor heal the circuit
            clock: Monotonic time source
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.open_timeout = open_timeout
        self.monitoring_window = monitoring_window
        self.ignored_exceptions = ignored_exceptions
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: float | None = None
        self.opened_at: float | None = None
        self._window_start = clock()
        self._lock = threading.Lock()

    def remaining_cooldown(self) -> float:
        """Seconds until an OPEN circuit lets a probe through (0 otherwise)."""
        if self.state != CircuitState.OPEN or self.opened_at is None:
            return 0.0
        return max(0.0, self.open_timeout - (self._clock() - self.opened_at))

    def _roll_window(self, now: float) -> None:
        if now - self._window_start >= self.monitoring_window:
            self.failure_count = 0
            self._window_start = now

    def _before_call(self) -> None:
        with self._lock:
            now = self._clock()
            if self.state == CircuitState.OPEN:
                remaining = self.remaining_cooldown()
                if remaining > 0:
                    raise CircuitOpenError(self.name, remaining)
                logger.info(f"[{self.name}] Circuit HALF_OPEN, probing")
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
            elif self.state == CircuitState.CLOSED:
                self._roll_window(now)

    def _open(self, now: float) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = now
        self.success_count = 0

    def record_success(self) -> None:
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.success_threshold:
                    logger.info(f"[{self.name}] Circuit CLOSED")
                    self.state = CircuitState.CLOSED
                    self.failure_count = 0
                    self.success_count = 0
                    self.opened_at = None
                    self._window_start = self._clock()

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self.last_failure_time = now

            if self.state == CircuitState.HALF_OPEN:
                logger.warning(f"[{self.name}] Circuit OPEN (probe failed)")
                self._open(now)
                return

            self._roll_window(now)
            self.failure_count += 1
            if self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
                logger.warning(
                    f"[{self.name}] Circuit OPEN after {self.failure_count} failures, "
                    f"cooling down {self.open_timeout:.0f}s"
                )
                self._open(now)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under the breaker.

        Raises:
            CircuitOpenError: If the circuit is OPEN; ``operation`` is not called
        """
        self._before_call()
        try:
            result = await operation()
        except self.ignored_exceptions:
            raise
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.success_count = 0
            self.last_failure_time = None
            self.opened_at = None
            self._window_start = self._clock()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "state": self.state.value,
                "failureCount": self.failure_count,
                "successCount": self.success_count,
                "lastFailureTime": self.last_failure_time,
                "openedAt": self.opened_at,
                "remainingCooldown": round(self.remaining_cooldown(), 1),
            }


class CircuitBreakerRegistry:
    """Lazily created breakers keyed by backend id."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        ignored_exceptions: tuple[type[BaseException], ...] = (UpstreamRpcError,),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.ignored_exceptions = ignored_exceptions
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, backend_id: str) -> CircuitBreaker | None:
        with self._lock:
            return self._breakers.get(backend_id)

    def get_or_create(self, backend_id: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(backend_id)
            if breaker is None:
                settings: dict[str, Any] = {}
                if self.config is not None:
                    settings = self.config.model_dump()
                breaker = CircuitBreaker(
                    backend_id,
                    ignored_exceptions=self.ignored_exceptions,
                    clock=self._clock,
                    **settings,
                )
                self._breakers[backend_id] = breaker
            return breaker

    async def execute(self, backend_id: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await self.get_or_create(backend_id).execute(operation)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.snapshot() for b in breakers}
