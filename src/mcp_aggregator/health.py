"""
Backend health checking.

Two-tier probe per backend:
    1. GET the status endpoint (e.g. ``/actuator/health``) - fast and cheap
    2. Fall back to a protocol ``initialize`` handshake for backends that do
       not expose one

``HealthMonitor`` runs the checker over every registered backend, escalates
repeated failures to DOWN, and writes the results into the registry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace

from mcp_aggregator.errors import TransportError
from mcp_aggregator.models import Backend, Health, HealthStatus
from mcp_aggregator.registry import BackendRegistry
from mcp_aggregator.session import SessionManager
from mcp_aggregator.transport import HttpTransport

logger = logging.getLogger(__name__)


def status_url(endpoint: str, status_path: str) -> str:
    """``http://h/mcp`` -> ``http://h/actuator/health``; otherwise append."""
    base = endpoint.rstrip("/")
    if base.endswith("/mcp"):
        base = base[: -len("/mcp")]
    return f"{base}{status_path}"


class HealthChecker:
    """Probes one backend and reports a fresh Health. Never raises for
    network failures; those become DEGRADED or DOWN results."""

    def __init__(
        self,
        transport: HttpTransport,
        sessions: SessionManager,
        timeout: float = 5.0,
        status_path: str = "/actuator/health",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._sessions = sessions
        self.timeout = timeout
        self.status_path = status_path
        self._clock = clock

    async def check(self, backend: Backend) -> Health:
        start = self._clock()

        if await self._probe_status(backend):
            return Health(status=HealthStatus.HEALTHY, latency=self._clock() - start)

        return await self._probe_protocol(backend, start)

    async def _probe_status(self, backend: Backend) -> bool:
        url = status_url(backend.endpoint, self.status_path)
        try:
            reply = await self._transport.get(url, backend.headers, self.timeout)
        except TransportError as e:
            logger.debug(f"[{backend.id}] Status probe failed: {e}")
            return False
        if not reply.ok:
            logger.debug(f"[{backend.id}] Status probe returned HTTP {reply.status}")
        return reply.ok

    async def _probe_protocol(self, backend: Backend, start: float) -> Health:
        failures = backend.health.consecutive_failures + 1
        try:
            reply = await self._transport.post_json(
                backend.endpoint,
                self._sessions.handshake_request(),
                backend.headers,
                self.timeout,
            )
        except TransportError as e:
            return Health(
                status=HealthStatus.DOWN,
                latency=self._clock() - start,
                consecutive_failures=failures,
                error_message=str(e),
            )

        latency = self._clock() - start
        if reply.ok:
            self._sessions.capture(backend.id, reply)
            return Health(status=HealthStatus.HEALTHY, latency=latency)

        return Health(
            status=HealthStatus.DEGRADED,
            latency=latency,
            consecutive_failures=failures,
            error_message=f"Protocol probe returned HTTP {reply.status}",
        )


class HealthMonitor:
    """Periodically checks every registered backend and updates the registry."""

    def __init__(
        self,
        registry: BackendRegistry,
        checker: HealthChecker,
        unhealthy_threshold: int = 3,
        interval: float = 60.0,
    ) -> None:
        self.registry = registry
        self.checker = checker
        self.unhealthy_threshold = unhealthy_threshold
        self.interval = interval

    def escalate(self, health: Health) -> Health:
        """Force DOWN once consecutive failures reach the threshold."""
        if (
            health.consecutive_failures >= self.unhealthy_threshold
            and health.status != HealthStatus.DOWN
        ):
            return replace(health, status=HealthStatus.DOWN)
        return health

    async def check_backend(self, backend: Backend) -> Health:
        previous = backend.health.status
        health = self.escalate(await self.checker.check(backend))
        self.registry.update_health(backend.id, health)

        if health.status != previous:
            message = f"[{backend.id}] Health {previous.value} -> {health.status.value}"
            if health.error_message:
                message += f" ({health.error_message})"
            if health.status == HealthStatus.HEALTHY:
                logger.info(message)
            else:
                logger.warning(message)
        return health

    async def run_once(self) -> dict[str, Health]:
        """Check all backends concurrently; one failing check never aborts the rest."""
        backends = self.registry.list()
        outcomes = await asyncio.gather(
            *(self.check_backend(b) for b in backends), return_exceptions=True
        )

        results: dict[str, Health] = {}
        for backend, outcome in zip(backends, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"[{backend.id}] Health check error: {outcome}")
                continue
            if isinstance(outcome, Health):
                results[backend.id] = outcome
        return results

    async def run_forever(self) -> None:
        """Check immediately, then every ``interval`` seconds until cancelled."""
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)
