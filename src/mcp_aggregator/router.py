"""
Intelligent router: cache -> resolve -> health gate -> circuit breaker -> RPC.
"""

from __future__ import annotations

import logging
from typing import Any

from mcp_aggregator.cache import ResponseCache
from mcp_aggregator.circuit_breaker import CircuitBreakerRegistry
from mcp_aggregator.client import BackendClient
from mcp_aggregator.errors import BackendUnavailableError
from mcp_aggregator.models import Backend
from mcp_aggregator.namespace import strip_prefix
from mcp_aggregator.registry import BackendRegistry

logger = logging.getLogger(__name__)

REALTIME_TTL = 60.0
STATIC_TTL = 3600.0

# Matched case-insensitively against the namespaced tool name
STATIC_MARKERS = ("location", "station")
REALTIME_MARKERS = ("trip", "journey", "weather", "conditions")


class IntelligentRouter:
    """Routes single-capability calls to their owning backend."""

    def __init__(
        self,
        registry: BackendRegistry,
        client: BackendClient,
        breakers: CircuitBreakerRegistry,
        cache: ResponseCache,
        default_ttl: float = 300.0,
    ) -> None:
        self.registry = registry
        self.client = client
        self.breakers = breakers
        self.cache = cache
        self.default_ttl = default_ttl

    def determine_ttl(self, name: str) -> float:
        """Static data lives for an hour, real-time data for a minute."""
        lowered = name.lower()
        if any(marker in lowered for marker in STATIC_MARKERS):
            return STATIC_TTL
        if any(marker in lowered for marker in REALTIME_MARKERS):
            return REALTIME_TTL
        return self.default_ttl

    def _resolve(self, name: str) -> Backend:
        backend = self.registry.resolve_for_capability(name)
        if not backend.health.is_available:
            raise BackendUnavailableError(
                backend.id, backend.health.status.value, backend.health.latency
            )
        return backend

    async def route_call(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Call a namespaced tool, serving repeats from cache.

        Raises:
            InvalidNameError: If the name is empty
            BackendNotFoundError: If no backend owns the name
            BackendUnavailableError: If the owning backend is DOWN
            CircuitOpenError: If the backend's circuit is open
            RetryExhaustedError: If the backend kept failing
            UpstreamRpcError: If the backend answered with an error
        """
        key = self.cache.generate_key("tools/call", name, arguments)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for tool: {name}")
            return cached

        backend = self._resolve(name)
        local_name = strip_prefix(name)
        result = await self.breakers.execute(
            backend.id, lambda: self.client.call_tool(backend, local_name, arguments)
        )

        # Tool-level failures are reported in-band; don't pin them in the cache
        if result is not None and not (isinstance(result, dict) and result.get("isError")):
            self.cache.set(key, result, self.determine_ttl(name))
        return result

    async def route_resource_read(self, uri: str) -> Any:
        """Read a namespaced resource URI. Not cached."""
        backend = self._resolve(uri)
        local_uri = strip_prefix(uri)
        return await self.breakers.execute(
            backend.id, lambda: self.client.read_resource(backend, local_uri)
        )

    async def route_prompt_get(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Fetch a namespaced prompt. Not cached."""
        backend = self._resolve(name)
        local_name = strip_prefix(name)
        return await self.breakers.execute(
            backend.id, lambda: self.client.get_prompt(backend, local_name, arguments)
        )
