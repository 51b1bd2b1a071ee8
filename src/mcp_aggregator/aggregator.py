"""
Protocol aggregator - the gateway's own catalog surface.

Listing calls fan out to every available backend at once and merge whatever
comes back under namespace prefixes. A backend that fails, times out, or has
an open circuit is logged and left out; it never fails the whole listing.
Single-item calls are delegated to the router.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from mcp_aggregator.cache import ResponseCache
from mcp_aggregator.circuit_breaker import CircuitBreakerRegistry
from mcp_aggregator.client import BackendClient
from mcp_aggregator.models import Backend
from mcp_aggregator.namespace import apply_prefix, apply_resource_prefix
from mcp_aggregator.registry import BackendRegistry
from mcp_aggregator.router import IntelligentRouter

logger = logging.getLogger(__name__)

Lister = Callable[[Backend], Awaitable[Any]]


class ProtocolAggregator:
    """Merges tool, resource, and prompt catalogs across backends."""

    def __init__(
        self,
        registry: BackendRegistry,
        client: BackendClient,
        breakers: CircuitBreakerRegistry,
        router: IntelligentRouter,
        cache: ResponseCache,
        list_ttl: float = 60.0,
    ) -> None:
        self.registry = registry
        self.client = client
        self.breakers = breakers
        self.router = router
        self.cache = cache
        self.list_ttl = list_ttl

    # =========================================================================
    # Catalog listings
    # =========================================================================

    async def list_tools(self) -> dict[str, Any]:
        tools = await self._aggregate("tools", self.client.list_tools, self._publish_named)
        return {"tools": tools}

    async def list_resources(self) -> dict[str, Any]:
        resources = await self._aggregate(
            "resources", self.client.list_resources, self._publish_resource
        )
        return {"resources": resources}

    async def list_prompts(self) -> dict[str, Any]:
        prompts = await self._aggregate("prompts", self.client.list_prompts, self._publish_named)
        return {"prompts": prompts}

    async def _aggregate(
        self,
        kind: str,
        lister: Lister,
        publish: Callable[[Backend, dict[str, Any]], dict[str, Any]],
    ) -> list[dict[str, Any]]:
        key = self.cache.generate_key(f"{kind}/list", "*")
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {kind}/list")
            return cached

        backends = self.registry.list_available()
        outcomes = await asyncio.gather(
            *(self._list_one(backend, kind, lister) for backend in backends),
            return_exceptions=True,
        )

        merged: list[dict[str, Any]] = []
        complete = True
        for backend, outcome in zip(backends, outcomes):
            if isinstance(outcome, BaseException):
                complete = False
                logger.warning(f"[{backend.id}] Failed to list {kind}: {outcome}")
                continue
            merged.extend(publish(backend, item) for item in outcome)

        # A partial catalog is served but not cached
        if complete:
            self.cache.set(key, merged, self.list_ttl)
        return merged

    async def _list_one(self, backend: Backend, kind: str, lister: Lister) -> list[dict[str, Any]]:
        result = await self.breakers.execute(backend.id, lambda: lister(backend))
        items = result.get(kind) if isinstance(result, dict) else None
        items = [item for item in items or [] if isinstance(item, dict)]

        field = "uri" if kind == "resources" else "name"
        local_names = [str(item.get(field, "")) for item in items]
        self.registry.update_capabilities(
            backend.id, replace(backend.capabilities, **{kind: local_names})
        )
        return items

    def _publish_named(self, backend: Backend, item: dict[str, Any]) -> dict[str, Any]:
        local_name = str(item.get("name", ""))
        return {
            **item,
            "name": apply_prefix(backend.id, local_name, self.registry.aliases),
            "description": item.get("description") or f"{local_name} from {backend.name}",
        }

    def _publish_resource(self, backend: Backend, item: dict[str, Any]) -> dict[str, Any]:
        local_uri = str(item.get("uri", ""))
        return {**item, "uri": apply_resource_prefix(backend.id, local_uri, self.registry.aliases)}

    # =========================================================================
    # Single-item calls
    # =========================================================================

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        return await self.router.route_call(name, arguments)

    async def read_resource(self, uri: str) -> Any:
        return await self.router.route_resource_read(uri)

    async def get_prompt(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        return await self.router.route_prompt_get(name, arguments)
