"""
Backend client - the protocol operations the gateway performs on one backend.

Capability-invoking calls (tool call, resource read, prompt get) go through
``send_with_retry`` with the read timeout. Catalog listings use a single
``send`` with a short timeout so one slow backend cannot stall aggregation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mcp_aggregator.rpc import RpcClient

if TYPE_CHECKING:
    from mcp_aggregator.models import Backend


class BackendClient:
    """Protocol-level operations on a registered backend."""

    def __init__(
        self,
        rpc: RpcClient,
        call_timeout: float = 30.0,
        list_timeout: float = 5.0,
    ) -> None:
        self.rpc = rpc
        self.call_timeout = call_timeout
        self.list_timeout = list_timeout

    async def _invoke(self, backend: Backend, method: str, params: dict[str, Any]) -> Any:
        return await self.rpc.send_with_retry(
            backend.endpoint,
            method,
            params,
            timeout=self.call_timeout,
            backend_id=backend.id,
            headers=backend.headers,
        )

    async def _list(self, backend: Backend, method: str) -> Any:
        return await self.rpc.send(
            backend.endpoint,
            method,
            {},
            timeout=self.list_timeout,
            backend_id=backend.id,
            headers=backend.headers,
        )

    async def call_tool(
        self, backend: Backend, name: str, arguments: dict[str, Any] | None = None
    ) -> Any:
        return await self._invoke(backend, "tools/call", {"name": name, "arguments": arguments or {}})

    async def read_resource(self, backend: Backend, uri: str) -> Any:
        return await self._invoke(backend, "resources/read", {"uri": uri})

    async def get_prompt(
        self, backend: Backend, name: str, arguments: dict[str, Any] | None = None
    ) -> Any:
        return await self._invoke(backend, "prompts/get", {"name": name, "arguments": arguments or {}})

    async def list_tools(self, backend: Backend) -> Any:
        return await self._list(backend, "tools/list")

    async def list_resources(self, backend: Backend) -> Any:
        return await self._list(backend, "resources/list")

    async def list_prompts(self, backend: Backend) -> Any:
        return await self._list(backend, "prompts/list")

    async def ping(self, backend: Backend) -> Any:
        return await self._list(backend, "ping")
