"""
Main Gateway server - one HTTP endpoint in front of many protocol backends.

Features:
    - JSON-RPC endpoint: /mcp (single and batch requests)
    - Convenience routes: /mcp/tools/list, /mcp/tools/call, ...
    - Health aggregation: /health, /health/{backend_id}
    - Background health monitoring
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any

from aiohttp import web

from mcp_aggregator.aggregator import ProtocolAggregator
from mcp_aggregator.cache import ResponseCache
from mcp_aggregator.circuit_breaker import CircuitBreakerRegistry
from mcp_aggregator.client import BackendClient
from mcp_aggregator.errors import (
    BackendNotFoundError,
    BackendUnavailableError,
    CircuitOpenError,
    GatewayError,
    InvalidNameError,
    InvalidParamsError,
    MethodNotFoundError,
    TransportError,
    UpstreamRpcError,
)
from mcp_aggregator.health import HealthChecker, HealthMonitor
from mcp_aggregator.models import Backend
from mcp_aggregator.registry import BackendRegistry
from mcp_aggregator.router import IntelligentRouter
from mcp_aggregator.rpc import RetryPolicy, RpcClient
from mcp_aggregator.session import PROTOCOL_VERSION, SESSION_HEADER, SessionManager
from mcp_aggregator.transport import HttpTransport
from mcp_aggregator.version import __version__

if TYPE_CHECKING:
    from mcp_aggregator.config import GatewayConfig

logger = logging.getLogger(__name__)


def rpc_result(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "result": result, "id": request_id}


def rpc_error(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "error": error, "id": request_id}


def http_status_for(error: Exception) -> int:
    """HTTP status for the convenience routes."""
    if isinstance(error, (InvalidNameError, InvalidParamsError)):
        return 400
    if isinstance(error, BackendNotFoundError):
        return 404
    if isinstance(error, (BackendUnavailableError, CircuitOpenError)):
        return 503
    if isinstance(error, (TransportError, UpstreamRpcError)):
        return 502
    return 500


class Gateway:
    """Aggregation gateway server.

    Wires the registry, session manager, RPC client, circuit breakers, cache,
    router, aggregator, and health monitor from one configuration. Every
    component is an instance owned by the gateway; nothing is global.

    Example:
        >>> config = GatewayConfig.from_yaml("servers.yaml")
        >>> gateway = Gateway(config)
        >>> await gateway.run()
    """

    def __init__(self, config: GatewayConfig, transport: HttpTransport | None = None) -> None:
        """Initialize the gateway.

        Args:
            config: Gateway configuration
            transport: HTTP transport toward backends (created if omitted)
        """
        self.config = config
        self.transport = transport or HttpTransport()

        self.registry = BackendRegistry(config.aliases)
        self.sessions = SessionManager(self.transport, timeout=config.timeout.connect)
        self.rpc = RpcClient(
            self.transport,
            self.sessions,
            retry=RetryPolicy.from_config(config.retry),
            timeout=config.timeout.read,
        )
        self.client = BackendClient(
            self.rpc, call_timeout=config.timeout.read, list_timeout=config.timeout.list
        )
        self.breakers = CircuitBreakerRegistry(config.circuit_breaker)
        self.cache = ResponseCache(
            default_ttl=config.cache.default_ttl, max_size=config.cache.max_size
        )
        self.router = IntelligentRouter(
            self.registry,
            self.client,
            self.breakers,
            self.cache,
            default_ttl=config.cache.default_ttl,
        )
        self.aggregator = ProtocolAggregator(
            self.registry,
            self.client,
            self.breakers,
            self.router,
            self.cache,
            list_ttl=config.cache.list_ttl,
        )
        self.monitor = HealthMonitor(
            self.registry,
            HealthChecker(
                self.transport,
                self.sessions,
                timeout=config.timeout.connect,
                status_path=config.health.status_path,
            ),
            unhealthy_threshold=config.health.unhealthy_threshold,
            interval=config.health.check_interval,
        )

        self._running = False
        self._background_tasks: set[asyncio.Task[None]] = set()

        for backend_config in config.get_enabled_backends().values():
            self.registry.register(Backend.from_config(backend_config))

    async def start(self) -> None:
        """Start background health monitoring."""
        self._running = True

        task = asyncio.create_task(self.monitor.run_forever())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

        logger.info("=" * 60)
        logger.info(f"MCP AGGREGATOR v{__version__}")
        logger.info("=" * 60)
        logger.info(f"Endpoint: http://{self.config.host}:{self.config.port}/mcp")
        logger.info(f"Backends: {len(self.registry)}")
        for backend in self.registry.list():
            alias = self.registry.alias_for(backend.id)
            logger.info(f"  {alias}.* -> {backend.id} ({backend.endpoint})")
        logger.info("=" * 60)

    async def stop(self) -> None:
        """Stop health monitoring and release the HTTP transport."""
        self._running = False
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.transport.close()
        logger.info("Gateway stopped")

    def create_app(self) -> web.Application:
        """Create the aiohttp web application."""
        app = web.Application()

        # Routes
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/health/{backend_id}", self._handle_backend_health)
        app.router.add_post("/mcp", self._handle_rpc)
        app.router.add_get("/mcp/tools/list", self._handle_list_tools)
        app.router.add_get("/mcp/resources/list", self._handle_list_resources)
        app.router.add_get("/mcp/prompts/list", self._handle_list_prompts)
        app.router.add_post("/mcp/tools/call", self._handle_tool_call)
        app.router.add_post("/mcp/resources/read", self._handle_resource_read)
        app.router.add_post("/mcp/prompts/get", self._handle_prompt_get)

        # Lifecycle
        app.on_startup.append(lambda _: self.start())
        app.on_cleanup.append(lambda _: self.stop())

        return app

    async def run(self) -> None:
        """Run the gateway server."""
        app = self.create_app()
        runner = web.AppRunner(app)
        await runner.setup()

        site = web.TCPSite(runner, self.config.host, self.config.port)
        await site.start()

        logger.info(f"Gateway running on http://{self.config.host}:{self.config.port}")

        # Keep running until interrupted
        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            pass
        finally:
            await runner.cleanup()

    # =========================================================================
    # JSON-RPC dispatch
    # =========================================================================

    def _initialize_result(self) -> dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {"listChanged": False},
                "prompts": {"listChanged": False},
            },
            "serverInfo": {
                "name": "mcp-aggregator",
                "version": __version__,
            },
        }

    async def dispatch(self, method: str, params: dict[str, Any]) -> Any:
        """Execute one protocol method and return its result.

        Raises:
            GatewayError: Any routing, availability, or upstream failure
            MethodNotFoundError: If the method is unknown
        """
        if method == "initialize":
            return self._initialize_result()
        if method == "ping":
            return {}
        if method == "tools/list":
            return await self.aggregator.list_tools()
        if method == "resources/list":
            return await self.aggregator.list_resources()
        if method == "prompts/list":
            return await self.aggregator.list_prompts()
        if method == "tools/call":
            return await self.aggregator.call_tool(
                _require(params, "name"), _arguments(params)
            )
        if method == "resources/read":
            return await self.aggregator.read_resource(_require(params, "uri"))
        if method == "prompts/get":
            return await self.aggregator.get_prompt(
                _require(params, "name"), _arguments(params)
            )
        raise MethodNotFoundError(method)

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        """Handle one JSON-RPC message; notifications yield None."""
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            return rpc_error(None, -32600, "Invalid Request")

        method = message["method"]
        request_id = message.get("id")
        is_notification = "id" not in message

        if method.startswith("notifications/"):
            return None

        params = message.get("params") or {}
        if not isinstance(params, dict):
            return rpc_error(request_id, -32602, "params must be an object")

        try:
            result = await self.dispatch(method, params)
        except UpstreamRpcError as e:
            response = rpc_error(request_id, e.code, e.rpc_message, e.data)
        except GatewayError as e:
            response = rpc_error(request_id, e.code, str(e))
        except Exception as e:
            logger.exception(f"Unhandled error in {method}")
            response = rpc_error(request_id, -32603, f"Internal error: {e}")
        else:
            response = rpc_result(request_id, result)

        return None if is_notification else response

    # =========================================================================
    # HTTP Handlers
    # =========================================================================

    async def _handle_rpc(self, request: web.Request) -> web.StreamResponse:
        """Handle JSON-RPC requests at /mcp."""
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return web.json_response(rpc_error(None, -32700, "Parse error"), status=400)

        headers: dict[str, str] = {}
        if isinstance(body, list):
            if not body:
                return web.json_response(rpc_error(None, -32600, "Empty batch"), status=400)
            responses = await asyncio.gather(*(self.handle_message(m) for m in body))
            payload: Any = [r for r in responses if r is not None]
            if any(isinstance(m, dict) and m.get("method") == "initialize" for m in body):
                headers[SESSION_HEADER] = uuid.uuid4().hex
        else:
            payload = await self.handle_message(body)
            if isinstance(body, dict) and body.get("method") == "initialize":
                headers[SESSION_HEADER] = uuid.uuid4().hex

        if payload is None or payload == []:
            return web.Response(status=202, headers=headers)

        if _wants_event_stream(request):
            text = f"event: message\ndata: {json.dumps(payload)}\n\n"
            return web.Response(text=text, content_type="text/event-stream", headers=headers)
        return web.json_response(payload, headers=headers)

    async def _handle_list_tools(self, _request: web.Request) -> web.Response:
        return await self._convenience(self.aggregator.list_tools())

    async def _handle_list_resources(self, _request: web.Request) -> web.Response:
        return await self._convenience(self.aggregator.list_resources())

    async def _handle_list_prompts(self, _request: web.Request) -> web.Response:
        return await self._convenience(self.aggregator.list_prompts())

    async def _handle_tool_call(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        if isinstance(body, web.Response):
            return body
        return await self._convenience(self.dispatch("tools/call", body))

    async def _handle_resource_read(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        if isinstance(body, web.Response):
            return body
        return await self._convenience(self.dispatch("resources/read", body))

    async def _handle_prompt_get(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        if isinstance(body, web.Response):
            return body
        return await self._convenience(self.dispatch("prompts/get", body))

    async def _convenience(self, call: Awaitable[Any]) -> web.Response:
        try:
            result = await call
        except GatewayError as e:
            return web.json_response(
                {"error": {"code": e.code, "message": str(e)}}, status=http_status_for(e)
            )
        return web.json_response(result)

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Health check endpoint."""
        breakers = self.breakers.snapshot()
        backends_status: dict[str, dict[str, Any]] = {}

        for backend in self.registry.list():
            entry = backend.to_dict()
            entry["alias"] = self.registry.alias_for(backend.id)
            entry["circuit"] = breakers.get(backend.id, {"state": "CLOSED"})
            backends_status[backend.id] = entry

        available = len(self.registry.list_available())
        status = {
            "status": "healthy" if available == len(backends_status) else "degraded",
            "version": __version__,
            "backends": backends_status,
            "cache": self.cache.get_stats(),
        }

        return web.json_response(status)

    async def _handle_backend_health(self, request: web.Request) -> web.Response:
        """Ping one backend through its circuit breaker."""
        backend_id = request.match_info["backend_id"]
        backend = self.registry.get(backend_id)
        if backend is None:
            return web.json_response(
                {"error": {"code": -32001, "message": f"Unknown backend: {backend_id}"}},
                status=404,
            )

        try:
            await self.breakers.execute(backend.id, lambda: self.client.ping(backend))
        except GatewayError as e:
            return web.json_response(
                {"id": backend.id, "reachable": False, "error": str(e)},
                status=http_status_for(e),
            )

        return web.json_response(
            {"id": backend.id, "reachable": True, "status": backend.health.status.value}
        )


def _require(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not value:
        raise InvalidParamsError(f"Missing '{key}' parameter")
    if not isinstance(value, str):
        raise InvalidParamsError(f"'{key}' must be a string")
    return value


def _arguments(params: dict[str, Any]) -> dict[str, Any]:
    arguments = params.get("arguments")
    if arguments is None:
        return {}
    if not isinstance(arguments, dict):
        raise InvalidParamsError("'arguments' must be an object")
    return arguments


def _wants_event_stream(request: web.Request) -> bool:
    accept = request.headers.get("Accept", "")
    return "text/event-stream" in accept and "application/json" not in accept


async def _json_body(request: web.Request) -> dict[str, Any] | web.Response:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return web.json_response({"error": {"code": -32700, "message": "Parse error"}}, status=400)
    if not isinstance(body, dict):
        return web.json_response(
            {"error": {"code": -32600, "message": "Body must be a JSON object"}}, status=400
        )
    return body
