"""
MCP Aggregator - one endpoint in front of many Model Context Protocol servers
=============================================================================

A gateway that merges the tool, resource, and prompt catalogs of several
independently operated MCP backends into one namespaced catalog and routes each
call back to the backend that owns it.

Features:
    - Namespaced catalog: ``journey.findTrips``, ``meteo://forecast/...``
    - Concurrent catalog aggregation with partial-failure tolerance
    - Session handling for stateful backends, with automatic re-handshake
    - Retry with exponential backoff and per-backend circuit breakers
    - Two-tier health checking (status endpoint, then protocol handshake)
    - Response caching with per-capability TTLs

Example:
    >>> from mcp_aggregator import Gateway, GatewayConfig
    >>> config = GatewayConfig.from_yaml("servers.yaml")
    >>> gateway = Gateway(config)
    >>> await gateway.run()

Or via CLI:
    $ mcp-aggregator --config servers.yaml --port 39400
"""

from mcp_aggregator.config import BackendConfig, GatewayConfig
from mcp_aggregator.gateway import Gateway
from mcp_aggregator.version import __version__

__all__ = [
    "BackendConfig",
    "Gateway",
    "GatewayConfig",
    "__version__",
]
