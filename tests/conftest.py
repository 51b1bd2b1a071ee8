"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
from typing import Any

import pytest

from mcp_aggregator.config import BackendConfig, GatewayConfig
from mcp_aggregator.models import Backend
from mcp_aggregator.transport import HttpReply


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def rpc_reply(result: Any = None, request_id: int = 1, headers: dict[str, str] | None = None) -> HttpReply:
    """A 200 reply carrying a JSON-RPC result envelope."""
    body = json.dumps({"jsonrpc": "2.0", "result": result, "id": request_id})
    return HttpReply.build(200, body, headers)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def journey_backend() -> Backend:
    """Backend registered under the default ``journey`` alias."""
    return Backend(
        id="journey-service-mcp",
        name="Journey Service",
        endpoint="http://journey.test/mcp",
    )


@pytest.fixture
def meteo_backend() -> Backend:
    return Backend(
        id="open-meteo-mcp",
        name="Open Meteo",
        endpoint="http://meteo.test/mcp",
    )


@pytest.fixture
def sample_backend_config() -> BackendConfig:
    """Create a sample backend configuration for testing."""
    return BackendConfig(
        id="journey-service-mcp",
        name="Journey Service",
        endpoint="http://localhost:8080/mcp",
    )


@pytest.fixture
def sample_gateway_config(sample_backend_config: BackendConfig) -> GatewayConfig:
    """Create a sample gateway configuration."""
    return GatewayConfig(
        port=39400,
        backends={"journey-service-mcp": sample_backend_config},
    )


@pytest.fixture
def minimal_config_yaml(tmp_path):
    """Create a minimal YAML config file."""
    config_file = tmp_path / "servers.yaml"
    config_file.write_text(
        """
port: 39400

backends:
  aareguru-mcp:
    endpoint: "http://localhost:9100/mcp"
"""
    )
    return config_file


@pytest.fixture
def full_config_yaml(tmp_path):
    """Create a comprehensive YAML config file."""
    config_file = tmp_path / "servers.yaml"
    config_file.write_text(
        """
port: 8080
host: "0.0.0.0"
log_level: DEBUG

aliases:
  trains: journey-service-mcp

backends:
  journey-service-mcp:
    name: "Journey Service"
    endpoint: "http://localhost:9000/mcp"
    priority: 2
    headers:
      Authorization: "Bearer token"

  open-meteo-mcp:
    name: "Open Meteo"
    endpoint: "http://localhost:9001/mcp"
    priority: 1

  swiss-mobility-mcp:
    endpoint: "http://localhost:9002/mcp"
    enabled: false

cache:
  default_ttl: 120
  list_ttl: 30

retry:
  max_attempts: 5
  backoff_delay: 0.2

timeout:
  read: 45

health:
  check_interval: 15
  unhealthy_threshold: 2

circuit_breaker:
  failure_threshold: 3
  open_timeout: 10
"""
    )
    return config_file
