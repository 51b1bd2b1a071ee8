"""Tests for the intelligent router."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from mcp_aggregator.cache import ResponseCache
from mcp_aggregator.circuit_breaker import CircuitBreakerRegistry, CircuitState
from mcp_aggregator.client import BackendClient
from mcp_aggregator.config import CircuitBreakerConfig
from mcp_aggregator.errors import (
    BackendNotFoundError,
    BackendUnavailableError,
    CircuitOpenError,
    RetryExhaustedError,
    TransportError,
    UpstreamRpcError,
)
from mcp_aggregator.models import Health, HealthStatus
from mcp_aggregator.registry import BackendRegistry
from mcp_aggregator.router import REALTIME_TTL, STATIC_TTL, IntelligentRouter


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock(spec=BackendClient)
    client.call_tool = AsyncMock(return_value={"content": [{"type": "text", "text": "trips"}]})
    client.read_resource = AsyncMock(return_value={"contents": []})
    client.get_prompt = AsyncMock(return_value={"messages": []})
    return client


@pytest.fixture
def router(client, journey_backend, clock) -> IntelligentRouter:
    registry = BackendRegistry()
    registry.register(journey_backend)
    breakers = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=2), clock=clock)
    return IntelligentRouter(registry, client, breakers, ResponseCache(clock=clock))


class TestDetermineTtl:
    """TTL follows what kind of data a tool returns."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("journey.findTrips", REALTIME_TTL),
            ("meteo.getWeather", REALTIME_TTL),
            ("aareguru.current_conditions", REALTIME_TTL),
            ("mobility.findStation", STATIC_TTL),
            ("journey.searchLocations", STATIC_TTL),
            ("aareguru.cities", 300.0),
        ],
    )
    def test_categories(self, router, name, expected):
        assert router.determine_ttl(name) == expected


class TestRouteCall:
    """Tests for cached tool calls."""

    @pytest.mark.asyncio
    async def test_dispatches_local_name_and_args(self, router, client, journey_backend):
        result = await router.route_call("journey.findTrips", {"from": "A", "to": "B"})

        assert result == {"content": [{"type": "text", "text": "trips"}]}
        client.call_tool.assert_awaited_once_with(journey_backend, "findTrips", {"from": "A", "to": "B"})

    @pytest.mark.asyncio
    async def test_second_identical_call_served_from_cache(self, router, client):
        await router.route_call("journey.findTrips", {"from": "A", "to": "B"})
        await router.route_call("journey.findTrips", {"from": "A", "to": "B"})
        assert client.call_tool.await_count == 1

        await router.route_call("journey.findTrips", {"from": "A", "to": "C"})
        assert client.call_tool.await_count == 2

    @pytest.mark.asyncio
    async def test_cached_for_realtime_ttl(self, router, client, clock):
        await router.route_call("journey.findTrips", {"from": "A"})
        clock.advance(REALTIME_TTL - 1)
        await router.route_call("journey.findTrips", {"from": "A"})
        assert client.call_tool.await_count == 1

        clock.advance(2)
        await router.route_call("journey.findTrips", {"from": "A"})
        assert client.call_tool.await_count == 2

    @pytest.mark.asyncio
    async def test_caller_mutation_does_not_reach_cache(self, router, client):
        first = await router.route_call("journey.findTrips", {"from": "A"})
        first["content"][0]["text"] = "tampered"

        second = await router.route_call("journey.findTrips", {"from": "A"})

        assert second == {"content": [{"type": "text", "text": "trips"}]}
        assert client.call_tool.await_count == 1

    @pytest.mark.asyncio
    async def test_error_results_not_cached(self, router, client):
        client.call_tool.return_value = {"content": [], "isError": True}
        await router.route_call("journey.findTrips", {})
        await router.route_call("journey.findTrips", {})
        assert client.call_tool.await_count == 2

    @pytest.mark.asyncio
    async def test_unknown_backend(self, router, client):
        with pytest.raises(BackendNotFoundError):
            await router.route_call("parking.spots", {})
        client.call_tool.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_down_backend_rejected(self, router, client, journey_backend):
        router.registry.update_health(
            journey_backend.id, Health(status=HealthStatus.DOWN, latency=1.5)
        )
        with pytest.raises(BackendUnavailableError) as exc_info:
            await router.route_call("journey.findTrips", {})
        assert exc_info.value.status == "DOWN"
        client.call_tool.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_degraded_backend_still_routed(self, router, client, journey_backend):
        router.registry.update_health(journey_backend.id, Health(status=HealthStatus.DEGRADED))
        await router.route_call("journey.findTrips", {})
        client.call_tool.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failures_open_circuit(self, router, client, journey_backend):
        client.call_tool.side_effect = RetryExhaustedError(3, TransportError("down"))

        for _ in range(2):
            with pytest.raises(RetryExhaustedError):
                await router.route_call("journey.findTrips", {})

        assert router.breakers.get(journey_backend.id).state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await router.route_call("journey.findTrips", {})
        assert client.call_tool.await_count == 2

    @pytest.mark.asyncio
    async def test_upstream_error_surfaced(self, router, client):
        client.call_tool.side_effect = UpstreamRpcError(-32602, "bad date")
        with pytest.raises(UpstreamRpcError):
            await router.route_call("journey.findTrips", {})


class TestRouteResourceAndPrompt:
    """Resources and prompts follow the same path without caching."""

    @pytest.mark.asyncio
    async def test_resource_read_strips_scheme(self, router, client, journey_backend):
        await router.route_resource_read("journey://stations/8503000")
        await router.route_resource_read("journey://stations/8503000")

        client.read_resource.assert_awaited_with(journey_backend, "stations/8503000")
        assert client.read_resource.await_count == 2

    @pytest.mark.asyncio
    async def test_prompt_get(self, router, client, journey_backend):
        await router.route_prompt_get("journey.plan_trip", {"day": "monday"})
        client.get_prompt.assert_awaited_once_with(journey_backend, "plan_trip", {"day": "monday"})

    @pytest.mark.asyncio
    async def test_resource_on_down_backend(self, router, journey_backend):
        router.registry.update_health(journey_backend.id, Health(status=HealthStatus.DOWN))
        with pytest.raises(BackendUnavailableError):
            await router.route_resource_read("journey://stations/1")
