"""Tests for the backend registry."""

from __future__ import annotations

import pytest

from mcp_aggregator.errors import BackendNotFoundError, InvalidNameError
from mcp_aggregator.models import Backend, Capabilities, Health, HealthStatus
from mcp_aggregator.registry import BackendRegistry


class TestRegistration:
    """Tests for register/unregister/get/list."""

    def test_register_and_get(self, journey_backend):
        registry = BackendRegistry()
        registry.register(journey_backend)
        assert registry.get("journey-service-mcp") is journey_backend
        assert "journey-service-mcp" in registry
        assert len(registry) == 1

    def test_register_is_upsert(self, journey_backend):
        registry = BackendRegistry()
        registry.register(journey_backend)
        replacement = Backend(
            id="journey-service-mcp", name="Journey v2", endpoint="http://v2.test/mcp"
        )
        registry.register(replacement)
        assert len(registry) == 1
        assert registry.get("journey-service-mcp").name == "Journey v2"

    def test_unregister(self, journey_backend):
        registry = BackendRegistry()
        registry.register(journey_backend)
        registry.unregister("journey-service-mcp")
        assert registry.get("journey-service-mcp") is None
        registry.unregister("journey-service-mcp")

    def test_list(self, journey_backend, meteo_backend):
        registry = BackendRegistry()
        registry.register(journey_backend)
        registry.register(meteo_backend)
        assert [b.id for b in registry.list()] == ["journey-service-mcp", "open-meteo-mcp"]


class TestAvailability:
    """Tests for list_available."""

    @pytest.mark.parametrize(
        ("status", "available"),
        [
            (HealthStatus.HEALTHY, True),
            (HealthStatus.DEGRADED, True),
            (HealthStatus.UNKNOWN, True),
            (HealthStatus.DOWN, False),
        ],
    )
    def test_only_down_is_excluded(self, journey_backend, status, available):
        registry = BackendRegistry()
        registry.register(journey_backend)
        registry.update_health(journey_backend.id, Health(status=status))
        assert (journey_backend in registry.list_available()) is available

    def test_new_backends_start_unknown(self, journey_backend):
        assert journey_backend.health.status == HealthStatus.UNKNOWN


class TestUpdates:
    """Tests for in-place health and capability updates."""

    def test_update_health(self, journey_backend):
        registry = BackendRegistry()
        registry.register(journey_backend)
        health = Health(status=HealthStatus.DEGRADED, consecutive_failures=1)
        registry.update_health(journey_backend.id, health)
        assert registry.get(journey_backend.id).health is health

    def test_update_unknown_backend_is_ignored(self):
        registry = BackendRegistry()
        registry.update_health("nope-mcp", Health())
        registry.update_capabilities("nope-mcp", Capabilities())
        assert len(registry) == 0

    def test_update_capabilities(self, journey_backend):
        registry = BackendRegistry()
        registry.register(journey_backend)
        registry.update_capabilities(journey_backend.id, Capabilities(tools=["findTrips"]))
        assert registry.get(journey_backend.id).capabilities.tools == ["findTrips"]


class TestResolveForCapability:
    """Tests for namespaced name -> backend."""

    def test_resolves_tool(self, journey_backend):
        registry = BackendRegistry()
        registry.register(journey_backend)
        assert registry.resolve_for_capability("journey.findTrips") is journey_backend

    def test_resolves_resource_uri(self, journey_backend):
        registry = BackendRegistry()
        registry.register(journey_backend)
        assert registry.resolve_for_capability("journey://stations/1") is journey_backend

    def test_not_found_carries_attempted_id(self):
        registry = BackendRegistry()
        with pytest.raises(BackendNotFoundError) as exc_info:
            registry.resolve_for_capability("parking.spots")
        assert exc_info.value.backend_id == "parking-mcp"
        assert exc_info.value.name == "parking.spots"

    def test_empty_name(self):
        with pytest.raises(InvalidNameError):
            BackendRegistry().resolve_for_capability("")

    def test_custom_aliases(self):
        registry = BackendRegistry({"trains": "sbb-mcp"})
        backend = Backend(id="sbb-mcp", name="SBB", endpoint="http://sbb.test/mcp")
        registry.register(backend)
        assert registry.resolve_for_capability("trains.find") is backend
        assert registry.alias_for("sbb-mcp") == "trains"
