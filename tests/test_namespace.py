"""Tests for namespace resolution."""

from __future__ import annotations

import pytest

from mcp_aggregator.errors import InvalidNameError
from mcp_aggregator.namespace import (
    DEFAULT_ALIASES,
    alias_for,
    apply_prefix,
    apply_resource_prefix,
    resolve_backend_id,
    strip_prefix,
)


class TestResolveBackendId:
    """Tests for alias -> backend id resolution."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("journey.findTrips", "journey-service-mcp"),
            ("mobility.getOffers", "swiss-mobility-mcp"),
            ("meteo.forecast", "open-meteo-mcp"),
            ("weather.forecast", "open-meteo-mcp"),
            ("journey://stations/8503000", "journey-service-mcp"),
        ],
    )
    def test_known_aliases(self, name, expected):
        assert resolve_backend_id(name) == expected

    @pytest.mark.parametrize("alias", ["foo", "x", "parking"])
    def test_unknown_alias_falls_back(self, alias):
        assert resolve_backend_id(f"{alias}.y") == f"{alias}-mcp"

    def test_unprefixed_name_uses_whole_string(self):
        assert resolve_backend_id("standalone") == "standalone-mcp"

    def test_empty_name_raises(self):
        with pytest.raises(InvalidNameError):
            resolve_backend_id("")

    def test_custom_alias_table(self):
        assert resolve_backend_id("trains.find", {"trains": "sbb-mcp"}) == "sbb-mcp"


class TestStripPrefix:
    """Tests for namespace stripping."""

    def test_strips_tool_prefix(self):
        assert strip_prefix("journey.findTrips") == "findTrips"

    def test_only_first_separator(self):
        assert strip_prefix("meteo.forecast.hourly") == "forecast.hourly"

    def test_strips_resource_scheme(self):
        assert strip_prefix("journey://stations/8503000") == "stations/8503000"

    def test_resource_path_with_dots(self):
        assert strip_prefix("meteo://data/zurich.json") == "data/zurich.json"

    def test_unprefixed_passthrough(self):
        assert strip_prefix("findTrips") == "findTrips"

    def test_empty(self):
        assert strip_prefix("") == ""


class TestApplyPrefix:
    """Tests for publishing local names under an alias."""

    def test_reverse_lookup_first_match(self):
        # meteo and weather both map to open-meteo-mcp; meteo comes first
        assert apply_prefix("open-meteo-mcp", "forecast") == "meteo.forecast"

    def test_fallback_strips_suffix(self):
        assert apply_prefix("parking-mcp", "spots") == "parking.spots"

    def test_fallback_without_suffix(self):
        assert apply_prefix("journey-service", "findTrips") == "journey-service.findTrips"

    def test_empty_inputs_pass_through(self):
        assert apply_prefix("", "findTrips") == "findTrips"
        assert apply_prefix("journey-service-mcp", "") == ""

    def test_resource_prefix(self):
        assert (
            apply_resource_prefix("journey-service-mcp", "stations/8503000")
            == "journey://stations/8503000"
        )

    def test_alias_for_empty(self):
        assert alias_for("") == ""


class TestRoundTrip:
    """Publishing then resolving returns the original backend and name."""

    @pytest.mark.parametrize("alias", list(DEFAULT_ALIASES))
    @pytest.mark.parametrize("local_name", ["findTrips", "get_forecast", "a.b"])
    def test_tool_round_trip(self, alias, local_name):
        backend_id = DEFAULT_ALIASES[alias]
        published = apply_prefix(backend_id, local_name)
        assert strip_prefix(published) == local_name
        assert resolve_backend_id(published) == backend_id

    @pytest.mark.parametrize("alias", list(DEFAULT_ALIASES))
    def test_resource_round_trip(self, alias):
        backend_id = DEFAULT_ALIASES[alias]
        published = apply_resource_prefix(backend_id, "places/bern.json")
        assert strip_prefix(published) == "places/bern.json"
        assert resolve_backend_id(published) == backend_id
