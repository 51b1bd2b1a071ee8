"""
Configuration management for the MCP aggregation gateway.

Supports YAML configuration files with environment variable expansion
and validation via Pydantic.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from mcp_aggregator.namespace import DEFAULT_ALIASES


def expand_env_vars(value: str) -> str:
    """Expand environment variables in a string.

    Supports both ${VAR} and $VAR syntax.
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1) or match.group(2)
        return os.environ.get(var_name, match.group(0))

    pattern = r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)"
    return re.sub(pattern, replacer, value)


class BackendConfig(BaseModel):
    """Configuration for a single backend protocol server."""

    id: str = Field(..., min_length=1, description="Stable unique identifier")
    name: str = Field(default="", description="Display name (defaults to id)")
    endpoint: str = Field(..., min_length=1, description="JSON-RPC endpoint URL")
    priority: int = Field(default=0, description="Ordering hint for listings")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra HTTP headers")
    enabled: bool = Field(default=True, description="Whether this backend is registered")

    @field_validator("endpoint", mode="before")
    @classmethod
    def expand_env(cls, v: str) -> str:
        """Expand environment variables in the endpoint."""
        return expand_env_vars(v) if isinstance(v, str) else v

    @field_validator("headers", mode="before")
    @classmethod
    def expand_dict_values(cls, v: dict[str, str] | None) -> dict[str, str]:
        """Expand environment variables in header values."""
        if v is None:
            return {}
        return {k: expand_env_vars(str(val)) for k, val in v.items()}

    @model_validator(mode="after")
    def default_name(self) -> BackendConfig:
        if not self.name:
            self.name = self.id
        return self


class CacheConfig(BaseModel):
    """Response cache sizing and TTLs (seconds)."""

    default_ttl: float = Field(default=300.0, gt=0)
    max_size: int = Field(default=10000, ge=1)
    list_ttl: float = Field(default=60.0, gt=0)


class RetryConfig(BaseModel):
    """Bounded exponential backoff for capability-invoking calls."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_delay: float = Field(default=0.1, ge=0, description="Base delay in seconds")
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_delay: float = Field(default=2.0, ge=0, description="Cap on a single delay")


class TimeoutConfig(BaseModel):
    """Per-call timeouts in seconds."""

    connect: float = Field(default=5.0, gt=0, description="Handshakes and health probes")
    read: float = Field(default=30.0, gt=0, description="Tool calls, reads, prompt gets")
    list: float = Field(default=5.0, gt=0, description="Catalog listing calls")


class HealthConfig(BaseModel):
    """Periodic health checking."""

    check_interval: float = Field(default=60.0, ge=1.0)
    unhealthy_threshold: int = Field(default=3, ge=1)
    status_path: str = Field(default="/actuator/health")


class CircuitBreakerConfig(BaseModel):
    """Per-backend circuit breaker thresholds."""

    failure_threshold: int = Field(default=5, ge=1)
    success_threshold: int = Field(default=2, ge=1)
    open_timeout: float = Field(default=30.0, gt=0, description="Cool-down before HALF_OPEN")
    monitoring_window: float = Field(default=60.0, gt=0, description="Failure count window")


class GatewayConfig(BaseModel):
    """Configuration for the aggregation gateway."""

    # Server settings
    host: str = Field(default="127.0.0.1", description="Host to bind to")
    port: int = Field(default=39400, ge=1, le=65535, description="Port to listen on")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging verbosity"
    )

    # Namespacing and backends
    aliases: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ALIASES),
        description="Public alias -> backend id",
    )
    backends: dict[str, BackendConfig] = Field(
        default_factory=dict, description="Backend configurations keyed by id"
    )

    # Operational settings
    cache: CacheConfig = Field(default_factory=CacheConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    timeout: TimeoutConfig = Field(default_factory=TimeoutConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> GatewayConfig:
        """Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Validated GatewayConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If configuration is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open() as f:
            raw_config = yaml.safe_load(f) or {}

        return cls.from_dict(raw_config)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GatewayConfig:
        """Create configuration from a dictionary.

        The backends section may be a mapping keyed by id or a list of
        entries that each carry an ``id``.
        """
        gateway_settings = {
            k: v
            for k, v in data.items()
            if k not in ("backends", "servers")  # Support both names
        }

        backends_raw = data.get("backends") or data.get("servers") or {}
        if isinstance(backends_raw, list):
            backends_raw = {
                entry["id"]: entry
                for entry in backends_raw
                if isinstance(entry, dict) and "id" in entry
            }

        backends = {}
        for backend_id, backend_data in backends_raw.items():
            if isinstance(backend_data, BackendConfig):
                backends[backend_id] = backend_data
            elif isinstance(backend_data, dict):
                backends[backend_id] = BackendConfig(**{**backend_data, "id": backend_id})

        gateway_settings["backends"] = backends
        return cls(**gateway_settings)

    def get_enabled_backends(self) -> dict[str, BackendConfig]:
        """Return only enabled backends, ordered by priority."""
        enabled = [b for b in self.backends.values() if b.enabled]
        return {b.id: b for b in sorted(enabled, key=lambda b: b.priority)}


def create_default_config() -> GatewayConfig:
    """Create a minimal default configuration.

    Returns:
        GatewayConfig with sensible defaults and no backends.
    """
    return GatewayConfig()


def merge_configs(base: GatewayConfig, override: GatewayConfig) -> GatewayConfig:
    """Merge two configurations, with override taking precedence.

    Args:
        base: Base configuration
        override: Configuration to overlay

    Returns:
        Merged configuration
    """
    base_dict = base.model_dump()
    override_dict = override.model_dump(exclude_unset=True)

    # Deep merge backends and aliases
    if "backends" in override_dict:
        base_dict["backends"].update(override_dict.pop("backends"))
    if "aliases" in override_dict:
        base_dict["aliases"].update(override_dict.pop("aliases"))

    base_dict.update(override_dict)
    return GatewayConfig.from_dict(base_dict)
