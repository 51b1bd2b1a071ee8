"""
Runtime data model: backends, their health, and advertised capabilities.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mcp_aggregator.config import BackendConfig


class HealthStatus(str, Enum):
    """Health state of a backend as last observed by the health checker."""

    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    DOWN = "DOWN"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Health:
    """Result of one health check. Replaced wholesale, never edited."""

    status: HealthStatus = HealthStatus.UNKNOWN
    last_check: float = field(default_factory=time.time)
    latency: float = 0.0
    consecutive_failures: int = 0
    error_message: str | None = None

    @property
    def is_available(self) -> bool:
        """DEGRADED and UNKNOWN backends are still routed to."""
        return self.status != HealthStatus.DOWN

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "lastCheck": self.last_check,
            "latencyMs": round(self.latency * 1000, 1),
            "consecutiveFailures": self.consecutive_failures,
            "errorMessage": self.error_message,
        }


@dataclass
class Capabilities:
    """Local (un-prefixed) names a backend advertised on its last listing."""

    tools: list[str] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    prompts: list[str] = field(default_factory=list)


@dataclass
class Backend:
    """A registered backend protocol server."""

    id: str
    name: str
    endpoint: str
    priority: int = 0
    headers: dict[str, str] = field(default_factory=dict)
    health: Health = field(default_factory=Health)
    capabilities: Capabilities = field(default_factory=Capabilities)
    registered_at: float = field(default_factory=time.time)

    @classmethod
    def from_config(cls, config: BackendConfig) -> Backend:
        return cls(
            id=config.id,
            name=config.name,
            endpoint=config.endpoint,
            priority=config.priority,
            headers=dict(config.headers),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "endpoint": self.endpoint,
            "priority": self.priority,
            "health": self.health.to_dict(),
            "capabilities": {
                "tools": len(self.capabilities.tools),
                "resources": len(self.capabilities.resources),
                "prompts": len(self.capabilities.prompts),
            },
        }
