"""
Backend registry - the set of known backends with health and capabilities.

Readers (router, aggregator) and the periodic health writer share one
instance; every access goes through a lock so a reader never observes a
half-applied update.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping

from mcp_aggregator.errors import BackendNotFoundError
from mcp_aggregator.models import Backend, Capabilities, Health
from mcp_aggregator.namespace import DEFAULT_ALIASES, alias_for, resolve_backend_id

logger = logging.getLogger(__name__)


class BackendRegistry:
    """Concurrency-safe map of backend id to Backend."""

    def __init__(self, aliases: Mapping[str, str] | None = None) -> None:
        self.aliases: dict[str, str] = dict(DEFAULT_ALIASES if aliases is None else aliases)
        self._backends: dict[str, Backend] = {}
        self._lock = threading.RLock()

    def register(self, backend: Backend) -> None:
        """Insert or replace a backend by id."""
        with self._lock:
            replaced = backend.id in self._backends
            self._backends[backend.id] = backend
        logger.info(
            f"[{backend.id}] {'Re-registered' if replaced else 'Registered'} "
            f"({backend.name}) at {backend.endpoint}"
        )

    def unregister(self, backend_id: str) -> None:
        with self._lock:
            removed = self._backends.pop(backend_id, None)
        if removed:
            logger.info(f"[{backend_id}] Unregistered")

    def get(self, backend_id: str) -> Backend | None:
        with self._lock:
            return self._backends.get(backend_id)

    def list(self) -> list[Backend]:
        with self._lock:
            return list(self._backends.values())

    def list_available(self) -> list[Backend]:
        """All backends not marked DOWN (UNKNOWN and DEGRADED included)."""
        with self._lock:
            return [b for b in self._backends.values() if b.health.is_available]

    def update_health(self, backend_id: str, health: Health) -> None:
        with self._lock:
            backend = self._backends.get(backend_id)
            if backend:
                backend.health = health

    def update_capabilities(self, backend_id: str, capabilities: Capabilities) -> None:
        with self._lock:
            backend = self._backends.get(backend_id)
            if backend:
                backend.capabilities = capabilities

    def resolve_for_capability(self, namespaced: str) -> Backend:
        """Find the backend that owns a namespaced tool, prompt, or resource URI.

        Raises:
            InvalidNameError: If the name is empty
            BackendNotFoundError: If no backend is registered under the resolved id
        """
        backend_id = resolve_backend_id(namespaced, self.aliases)
        backend = self.get(backend_id)
        if backend is None:
            raise BackendNotFoundError(namespaced, backend_id)
        return backend

    def __len__(self) -> int:
        with self._lock:
            return len(self._backends)

    def __contains__(self, backend_id: object) -> bool:
        with self._lock:
            return backend_id in self._backends

    def alias_for(self, backend_id: str) -> str:
        """Public alias under which this backend's capabilities are published."""
        return alias_for(backend_id, self.aliases)
