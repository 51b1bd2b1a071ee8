"""
Session management for the stateful (Streamable HTTP) transport variant.

A stateful backend hands out a session token in the ``Mcp-Session-Id`` response
header of its ``initialize`` reply and expects it echoed on every later request.
Stateless backends simply never send the header.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Mapping
from typing import Any

from mcp_aggregator.errors import TransportError
from mcp_aggregator.transport import HttpReply, HttpTransport
from mcp_aggregator.version import __version__

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"
PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "mcp-aggregator", "version": __version__}


class SessionManager:
    """Per-backend session tokens plus the process-wide request id counter.

    A backend maps to its token, or to ``None`` once a successful handshake
    showed it to be stateless. Backends that were never (successfully)
    initialized have no entry at all.
    """

    def __init__(self, transport: HttpTransport, timeout: float = 5.0) -> None:
        self._transport = transport
        self.timeout = timeout
        self._sessions: dict[str, str | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._ids = itertools.count(1)

    def next_request_id(self) -> int:
        return next(self._ids)

    def get(self, backend_id: str) -> str | None:
        return self._sessions.get(backend_id)

    def set(self, backend_id: str, token: str) -> None:
        if self._sessions.get(backend_id) != token:
            logger.info(f"[{backend_id}] Session: {token}")
        self._sessions[backend_id] = token

    def invalidate(self, backend_id: str) -> None:
        if self._sessions.pop(backend_id, None):
            logger.info(f"[{backend_id}] Session cleared")

    def capture(self, backend_id: str, reply: HttpReply) -> None:
        """Store the token if this reply carries one."""
        token = reply.header(SESSION_HEADER)
        if token:
            self.set(backend_id, token)

    def handshake_request(self) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "method": "initialize",
            "id": self.next_request_id(),
            "params": {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": dict(CLIENT_INFO),
            },
        }

    def _lock_for(self, backend_id: str) -> asyncio.Lock:
        lock = self._locks.get(backend_id)
        if lock is None:
            lock = self._locks[backend_id] = asyncio.Lock()
        return lock

    async def get_or_initialize(
        self,
        backend_id: str,
        endpoint: str,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> str | None:
        """Return the stored token, handshaking first if the backend is new.

        Concurrent first calls for one backend share a single handshake.
        """
        if backend_id in self._sessions:
            return self._sessions[backend_id]

        async with self._lock_for(backend_id):
            if backend_id in self._sessions:
                return self._sessions[backend_id]
            return await self._handshake(backend_id, endpoint, headers, timeout)

    async def initialize(
        self,
        backend_id: str,
        endpoint: str,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> str | None:
        """Force a fresh handshake, replacing whatever was stored."""
        async with self._lock_for(backend_id):
            self._sessions.pop(backend_id, None)
            return await self._handshake(backend_id, endpoint, headers, timeout)

    async def _handshake(
        self,
        backend_id: str,
        endpoint: str,
        headers: Mapping[str, str] | None,
        timeout: float | None,
    ) -> str | None:
        # Failures mean "no session"; the caller still tries statelessly.
        try:
            reply = await self._transport.post_json(
                endpoint, self.handshake_request(), headers, timeout or self.timeout
            )
        except TransportError as e:
            logger.warning(f"[{backend_id}] Session init failed: {e}")
            return None

        if not reply.ok:
            logger.warning(f"[{backend_id}] Session init failed: HTTP {reply.status}")
            return None

        token = reply.header(SESSION_HEADER)
        self._sessions[backend_id] = token
        if token:
            logger.info(f"[{backend_id}] Session: {token}")
        else:
            logger.debug(f"[{backend_id}] No session header, treating as stateless")
        return token
