"""
HTTP transport toward backends.

A thin wrapper over one shared ``aiohttp.ClientSession`` that turns every
network-level failure into ``TransportError`` and hands back the full body as
text, so the RPC layer can parse either response encoding.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy

from mcp_aggregator.errors import TransportError

logger = logging.getLogger(__name__)

ACCEPT = "application/json, text/event-stream"


@dataclass(frozen=True)
class HttpReply:
    """Status, headers, and body text of one backend response."""

    status: int
    headers: CIMultiDictProxy[str] = field(
        default_factory=lambda: CIMultiDictProxy(CIMultiDict())
    )
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        return self.headers.get(name)

    @classmethod
    def build(cls, status: int, text: str = "", headers: Mapping[str, str] | None = None) -> HttpReply:
        return cls(status, CIMultiDictProxy(CIMultiDict(headers or {})), text)


class HttpTransport:
    """Issues HTTP requests to backends over a lazily created client session."""

    def __init__(self) -> None:
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: Mapping[str, str] | None = None,
        timeout: float = 30.0,
    ) -> HttpReply:
        """POST a JSON body.

        Raises:
            TransportError: On connection failure or timeout
        """
        request_headers = {
            "Content-Type": "application/json",
            "Accept": ACCEPT,
            **(headers or {}),
        }
        try:
            async with self._get_session().post(
                url,
                json=payload,
                headers=request_headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                text = await resp.text()
                return HttpReply(resp.status, CIMultiDictProxy(CIMultiDict(resp.headers)), text)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timed out after {timeout}s: {url}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"HTTP error for {url}: {e}") from e
        except UnicodeDecodeError as e:
            raise TransportError(f"Undecodable response body from {url}: {e}") from e

    async def get(
        self, url: str, headers: Mapping[str, str] | None = None, timeout: float = 5.0
    ) -> HttpReply:
        """Plain GET, used for status probes.

        Raises:
            TransportError: On connection failure or timeout
        """
        try:
            async with self._get_session().get(
                url, headers=dict(headers or {}), timeout=aiohttp.ClientTimeout(total=timeout)
            ) as resp:
                text = await resp.text()
                return HttpReply(resp.status, CIMultiDictProxy(CIMultiDict(resp.headers)), text)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timed out after {timeout}s: {url}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"HTTP error for {url}: {e}") from e
        except UnicodeDecodeError as e:
            raise TransportError(f"Undecodable response body from {url}: {e}") from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
