"""Tests for the HTTP transport against a local aiohttp server."""

from __future__ import annotations

import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from mcp_aggregator.errors import TransportError
from mcp_aggregator.transport import ACCEPT, HttpReply, HttpTransport


def backend_app() -> web.Application:
    async def echo(request: web.Request) -> web.Response:
        body = await request.json()
        return web.json_response(
            {"received": body, "accept": request.headers.get("Accept"), "key": request.headers.get("X-Key")},
            headers={"Mcp-Session-Id": "abc"},
        )

    async def slow(_request: web.Request) -> web.Response:
        await asyncio.sleep(1)
        return web.Response(text="late")

    async def garbled(_request: web.Request) -> web.Response:
        return web.Response(body=b"\xff\xfe\xfa", content_type="application/json", charset="utf-8")

    async def status(request: web.Request) -> web.Response:
        return web.Response(status=503, text=request.headers.get("X-Key", ""))

    app = web.Application()
    app.router.add_post("/mcp", echo)
    app.router.add_post("/slow", slow)
    app.router.add_post("/garbled", garbled)
    app.router.add_get("/actuator/health", status)
    return app


class TestHttpReply:
    def test_ok_range(self):
        assert HttpReply.build(204).ok
        assert not HttpReply.build(302).ok
        assert not HttpReply.build(500).ok

    def test_headers_case_insensitive(self):
        reply = HttpReply.build(200, "", {"Mcp-Session-Id": "x"})
        assert reply.header("mcp-session-id") == "x"
        assert reply.header("missing") is None


class TestHttpTransport:
    """Tests for requests over a real socket."""

    @pytest.mark.asyncio
    async def test_post_json(self):
        transport = HttpTransport()
        async with TestServer(backend_app()) as server:
            reply = await transport.post_json(
                str(server.make_url("/mcp")), {"method": "ping"}, {"X-Key": "k"}
            )
        await transport.close()

        assert reply.ok
        assert reply.header("mcp-session-id") == "abc"
        data = json.loads(reply.text)
        assert data["received"] == {"method": "ping"}
        assert data["accept"] == ACCEPT
        assert data["key"] == "k"

    @pytest.mark.asyncio
    async def test_get_returns_non_success_status(self):
        transport = HttpTransport()
        async with TestServer(backend_app()) as server:
            reply = await transport.get(str(server.make_url("/actuator/health")), {"X-Key": "k"})
        await transport.close()

        assert reply.status == 503
        assert reply.text == "k"

    @pytest.mark.asyncio
    async def test_timeout_becomes_transport_error(self):
        transport = HttpTransport()
        async with TestServer(backend_app()) as server:
            with pytest.raises(TransportError, match="Timed out"):
                await transport.post_json(str(server.make_url("/slow")), {}, timeout=0.05)
        await transport.close()

    @pytest.mark.asyncio
    async def test_connection_refused_becomes_transport_error(self):
        transport = HttpTransport()
        async with TestServer(backend_app()) as server:
            url = str(server.make_url("/mcp"))
        with pytest.raises(TransportError):
            await transport.post_json(url, {})
        await transport.close()

    @pytest.mark.asyncio
    async def test_undecodable_body_becomes_transport_error(self):
        transport = HttpTransport()
        async with TestServer(backend_app()) as server:
            with pytest.raises(TransportError, match="Undecodable"):
                await transport.post_json(str(server.make_url("/garbled")), {})
        await transport.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        transport = HttpTransport()
        await transport.close()
        await transport.close()
