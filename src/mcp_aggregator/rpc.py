"""
JSON-RPC client toward backends.

Responses arrive either as a plain JSON envelope or as an event stream whose
first ``data:`` line carries the envelope. ``parse_envelope`` is the only place
that tells the two apart; ``unwrap_result`` turns an envelope into a result or
a typed error.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mcp_aggregator.errors import (
    ProtocolViolationError,
    ResponseParseError,
    RetryExhaustedError,
    TransportError,
    UpstreamRpcError,
)
from mcp_aggregator.session import SESSION_HEADER, SessionManager
from mcp_aggregator.transport import HttpReply, HttpTransport

if TYPE_CHECKING:
    from mcp_aggregator.config import RetryConfig

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
DATA_PREFIX = "data:"


@dataclass(frozen=True)
class RpcResponse:
    """A decoded JSON-RPC response envelope."""

    id: Any = None
    result: Any = None
    error: dict[str, Any] | None = None
    has_result: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RpcResponse:
        error = data.get("error")
        if error is not None and not isinstance(error, dict):
            error = {"code": -32603, "message": str(error)}
        return cls(
            id=data.get("id"),
            result=data.get("result"),
            error=error,
            has_result="result" in data,
        )


def parse_envelope(text: str) -> RpcResponse:
    """Decode a response body in either encoding.

    Raises:
        ResponseParseError: If the body is neither a JSON object nor an event
            stream with a ``data:`` line holding one
    """
    try:
        data = json.loads(text)
    except ValueError:
        data = None
        for line in text.splitlines():
            if line.startswith(DATA_PREFIX):
                payload = line[len(DATA_PREFIX) :].strip()
                try:
                    data = json.loads(payload)
                except ValueError as e:
                    raise ResponseParseError(f"Invalid JSON in event stream: {e}") from e
                break
        else:
            raise ResponseParseError("Could not parse response: no JSON body or data line")

    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON-RPC object, got {type(data).__name__}")
    return RpcResponse.from_dict(data)


def unwrap_result(envelope: RpcResponse) -> Any:
    """Return the envelope's result.

    Raises:
        UpstreamRpcError: If the envelope carries an error
        ProtocolViolationError: If it carries neither result nor error
    """
    if envelope.error is not None:
        raise UpstreamRpcError(
            int(envelope.error.get("code", -32603)),
            str(envelope.error.get("message", "Unknown error")),
            envelope.error.get("data"),
        )
    if not envelope.has_result:
        raise ProtocolViolationError("No result in JSON-RPC response")
    return envelope.result


def is_session_error(reply: HttpReply) -> bool:
    """A 4xx whose body mentions the session means the token went stale."""
    if not 400 <= reply.status < 500:
        return False
    body = reply.text.lower()
    return "session" in body or SESSION_HEADER.lower() in body


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff: ``base_delay * multiplier**attempt``, capped."""

    max_attempts: int = 3
    base_delay: float = 0.1
    multiplier: float = 2.0
    max_delay: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * self.multiplier**attempt, self.max_delay)

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.backoff_delay,
            multiplier=config.backoff_multiplier,
            max_delay=config.max_delay,
        )


class RpcClient:
    """Sends JSON-RPC requests to backend endpoints.

    Handles:
        - Session header attachment and one re-handshake on session expiry
        - Both response encodings
        - Retry with backoff for transport failures (``send_with_retry``)
    """

    def __init__(
        self,
        transport: HttpTransport,
        sessions: SessionManager,
        retry: RetryPolicy | None = None,
        timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self.sessions = sessions
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self._sleep = sleep

    def build_request(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        request: dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "method": method,
            "id": self.sessions.next_request_id(),
        }
        if params is not None:
            request["params"] = params
        return request

    async def send(
        self,
        endpoint: str,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
        backend_id: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send one request and return its result.

        Args:
            endpoint: Backend URL
            method: JSON-RPC method name
            params: Method parameters
            timeout: Seconds for this call (defaults to the read timeout)
            backend_id: Enables session handling for this backend
            headers: Extra headers configured for the backend

        Raises:
            TransportError: On HTTP failure, timeout, or an unparseable body
            UpstreamRpcError: If the backend answered with an error envelope
        """
        timeout = timeout or self.timeout
        request = self.build_request(method, params)
        base_headers = dict(headers or {})

        request_headers = dict(base_headers)
        if backend_id:
            token = await self.sessions.get_or_initialize(
                backend_id, endpoint, base_headers, timeout
            )
            if token:
                request_headers[SESSION_HEADER] = token

        reply = await self._transport.post_json(endpoint, request, request_headers, timeout)
        if backend_id:
            self.sessions.capture(backend_id, reply)

        if not reply.ok and backend_id and is_session_error(reply):
            logger.info(f"[{backend_id}] Session expired, re-initializing")
            self.sessions.invalidate(backend_id)
            token = await self.sessions.initialize(backend_id, endpoint, base_headers, timeout)
            if token:
                reply = await self._transport.post_json(
                    endpoint, request, {**base_headers, SESSION_HEADER: token}, timeout
                )
                self.sessions.capture(backend_id, reply)

        if not reply.ok:
            raise TransportError(f"Request failed: HTTP {reply.status} from {endpoint}", reply.status)

        return unwrap_result(parse_envelope(reply.text))

    async def send_with_retry(
        self,
        endpoint: str,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
        backend_id: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """``send`` with bounded exponential backoff on transport failures.

        Upstream error envelopes are raised at once; a logical error will not
        go away on retry.

        Raises:
            RetryExhaustedError: After ``max_attempts`` transport failures
            UpstreamRpcError: If the backend answered with an error envelope
        """
        policy = self.retry
        last_error: TransportError | None = None

        for attempt in range(policy.max_attempts):
            try:
                return await self.send(endpoint, method, params, timeout, backend_id, headers)
            except TransportError as e:
                last_error = e

            if attempt == policy.max_attempts - 1:
                break

            delay = policy.delay(attempt)
            logger.warning(
                f"[{backend_id or endpoint}] {method} failed "
                f"(attempt {attempt + 1}/{policy.max_attempts}), "
                f"retrying in {delay:.2f}s: {last_error}"
            )
            await self._sleep(delay)

        # max_attempts >= 1, so at least one failure was recorded
        raise RetryExhaustedError(policy.max_attempts, last_error) from last_error
