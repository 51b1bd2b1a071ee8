"""
Exception hierarchy for the aggregation gateway.

Every error carries a JSON-RPC error code so the inbound surface can turn it
into an error envelope without inspecting its type.

Categories:
    - resolution: unknown alias/backend, empty name (never retried)
    - availability: backend DOWN, circuit OPEN (never retried by the router)
    - transport: HTTP failure, timeout, malformed body (retried by the RPC layer)
    - upstream: a well-formed error envelope from a backend (never retried)
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base class for all gateway errors."""

    code: int = -32603


class InvalidNameError(GatewayError):
    """A capability name or resource URI could not be interpreted."""

    code = -32602


class BackendNotFoundError(GatewayError):
    """No registered backend owns the requested capability."""

    code = -32001

    def __init__(self, name: str, backend_id: str) -> None:
        super().__init__(f"Backend not found for '{name}' (resolved to {backend_id})")
        self.name = name
        self.backend_id = backend_id


class BackendUnavailableError(GatewayError):
    """The owning backend is marked DOWN."""

    code = -32002

    def __init__(self, backend_id: str, status: str, latency: float = 0.0) -> None:
        super().__init__(
            f"Backend {backend_id} is unavailable (status: {status}, "
            f"last latency: {latency * 1000:.0f}ms)"
        )
        self.backend_id = backend_id
        self.status = status
        self.latency = latency


class CircuitOpenError(GatewayError):
    """The backend's circuit is OPEN; the call was not attempted."""

    code = -32003

    def __init__(self, backend_id: str, remaining: float) -> None:
        super().__init__(f"Circuit open for {backend_id}, retry in {remaining:.1f}s")
        self.backend_id = backend_id
        self.remaining = remaining


class TransportError(GatewayError):
    """HTTP-level failure talking to a backend. Retryable."""

    code = -32000

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ResponseParseError(TransportError):
    """Body was neither a JSON-RPC envelope nor an event-stream frame."""


class ProtocolViolationError(TransportError):
    """Envelope carried neither a result nor an error."""


class RetryExhaustedError(TransportError):
    """All retry attempts failed; ``__cause__`` is the last failure."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(
            f"Request failed after {attempts} attempts: {last_error}",
            getattr(last_error, "status", None),
        )
        self.attempts = attempts
        self.last_error = last_error


class UpstreamRpcError(GatewayError):
    """A backend answered with a JSON-RPC error envelope."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"JSON-RPC error {code}: {message}")
        self.code = code
        self.rpc_message = message
        self.data = data


class InvalidParamsError(GatewayError):
    """A request lacked a required parameter."""

    code = -32602


class MethodNotFoundError(GatewayError):
    """The gateway does not implement the requested protocol method."""

    code = -32601

    def __init__(self, method: str) -> None:
        super().__init__(f"Unknown method: {method}")
        self.method = method
