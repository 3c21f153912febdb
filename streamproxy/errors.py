"""Error taxonomy for the proxy pipeline.

Every stage raises a ``ProxyError`` subclass tagged with its ``ErrorKind``.
The route handler in ``streamproxy.api.proxy`` is the only place these are
turned into HTTP responses.
"""

from enum import Enum


class ErrorKind(str, Enum):
    UNKNOWN_CHANNEL = "unknown_channel"
    TUNNEL_REJECTED = "tunnel_rejected"
    UPSTREAM_UNREACHABLE = "upstream_unreachable"
    UPSTREAM_ERROR = "upstream_error"
    REWRITE_FAILURE = "rewrite_failure"
    UNCAUGHT = "uncaught"


class ProxyError(Exception):
    kind: ErrorKind = ErrorKind.UNCAUGHT
    status_code: int = 500

    @property
    def body(self) -> str:
        return f"Proxy Error: {self}"


class UnknownChannel(ProxyError):
    kind = ErrorKind.UNKNOWN_CHANNEL
    status_code = 404

    def __init__(self, channel_id: str):
        super().__init__(channel_id)
        self.channel_id = channel_id

    @property
    def body(self) -> str:
        return "Channel not found"


class TunnelRejected(ProxyError):
    kind = ErrorKind.TUNNEL_REJECTED
    status_code = 403

    def __init__(self, target: str):
        super().__init__(target)
        self.target = target

    @property
    def body(self) -> str:
        return "Tunnel target not allowed"


class UpstreamUnreachable(ProxyError):
    """Network-level failure talking to the origin (DNS, connect, reset, timeout)."""

    kind = ErrorKind.UPSTREAM_UNREACHABLE
    status_code = 500


class UpstreamError(ProxyError):
    """The origin answered with a non-2xx status; the status is relayed as-is."""

    kind = ErrorKind.UPSTREAM_ERROR

    def __init__(self, status: int):
        super().__init__(status)
        self.status_code = status

    @property
    def body(self) -> str:
        return f"Upstream Error: {self.status_code}"


class RewriteFailure(ProxyError):
    """Manifest text could not be rewritten. Never surfaced to the client."""

    kind = ErrorKind.REWRITE_FAILURE
