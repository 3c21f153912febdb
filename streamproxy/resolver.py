"""Maps an inbound channel request onto the upstream URL to fetch."""

from collections.abc import Collection
from dataclasses import dataclass
from enum import Enum
from urllib.parse import unquote, urlsplit

from streamproxy.channels import Channel, ChannelRegistry
from streamproxy.errors import TunnelRejected

TUNNEL_MARKER = "__proxy__/"


class TargetMode(str, Enum):
    PLAYLIST = "playlist"
    # Non-empty rest path; the classifier decides playlist vs segment
    # once the upstream headers are in.
    SEGMENT = "segment"
    TUNNEL = "tunnel"


@dataclass(frozen=True)
class TargetSpec:
    upstream_url: str
    mode: TargetMode
    channel: Channel


def join_origin(origin_base: str, path: str) -> str:
    """Join with exactly one ``/`` between base and path."""
    return origin_base.rstrip("/") + "/" + path.lstrip("/")


def decode_tunnel_target(encoded: str, allowed_hosts: Collection[str] = ()) -> str:
    url = unquote(encoded)
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise TunnelRejected(url)
    if allowed_hosts and parts.hostname.lower() not in allowed_hosts:
        raise TunnelRejected(url)
    return url


def resolve(
    channel_id: str,
    rest_path: str,
    query: str,
    registry: ChannelRegistry,
    allowed_tunnel_hosts: Collection[str] = (),
) -> TargetSpec:
    """Compute the upstream target for ``/{channel_id}/{rest_path}{query}``.

    ``rest_path`` is the raw (still percent-encoded) path after the channel
    id and ``query`` the raw query string including its leading ``?``. The
    query is appended untouched: origins such as Nimble keep their session
    token (``nimblesessionid``) there.
    """
    channel = registry.lookup(channel_id)

    if rest_path.startswith(TUNNEL_MARKER):
        url = decode_tunnel_target(rest_path[len(TUNNEL_MARKER):], allowed_tunnel_hosts)
        return TargetSpec(url, TargetMode.TUNNEL, channel)

    if rest_path:
        return TargetSpec(join_origin(channel.origin_base, rest_path) + query, TargetMode.SEGMENT, channel)

    default = "playlist.m3u8" if channel.is_smil else "index.m3u8"
    return TargetSpec(join_origin(channel.origin_base, default) + query, TargetMode.PLAYLIST, channel)


@dataclass(frozen=True)
class ProxyRequest:
    channel_id: str
    rest_path: str
    query: str


def parse_proxy_request(raw_path: str, raw_query: str = "") -> ProxyRequest:
    """Split ``/{channel_id}/{rest...}`` into its parts.

    Empty segments are dropped, so ``//ch//a.ts`` reads as ``/ch/a.ts``.
    The rest path stays percent-encoded.
    """
    parts = [p for p in raw_path.split("/") if p]
    channel_id = parts[0] if parts else ""
    query = f"?{raw_query}" if raw_query else ""
    return ProxyRequest(channel_id, "/".join(parts[1:]), query)
