"""Upstream HTTP client. Fetches manifests and segments from channel origins.

Requests look like they come from a browser on the origin's own site:
the client's User-Agent (or a browser-like default) and a Referer equal to
the target's origin. No Origin header is sent; several live CDNs refuse
cross-origin requests that carry one.

Responses are opened in streaming mode. The caller owns the returned
``httpx.Response`` and must either ``aread()`` it or drain it through
``iter_body()``, which closes it when done.
"""

import logging
from collections.abc import AsyncIterator, Mapping
from urllib.parse import urlsplit

import httpx

from streamproxy.errors import UpstreamError, UpstreamUnreachable

logger = logging.getLogger("upstream")


def url_origin(url: str) -> str:
    """``scheme://host[:port]`` of *url*, without credentials."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://{host}"


class UpstreamClient:
    """Shared async client for all origin requests."""

    def __init__(self, settings, transport: httpx.AsyncBaseTransport | None = None):
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    # -- Lifecycle -----------------------------------------------------------

    async def start(self):
        if self._client is None:
            timeout = httpx.Timeout(
                connect=self._settings.upstream_connect_timeout_s,
                read=self._settings.upstream_read_timeout_s,
                write=self._settings.upstream_connect_timeout_s,
                pool=self._settings.upstream_connect_timeout_s,
            )
            self._client = httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                transport=self._transport,
            )

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # -- Requests ------------------------------------------------------------

    def build_headers(self, target_url: str, inbound_headers: Mapping[str, str]) -> dict[str, str]:
        return {
            "User-Agent": inbound_headers.get("user-agent") or self._settings.default_user_agent,
            "Referer": url_origin(target_url) + "/",
        }

    async def fetch(self, target_url: str, inbound_headers: Mapping[str, str]) -> httpx.Response:
        """GET *target_url*, following redirects, and return the open response.

        Raises ``UpstreamUnreachable`` on network failure and
        ``UpstreamError`` (already closed) on a non-2xx status.
        """
        await self.start()
        request = self._client.build_request(
            "GET", target_url, headers=self.build_headers(target_url, inbound_headers),
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.RequestError as e:
            logger.warning("Upstream unreachable: %s (%s)", target_url, e.__class__.__name__)
            raise UpstreamUnreachable(str(e) or e.__class__.__name__) from e

        if not response.is_success:
            await response.aclose()
            logger.info("Upstream returned %d for %s", response.status_code, target_url)
            raise UpstreamError(response.status_code)
        return response

    async def iter_body(self, response: httpx.Response) -> AsyncIterator[bytes]:
        """Relay the body chunk by chunk, closing the response however it ends.

        Client disconnects cancel the consuming task, which lands in the
        ``finally`` and releases the upstream connection.
        """
        try:
            async for chunk in response.aiter_bytes(chunk_size=self._settings.stream_chunk_size):
                yield chunk
        finally:
            await response.aclose()
