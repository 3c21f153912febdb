"""Channel proxy routes: /{channel_id}[/{rest_path}][?query].

Request pipeline: resolve the target, fetch it, then either rewrite the
manifest or relay the body. ``proxy_channel`` is the one place failures are
turned into responses; nothing raised below it reaches the client as a
server error page.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import Response

from streamproxy.classifier import ContentKind, classify
from streamproxy.emitter import error_response, playlist_response, stream_response
from streamproxy.errors import ProxyError, RewriteFailure
from streamproxy.resolver import TargetMode, parse_proxy_request, resolve
from streamproxy.rewriter import rewrite_body

logger = logging.getLogger("proxy")

router = APIRouter()


def _raw_path(request: Request) -> str:
    # Tunnel targets and session tokens must reach the resolver still
    # percent-encoded, so read the undecoded path.
    raw = request.scope.get("raw_path") or request.scope["path"].encode("utf-8")
    path = raw.decode("utf-8", "replace").split("?", 1)[0]
    root_path = request.scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        path = path[len(root_path):]
    return path


def _public_origin(request: Request) -> str:
    configured = request.app.state.settings.public_base_url
    if configured:
        return configured.rstrip("/")
    return f"{request.url.scheme}://{request.url.netloc}"


@router.get("/{channel_id}")
@router.get("/{channel_id}/{rest_path:path}")
async def proxy_channel(request: Request):
    """Proxy a channel manifest, segment or tunneled URL."""
    try:
        return await _proxy(request)
    except ProxyError as e:
        logger.info("%s %s -> %d (%s)", request.method, request.url.path, e.status_code, e.kind.value)
        return error_response(e.status_code, e.body)
    except Exception as e:
        logger.exception("Unhandled error proxying %s", request.url.path)
        return error_response(500, f"Proxy Error: {e}")


async def _proxy(request: Request) -> Response:
    settings = request.app.state.settings
    upstream = request.app.state.upstream

    preq = parse_proxy_request(_raw_path(request), request.url.query)
    target = resolve(
        preq.channel_id,
        preq.rest_path,
        preq.query,
        request.app.state.registry,
        settings.tunnel_hosts,
    )
    logger.debug("%s/%s -> %s (%s)", preq.channel_id, preq.rest_path, target.upstream_url, target.mode.value)

    response = await upstream.fetch(target.upstream_url, request.headers)
    try:
        content_type = response.headers.get("content-type")

        if target.mode is TargetMode.PLAYLIST:
            kind = ContentKind.PLAYLIST
        else:
            # Tunneled playlists (redirected or foreign-CDN variants) are
            # rewritten too, so their segments stay behind the proxy.
            kind = classify(content_type, target.upstream_url)

        if kind is ContentKind.SEGMENT:
            return stream_response(
                upstream.iter_body(response),
                content_type,
                settings.segment_max_age_s,
                tunnel=target.mode is TargetMode.TUNNEL,
                on_close=response.aclose,
            )

        body = await response.aread()
    except BaseException:
        await response.aclose()
        raise
    await response.aclose()

    proxy_base = f"{_public_origin(request)}/{preq.channel_id}"
    try:
        body = rewrite_body(body, proxy_base, target.channel.origin_base, str(response.url))
    except RewriteFailure as e:
        logger.warning("Serving manifest from %s unrewritten: %s", response.url, e)
    return playlist_response(body, settings.playlist_max_age_s)
