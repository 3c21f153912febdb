"""Builds the responses the proxy sends back to players."""

from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
DEFAULT_TUNNEL_MEDIA_TYPE = "application/octet-stream"


def playlist_response(body: bytes, max_age: int) -> Response:
    return Response(
        content=body,
        media_type=PLAYLIST_MEDIA_TYPE,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Headers": "*",
            "Cache-Control": f"public, max-age={max_age}",
        },
    )


def stream_response(
    chunks: AsyncIterator[bytes],
    content_type: str | None,
    max_age: int,
    *,
    tunnel: bool = False,
    on_close: Callable[[], Awaitable[None]] | None = None,
) -> StreamingResponse:
    """Relay a segment or tunneled body without buffering it.

    Segments keep the upstream Content-Type verbatim (none if the origin sent
    none); tunneled bodies fall back to ``application/octet-stream``.
    ``on_close`` runs once the response is over, even when the client left
    before the first chunk was pulled from *chunks*.
    """
    if tunnel and not content_type:
        content_type = DEFAULT_TUNNEL_MEDIA_TYPE
    headers = {
        "Access-Control-Allow-Origin": "*",
        "Cache-Control": f"public, max-age={max_age}",
    }
    if content_type:
        headers["Content-Type"] = content_type
    background = BackgroundTask(on_close) if on_close is not None else None
    return StreamingResponse(chunks, status_code=200, headers=headers, background=background)


def error_response(status_code: int, message: str) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=status_code)
