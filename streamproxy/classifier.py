"""Decides whether an upstream body is a manifest to rewrite or bytes to relay."""

from enum import Enum
from urllib.parse import urlsplit

PLAYLIST_CONTENT_TYPES = frozenset({
    "application/vnd.apple.mpegurl",
    "application/x-mpegurl",
    "audio/mpegurl",
    "audio/x-mpegurl",
})

# Content types specific enough to override a misleading .m3u8 extension.
_MEDIA_PREFIXES = ("video/", "audio/", "image/")


class ContentKind(str, Enum):
    PLAYLIST = "playlist"
    SEGMENT = "segment"


def _media_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def classify(content_type: str | None, target_url: str) -> ContentKind:
    media_type = _media_type(content_type)
    if media_type in PLAYLIST_CONTENT_TYPES:
        return ContentKind.PLAYLIST
    if media_type.startswith(_MEDIA_PREFIXES):
        return ContentKind.SEGMENT
    # Generic or missing type (text/plain, application/octet-stream, ...):
    # fall back to the requested path.
    if urlsplit(target_url).path.endswith(".m3u8"):
        return ContentKind.PLAYLIST
    return ContentKind.SEGMENT
