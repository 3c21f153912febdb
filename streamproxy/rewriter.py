"""HLS manifest rewriting.

Every reference a manifest carries is pointed back at the proxy, so a
player that loads ``{proxy_base}`` never talks to the origin directly:

- segment / variant lines, relative or absolute, become
  ``{proxy_base}/<path under the channel origin>`` with their query kept;
- references that fall outside the channel origin (the origin redirected to
  another host, or lists a foreign CDN) go through the tunnel as
  ``{proxy_base}/__proxy__/<percent-encoded URL>``;
- key ``URI="..."`` attributes (EXT-X-KEY, EXT-X-SESSION-KEY) become
  ``{proxy_base}/<filename>`` when absolute and ``{proxy_base}/<value>``
  when relative;
- other ``URI="..."`` attributes (EXT-X-MAP, EXT-X-MEDIA, ...) are
  resolved against the manifest URL like segment lines;
- any other absolute URL on the channel's origin host found in a tag line
  (``X-ASSET-URI``, ``VALUE``, ...) is pointed at the proxy as well.

Everything else (tags, comments, blank lines, line endings) is left as-is.
Output that already points at ``proxy_base`` is never touched again, which
makes ``rewrite`` idempotent.
"""

import logging
from enum import Enum
from typing import NamedTuple
from urllib.parse import quote, urljoin, urlsplit

from streamproxy.errors import RewriteFailure
from streamproxy.resolver import TUNNEL_MARKER

logger = logging.getLogger("rewriter")

_URI_ATTR = 'URI="'
_HTTP_SCHEMES = ("http", "https")
_KEY_TAGS = ("#EXT-X-KEY:", "#EXT-X-SESSION-KEY:")
_URL_TERMINATORS = frozenset("\"' \t")


class LineKind(str, Enum):
    BLANK = "blank"
    COMMENT = "comment"
    KEY_ATTRIBUTE = "key_attribute"
    REFERENCE = "reference"


class Line(NamedTuple):
    kind: LineKind
    text: str
    ending: str  # "\r" when the manifest uses CRLF, else ""


def _find_uri_attr(text: str, start: int = 0) -> int:
    """Index of the next ``URI="`` that starts an attribute, or -1."""
    pos = text.find(_URI_ATTR, start)
    while pos != -1:
        if pos > 0 and text[pos - 1] in ":, \t":
            return pos
        pos = text.find(_URI_ATTR, pos + 1)
    return -1


def classify_line(text: str) -> LineKind:
    stripped = text.strip()
    if not stripped:
        return LineKind.BLANK
    if stripped.startswith("#"):
        if _find_uri_attr(stripped) != -1:
            return LineKind.KEY_ATTRIBUTE
        return LineKind.COMMENT
    return LineKind.REFERENCE


def scan(text: str) -> list[Line]:
    lines = []
    for raw in text.split("\n"):
        ending = ""
        if raw.endswith("\r"):
            raw, ending = raw[:-1], "\r"
        lines.append(Line(classify_line(raw), raw, ending))
    return lines


def _is_http(url: str) -> bool:
    return url[:8].lower().startswith(("http://", "https://"))


def _has_foreign_scheme(url: str) -> bool:
    # skd://, data:, etc. are not fetchable through the proxy.
    scheme = urlsplit(url).scheme
    return bool(scheme) and scheme.lower() not in _HTTP_SCHEMES


def to_proxy_reference(absolute_url: str, proxy_base: str, origin_base: str) -> str:
    """Turn an absolute upstream URL into a URL served by this proxy."""
    prefix = origin_base.rstrip("/") + "/"
    if absolute_url.startswith(prefix):
        return f"{proxy_base}/{absolute_url[len(prefix):]}"
    return f"{proxy_base}/{TUNNEL_MARKER}{quote(absolute_url, safe='')}"


def rewrite_reference(ref: str, proxy_base: str, origin_base: str, final_url: str) -> str:
    if ref.startswith(proxy_base + "/"):
        return ref
    if _is_http(ref):
        return to_proxy_reference(ref, proxy_base, origin_base)
    if _has_foreign_scheme(ref):
        return ref
    # Relative to where the manifest actually came from, after redirects.
    return to_proxy_reference(urljoin(final_url, ref), proxy_base, origin_base)


def rewrite_uri_value(value: str, proxy_base: str, origin_base: str) -> str:
    if value.startswith(proxy_base + "/"):
        return value
    if _is_http(value):
        parts = urlsplit(value)
        filename = parts.path.rsplit("/", 1)[-1]
        if not filename:
            return to_proxy_reference(value, proxy_base, origin_base)
        if parts.query:
            filename = f"{filename}?{parts.query}"
        return f"{proxy_base}/{filename}"
    if _has_foreign_scheme(value):
        return value
    return f"{proxy_base}/{value.lstrip('/')}"


def rewrite_uri_attributes(text: str, proxy_base: str, origin_base: str, final_url: str) -> str:
    is_key_tag = text.lstrip().startswith(_KEY_TAGS)
    out = []
    pos = 0
    while True:
        start = _find_uri_attr(text, pos)
        if start == -1:
            break
        value_start = start + len(_URI_ATTR)
        value_end = text.find('"', value_start)
        if value_end == -1:
            raise RewriteFailure(f"unterminated URI attribute: {text!r}")
        value = text[value_start:value_end]
        out.append(text[pos:value_start])
        if is_key_tag:
            out.append(rewrite_uri_value(value, proxy_base, origin_base))
        else:
            out.append(rewrite_reference(value, proxy_base, origin_base, final_url))
        pos = value_end
    out.append(text[pos:])
    return "".join(out)


def _origin_of(url: str) -> tuple[str, str]:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower()


def rewrite_embedded_urls(text: str, proxy_base: str, origin_base: str) -> str:
    """Point absolute URLs on the origin's host inside a tag line at the proxy.

    A URL runs up to the next quote or whitespace.
    """
    origin = _origin_of(origin_base)
    out = []
    pos = 0
    while True:
        start = text.find("http", pos)
        if start == -1:
            break
        end = start
        while end < len(text) and text[end] not in _URL_TERMINATORS:
            end += 1
        url = text[start:end]
        out.append(text[pos:start])
        if _is_http(url) and _origin_of(url) == origin and not url.startswith(proxy_base + "/"):
            out.append(to_proxy_reference(url, proxy_base, origin_base))
        else:
            out.append(url)
        pos = end
    out.append(text[pos:])
    return "".join(out)


def rewrite_line(line: Line, proxy_base: str, origin_base: str, final_url: str) -> str:
    if line.kind is LineKind.KEY_ATTRIBUTE:
        text = rewrite_uri_attributes(line.text, proxy_base, origin_base, final_url)
        return rewrite_embedded_urls(text, proxy_base, origin_base)
    if line.kind is LineKind.COMMENT:
        return rewrite_embedded_urls(line.text, proxy_base, origin_base)
    if line.kind is LineKind.REFERENCE:
        ref = line.text.strip()
        lead = line.text[: len(line.text) - len(line.text.lstrip())]
        trail = line.text[len(line.text.rstrip()):]
        return lead + rewrite_reference(ref, proxy_base, origin_base, final_url) + trail
    return line.text


def rewrite(text: str, proxy_base: str, origin_base: str, final_url: str) -> str:
    """Rewrite a manifest so every reference resolves through ``proxy_base``.

    ``proxy_base`` is ``{request origin}/{channel id}`` without a trailing
    slash, ``origin_base`` the channel's configured origin and ``final_url``
    the URL the manifest was served from after redirects.

    Raises ``RewriteFailure`` when the manifest cannot be transformed safely.
    """
    proxy_base = proxy_base.rstrip("/")
    try:
        rewritten = [
            rewrite_line(line, proxy_base, origin_base, final_url) + line.ending
            for line in scan(text)
        ]
    except ValueError as e:
        # urljoin/urlsplit reject malformed URLs such as "http://[::1"
        raise RewriteFailure(str(e)) from e
    return "\n".join(rewritten)


def rewrite_body(body: bytes, proxy_base: str, origin_base: str, final_url: str) -> bytes:
    try:
        text = body.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise RewriteFailure(f"manifest is not valid UTF-8: {e}") from e
    result = rewrite(text, proxy_base, origin_base, final_url)
    logger.debug("Rewrote manifest from %s (%d bytes)", final_url, len(body))
    return result.encode("utf-8")
