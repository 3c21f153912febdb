"""Channel registry: the static channel id to origin URL table."""

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from urllib.parse import urlsplit

from streamproxy.errors import UnknownChannel

logger = logging.getLogger("channels")


@dataclass(frozen=True)
class Channel:
    id: str
    origin_base: str

    @property
    def is_smil(self) -> bool:
        """Wowza-style origins point at a .smil descriptor and serve playlist.m3u8."""
        return ".smil" in self.origin_base


def _validate_origin(channel_id: str, origin: str) -> str:
    if not isinstance(origin, str):
        raise ValueError(f"Channel {channel_id!r}: origin must be a string, got {origin!r}")
    parts = urlsplit(origin)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Channel {channel_id!r}: origin {origin!r} is not an absolute http(s) URL")
    return origin


class ChannelRegistry(Mapping):
    """Read-only ``id -> Channel`` mapping, built once at startup."""

    def __init__(self, origins: Mapping[str, str] | None = None):
        channels = {}
        for channel_id, origin in (origins or {}).items():
            channel_id = str(channel_id).strip("/")
            if not channel_id or "/" in channel_id:
                raise ValueError(f"Invalid channel id {channel_id!r}")
            channels[channel_id] = Channel(channel_id, _validate_origin(channel_id, origin))
        self._channels = MappingProxyType(channels)

    def __getitem__(self, channel_id: str) -> Channel:
        return self._channels[channel_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    def lookup(self, channel_id: str) -> Channel:
        try:
            return self._channels[channel_id]
        except KeyError:
            raise UnknownChannel(channel_id) from None

    @classmethod
    def from_settings(cls, settings) -> "ChannelRegistry":
        """Merge the channels file (if any) with the inline ``CHANNELS`` table.

        Inline entries win over file entries with the same id.
        """
        origins: dict[str, str] = {}
        if settings.channels_file:
            path = settings.channels_path
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"{path}: expected a JSON object of channel id -> origin URL")
            origins.update(data)
            logger.info("Loaded %d channel(s) from %s", len(data), path)
        origins.update(settings.channels)
        return cls(origins)

