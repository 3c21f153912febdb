"""Configuration via Pydantic Settings, loaded from .env file."""

import logging
import os
from functools import cached_property
from pathlib import Path

from pydantic_settings import BaseSettings

_cfg_logger = logging.getLogger("config")

# Resolve .env path relative to the project root (parent of streamproxy/) so
# it works regardless of the working directory the process is launched from.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _resolve_env_file() -> Path:
    """Return an absolute path to the .env file.

    If ``STREAMPROXY_ENV_FILE`` is set, use it (resolved relative to the
    project root when not absolute).  Otherwise default to
    ``<project_root>/.env``.
    """
    raw = os.environ.get("STREAMPROXY_ENV_FILE", "")
    if raw:
        p = Path(raw)
        return p if p.is_absolute() else _PROJECT_ROOT / p
    return _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # Externally visible origin used to build rewritten manifest URLs, e.g.
    # "https://tv.example.com". Empty = scheme and host of each request.
    public_base_url: str = ""

    # Channels: inline JSON object {"id": "https://origin/base"} and/or a
    # JSON file with the same shape. Inline entries override the file.
    channels: dict[str, str] = {}
    channels_file: str = ""

    # Upstream
    default_user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"
    upstream_connect_timeout_s: float = 10.0
    upstream_read_timeout_s: float = 30.0
    stream_chunk_size: int = 65536

    # Tunnel (__proxy__/<encoded url>) allow-list, comma-separated host names.
    # Empty = any host may be tunneled.
    tunnel_allowed_hosts: str = ""

    # -- Response headers -----------------------------------------------------

    playlist_max_age_s: int = 5
    segment_max_age_s: int = 30
    cors_allowed_origins: str = "*"

    model_config = {
        "env_file": str(_resolve_env_file()),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @cached_property
    def cors_origins(self) -> list[str]:
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]
        return origins or ["*"]

    @cached_property
    def tunnel_hosts(self) -> frozenset[str]:
        return frozenset(
            host.strip().lower() for host in self.tunnel_allowed_hosts.split(",") if host.strip()
        )

    @property
    def channels_path(self) -> Path:
        p = Path(self.channels_file)
        return p if p.is_absolute() else _PROJECT_ROOT / p

    def warn_insecure_defaults(self, channel_count: int):
        """Log warnings about risky configuration. Called once at startup."""
        if not self.tunnel_hosts:
            _cfg_logger.warning(
                "TUNNEL_ALLOWED_HOSTS is empty, so the __proxy__/ tunnel will relay "
                "any http(s) URL a client asks for. Set TUNNEL_ALLOWED_HOSTS "
                "before exposing the proxy to the internet."
            )
        if channel_count == 0:
            _cfg_logger.warning(
                "No channels configured. Set CHANNELS (JSON object) or CHANNELS_FILE."
            )


settings = Settings()
