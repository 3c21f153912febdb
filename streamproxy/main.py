"""FastAPI application entrypoint — lifespan, middleware and routes."""

import logging
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from streamproxy.api.health import router as health_router
from streamproxy.api.proxy import router as proxy_router
from streamproxy.channels import ChannelRegistry
from streamproxy.config import Settings, _resolve_env_file, settings
from streamproxy.upstream import UpstreamClient

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("main")


def create_app(
    app_settings: Settings = settings,
    registry: ChannelRegistry | None = None,
    upstream_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the proxy app.

    The channel registry is read from configuration at startup unless one is
    passed in; ``upstream_transport`` replaces the network (tests).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        env_path = _resolve_env_file()
        logger.info(
            "Starting stream proxy (env_file=%s, exists=%s)",
            env_path, env_path.exists(),
        )
        app.state.registry = registry if registry is not None else ChannelRegistry.from_settings(app_settings)
        app_settings.warn_insecure_defaults(len(app.state.registry))
        app.state.start_time = time.time()

        upstream = UpstreamClient(app_settings, transport=upstream_transport)
        await upstream.start()
        app.state.upstream = upstream

        logger.info("Proxy ready (%d channel(s): %s)", len(app.state.registry), ", ".join(app.state.registry))
        yield

        logger.info("Shutting down")
        await upstream.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Stream Proxy",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = app_settings

    # CORS preflight; proxied responses also set their own headers.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    # Health first: the proxy route matches any two-segment path.
    app.include_router(health_router)
    app.include_router(proxy_router)
    return app


app = create_app()
