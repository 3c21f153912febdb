"""Test configuration — fake origins and an app wired to them."""

import os
from collections.abc import Callable

# Keep a developer's .env out of the tests — must be set before any
# streamproxy imports.
os.environ["STREAMPROXY_ENV_FILE"] = "tests/.env.does-not-exist"

import httpx  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from streamproxy.channels import ChannelRegistry  # noqa: E402
from streamproxy.config import Settings  # noqa: E402
from streamproxy.main import create_app  # noqa: E402

ORIGINS = {
    "1001": "https://origin.example/hls",
    "slash": "https://origin.example/hls/",
    "wowza": "https://wowza.example/live/smil:stream.smil",
}


class FakeOrigin:
    """Stands in for every upstream host; unknown URLs answer 404."""

    def __init__(self):
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url, status_code=200, content=b"", headers=None):
        self.routes[url] = lambda request: httpx.Response(status_code, content=content, headers=headers or {})

    def add_handler(self, url, handler):
        self.routes[url] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        return route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_settings():
    return Settings(_env_file=None)


@pytest.fixture
def registry():
    return ChannelRegistry(ORIGINS)


@pytest.fixture
def origin():
    return FakeOrigin()


@pytest.fixture
async def api_client(test_settings, registry, origin):
    app = create_app(test_settings, registry=registry, upstream_transport=origin.transport)
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
