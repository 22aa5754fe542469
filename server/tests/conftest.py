"""Shared fixtures: a throwaway SPA build and a recording fake upstream."""

import httpx
import pytest
from httpx import AsyncClient, ASGITransport

from healthmate_edge.config import Settings
from healthmate_edge.main import create_app

INDEX_HTML = b"<!doctype html><html><body><div id=\"root\"></div></body></html>"
APP_JS = b"console.log('healthmate');\n"

UPSTREAM = "https://upstream.test"


class FakeUpstream:
    """MockTransport handler that records what it was sent."""

    def __init__(self, handler=None):
        self.requests: list[httpx.Request] = []
        self.handler = handler

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        return httpx.Response(200, json={"ok": True})

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def dist_dir(tmp_path):
    dist = tmp_path / "dist"
    (dist / "assets").mkdir(parents=True)
    (dist / "index.html").write_bytes(INDEX_HTML)
    (dist / "assets" / "app.js").write_bytes(APP_JS)
    (dist / "favicon.svg").write_text("<svg xmlns=\"http://www.w3.org/2000/svg\"/>")
    (dist / ".env").write_text("SECRET=1")
    (tmp_path / "secret.txt").write_text("outside the build")
    return dist


@pytest.fixture
def make_settings(dist_dir):
    def _make(**overrides) -> Settings:
        values = dict(
            UPSTREAM_URL=UPSTREAM,
            STATIC_DIR=str(dist_dir),
            PROXY_PREFIX="/api",
            REWRITE_POLICY="replace_preserve",
            REWRITE_TARGET="/healthmate",
            PROXY_TIMEOUT=60.0,
        )
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def events():
    return []


@pytest.fixture
def edge_app(make_settings, upstream, events):
    return create_app(
        make_settings(),
        transport=httpx.MockTransport(upstream),
        observer=events.append,
    )


@pytest.fixture
async def client(edge_app):
    transport = ASGITransport(app=edge_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
