"""Static asset serving and the SPA fallback."""

import os
from pathlib import Path

import pytest

from conftest import APP_JS, INDEX_HTML
from healthmate_edge.static import AssetRoot


# ── AssetRoot ────────────────────────────────────────────────────────────────

def test_resolve_existing_file(dist_dir):
    assets = AssetRoot(str(dist_dir))
    asset = assets.resolve("/assets/app.js")
    assert Path(asset.path) == (dist_dir / "assets" / "app.js").resolve()
    assert asset.stat_result.st_size == len(APP_JS)


def test_resolve_directory_uses_index(dist_dir):
    assets = AssetRoot(str(dist_dir))
    assert Path(assets.resolve("/").path) == (dist_dir / "index.html").resolve()
    (dist_dir / "docs").mkdir()
    (dist_dir / "docs" / "index.html").write_text("<p>docs</p>")
    assert Path(assets.resolve("/docs").path) == (dist_dir / "docs" / "index.html").resolve()


@pytest.mark.parametrize(
    "path",
    ["/missing.js", "/assets", "/../secret.txt", "/assets/../../secret.txt", "/.env", "/assets/.hidden"],
)
def test_resolve_declines(dist_dir, path):
    (dist_dir / "assets" / ".hidden").write_text("x")
    assets = AssetRoot(str(dist_dir))
    assert assets.resolve(path) is None


def test_resolve_declines_symlink_out_of_root(dist_dir):
    link = dist_dir / "leak.txt"
    try:
        os.symlink(dist_dir.parent / "secret.txt", link)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")
    assert AssetRoot(str(dist_dir)).resolve("/leak.txt") is None


def test_missing_root_declines_everything(tmp_path):
    assets = AssetRoot(str(tmp_path / "nope"))
    assert assets.available is False
    assert assets.resolve("/index.html") is None
    assert assets.index() is None


# ── HTTP ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_serves_asset_bytes(client):
    r = await client.get("/assets/app.js")
    assert r.status_code == 200
    assert r.content == APP_JS
    assert "javascript" in r.headers["content-type"]
    assert r.headers["access-control-allow-origin"] == "*"


@pytest.mark.asyncio
async def test_serves_root_index(client):
    r = await client.get("/")
    assert r.status_code == 200
    assert r.content == INDEX_HTML


@pytest.mark.asyncio
async def test_serves_svg(client):
    r = await client.get("/favicon.svg")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("image/svg+xml")


@pytest.mark.asyncio
async def test_dotfile_falls_back_to_spa(client):
    r = await client.get("/.env")
    assert r.status_code == 200
    assert r.content == INDEX_HTML


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/nonexistent/route", "/dashboard", "/employees/42/report", "/assets/gone.js"])
async def test_spa_fallback(client, upstream, path):
    r = await client.get(path)
    assert r.status_code == 200
    assert r.content == INDEX_HTML
    assert r.headers["content-type"].startswith("text/html")
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_spa_fallback_only_for_reads(client):
    r = await client.post("/nonexistent/route", json={})
    assert r.status_code == 404
    assert r.json() == {"detail": "Not Found"}


@pytest.mark.asyncio
async def test_spa_fallback_without_build(make_settings, tmp_path):
    from httpx import AsyncClient, ASGITransport
    from healthmate_edge.main import create_app

    app = create_app(make_settings(STATIC_DIR=str(tmp_path / "no-dist")))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        r = await c.get("/dashboard")
    assert r.status_code == 404
    assert r.json() == {"detail": "SPA entry document not found"}


@pytest.mark.asyncio
async def test_asset_revalidation_returns_304(client):
    first = await client.get("/assets/app.js")
    etag = first.headers["etag"]
    r = await client.get("/assets/app.js", headers={"If-None-Match": etag})
    assert r.status_code == 304
    assert r.content == b""


@pytest.mark.asyncio
async def test_asset_removed_after_lookup_falls_back(make_settings, dist_dir):
    from httpx import AsyncClient, ASGITransport
    from healthmate_edge.main import create_app
    from healthmate_edge.routing import RouteDecision, classify_request

    app = create_app(make_settings())
    route = classify_request("GET", "/assets/app.js", "/api", app.state.assets)
    assert route.decision is RouteDecision.STATIC_ASSET
    assert route.asset is not None

    (dist_dir / "assets" / "app.js").unlink()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        r = await c.get("/assets/app.js")
    assert r.status_code == 200
    assert r.content == INDEX_HTML
