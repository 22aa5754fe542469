"""Catch-all edge route: health, static assets, proxy, SPA fallback."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from healthmate_edge.routing import RouteDecision, classify_request
from healthmate_edge.schemas import HealthResponse

router = APIRouter(tags=["Edge"])

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


def health_check() -> HealthResponse:
    """Liveness only; never touches the upstream."""
    now = datetime.now(timezone.utc)
    return HealthResponse(
        status="ok",
        timestamp=now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    )


def spa_fallback(request: Request) -> Response:
    if request.method not in ("GET", "HEAD"):
        return JSONResponse(status_code=404, content={"detail": "Not Found"})
    assets = request.app.state.assets
    index = assets.index()
    if index is None:
        return JSONResponse(status_code=404, content={"detail": "SPA entry document not found"})
    return assets.response(index, request.scope)


@router.api_route("/{full_path:path}", methods=_ALL_METHODS, include_in_schema=False)
async def dispatch(request: Request, full_path: str):
    state = request.app.state
    route = classify_request(
        request.method, request.url.path, state.target.rule.prefix, state.assets
    )

    if route.decision is RouteDecision.HEALTH:
        return JSONResponse(content=health_check().model_dump())
    if route.decision is RouteDecision.STATIC_ASSET:
        return state.assets.response(route.asset, request.scope)
    if route.decision is RouteDecision.PROXY:
        return await state.forwarder.forward(request)
    return spa_fallback(request)
