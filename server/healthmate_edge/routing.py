"""Request classification: which stage answers a request."""

import enum
from typing import NamedTuple, Optional

from healthmate_edge.rewrite import matches_prefix
from healthmate_edge.static import Asset, AssetRoot

HEALTH_PATH = "/health"

_READ_METHODS = ("GET", "HEAD")


class RouteDecision(str, enum.Enum):
    HEALTH = "health"
    STATIC_ASSET = "static_asset"
    PROXY = "proxy"
    SPA_FALLBACK = "spa_fallback"


class Route(NamedTuple):
    decision: RouteDecision
    asset: Optional[Asset] = None  # set for STATIC_ASSET


def classify_request(method: str, path: str, prefix: str, assets: AssetRoot) -> Route:
    """Fixed priority chain: health, static file, proxy prefix, SPA fallback.

    Preflight (OPTIONS) requests are answered by the CORS middleware and never
    get here.
    """
    method = method.upper()
    if method in _READ_METHODS:
        if path == HEALTH_PATH:
            return Route(RouteDecision.HEALTH)
        asset = assets.resolve(path)
        if asset is not None:
            return Route(RouteDecision.STATIC_ASSET, asset)
    if matches_prefix(path, prefix):
        return Route(RouteDecision.PROXY)
    return Route(RouteDecision.SPA_FALLBACK)
