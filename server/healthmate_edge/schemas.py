"""Pydantic request/response schemas and immutable proxy configuration."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from healthmate_edge.config import RewritePolicy, Settings


# ── Response bodies ──────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str


class ProxyErrorResponse(BaseModel):
    error: str = "Proxy error"
    message: str


# ── Upstream configuration ───────────────────────────────────────────────────

class RewriteRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    prefix: str = "/api"
    policy: RewritePolicy = RewritePolicy.REPLACE_PRESERVE
    replacement: str = "/healthmate"


class UpstreamTarget(BaseModel):
    """Where proxied requests go. Built once at startup, never mutated."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    rule: RewriteRule
    timeout: float = 60.0
    verify_tls: bool = False

    @classmethod
    def from_settings(cls, s: Settings) -> "UpstreamTarget":
        return cls(
            base_url=s.UPSTREAM_URL,
            rule=RewriteRule(
                prefix=s.PROXY_PREFIX,
                policy=s.REWRITE_POLICY,
                replacement=s.REWRITE_TARGET,
            ),
            timeout=s.PROXY_TIMEOUT,
            verify_tls=s.UPSTREAM_VERIFY_TLS,
        )


# ── Observability ────────────────────────────────────────────────────────────

class ProxyEvent(BaseModel):
    method: str
    path: str
    target: str
    outcome: str  # forwarded | responded | failed | abandoned
    status_code: Optional[int] = None
    message: Optional[str] = None
    elapsed_ms: Optional[float] = Field(default=None, ge=0)
