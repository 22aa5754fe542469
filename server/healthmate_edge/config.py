"""Application configuration via pydantic-settings."""

import enum
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Repository root (this file lives at server/healthmate_edge/config.py)
_ROOT_DIR = Path(__file__).resolve().parent.parent.parent

DEFAULT_UPSTREAM_URL = "https://healthmatebackend-875662263.development.catalystserverless.com"


class RewritePolicy(str, enum.Enum):
    """How the proxy prefix is rewritten before forwarding."""

    STRIP = "strip"  # /api/foo -> /foo
    REPLACE_FIXED = "replace_fixed"  # /api/foo -> /healthmate
    REPLACE_PRESERVE = "replace_preserve"  # /api/foo -> /healthmate/foo


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Listener
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Upstream
    UPSTREAM_URL: str = DEFAULT_UPSTREAM_URL
    PROXY_PREFIX: str = "/api"
    REWRITE_POLICY: RewritePolicy = RewritePolicy.REPLACE_PRESERVE
    REWRITE_TARGET: str = "/healthmate"
    PROXY_TIMEOUT: float = 60.0
    UPSTREAM_VERIFY_TLS: bool = False

    # Static SPA build
    STATIC_DIR: str = str(_ROOT_DIR / "dist")
    INDEX_FILE: str = "index.html"

    LOG_LEVEL: str = "INFO"

    @field_validator("UPSTREAM_URL")
    @classmethod
    def _check_upstream(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        scheme, sep, rest = v.partition("://")
        if not sep or scheme not in ("http", "https") or not rest:
            raise ValueError(f"UPSTREAM_URL must be an absolute http(s) origin, got {v!r}")
        return v

    @field_validator("PROXY_PREFIX")
    @classmethod
    def _check_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError("PROXY_PREFIX must start with '/'")
        v = v.rstrip("/")
        if not v:
            raise ValueError("PROXY_PREFIX cannot be the root path")
        return v

    @field_validator("PROXY_TIMEOUT")
    @classmethod
    def _check_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("PROXY_TIMEOUT must be positive")
        return v

    @model_validator(mode="after")
    def _check_rewrite_rule(self) -> "Settings":
        # strip vs. replace is decided here, never per request
        target = self.REWRITE_TARGET.strip()
        if self.REWRITE_POLICY is RewritePolicy.STRIP:
            if target:
                raise ValueError(
                    "REWRITE_POLICY=strip does not take a REWRITE_TARGET; "
                    "use replace_fixed or replace_preserve to rewrite to a segment"
                )
        else:
            if not target.startswith("/") or not target.strip("/"):
                raise ValueError(
                    f"REWRITE_POLICY={self.REWRITE_POLICY.value} needs a REWRITE_TARGET "
                    f"like '/healthmate', got {self.REWRITE_TARGET!r}"
                )
            target = target.rstrip("/")
        self.REWRITE_TARGET = target
        return self


def _build_settings() -> Settings:
    """Build settings, resolving a relative STATIC_DIR against the repository root."""
    s = Settings(
        _env_file=str(_ROOT_DIR / ".env"),
        _env_file_encoding="utf-8",
    )
    if not Path(s.STATIC_DIR).is_absolute():
        s.STATIC_DIR = str(_ROOT_DIR / s.STATIC_DIR)
    return s


settings = _build_settings()
