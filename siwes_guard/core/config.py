"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Every guard threshold and path list lives here so the edge pipeline never
hardcodes policy. List values are read from the environment as JSON arrays,
e.g. ``RATE_LIMIT_EXEMPT_PREFIXES='["/api/health"]'``.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    title: str = Field(
        "SIWES Logbook",
        description="Application title shown in the OpenAPI document",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Fixed-window rate limiter configuration."""

    enabled: bool = Field(
        True,
        description="Enable per-client, per-route rate limiting",
    )
    window_ms: int = Field(
        60_000,
        description="Length of one counting window in milliseconds",
        ge=1,
    )
    max_requests: int = Field(
        100,
        description="Maximum number of requests per client and route within one window",
        ge=1,
    )
    exempt_prefixes: list[str] = Field(
        default_factory=lambda: ["/api/health", "/api/status"],
        description="Path prefixes that are never counted",
    )
    sweep_probability: float = Field(
        0.01,
        description="Fraction of requests that trigger an eviction sweep of expired windows",
        ge=0.0,
        le=1.0,
    )
    fail_open: bool = Field(
        True,
        description="Let requests through (True) or answer 503 (False) when the limiter itself fails",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


class CsrfSettings(BaseSettings):
    """Anti-forgery cookie configuration."""

    enabled: bool = Field(
        True,
        description="Enable CSRF validation and token issuance",
    )
    cookie_name: str = Field(
        "csrf-token",
        description="Name of the cookie carrying the token payload",
    )
    token_ttl_seconds: int = Field(
        15 * 60,
        description="Token lifetime; also used as the cookie max-age",
        ge=1,
    )
    exempt_prefixes: list[str] = Field(
        default_factory=lambda: ["/api/auth", "/api/webhooks", "/api/public"],
        description="Path prefixes whose state-changing requests skip validation",
    )
    cookie_secure: bool | None = Field(
        None,
        description="Force the Secure cookie attribute; unset means 'only in production'",
    )
    require_header_echo: bool = Field(
        False,
        description="Also require the token to be echoed in a request header (double-submit)",
    )
    header_name: str = Field(
        "X-CSRF-Token",
        description="Header checked when require_header_echo is enabled",
    )

    model_config = SettingsConfigDict(
        env_prefix="CSRF_",
        case_sensitive=False,
    )


class EdgeSettings(BaseSettings):
    """Route classification and redirect targets for the edge router."""

    api_prefix: str = Field(
        "/api/",
        description="Paths under this prefix perform their own session checks",
    )
    auth_prefix: str = Field(
        "/auth/",
        description="Sign-in/sign-up pages; authenticated users are sent to the dashboard",
    )
    protected_prefixes: list[str] = Field(
        default_factory=lambda: ["/dashboard", "/logbook", "/supervisor"],
        description="Pages that require an authenticated session",
    )
    dashboard_path: str = Field(
        "/dashboard",
        description="Redirect target for authenticated users hitting auth pages",
    )
    signin_path: str = Field(
        "/auth/signin",
        description="Redirect target for anonymous users hitting protected pages",
    )
    static_prefixes: list[str] = Field(
        default_factory=lambda: ["/_next/", "/static/"],
        description="Asset prefixes that bypass every guard",
    )
    static_extensions: list[str] = Field(
        default_factory=lambda: [
            "ico", "png", "jpg", "jpeg", "svg", "css", "js",
            "woff", "woff2", "ttf", "eot",
        ],
        description="File extensions that bypass every guard",
    )

    model_config = SettingsConfigDict(
        env_prefix="EDGE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="'json' or 'plain'")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and propagate the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a value is out of range.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    csrf: CsrfSettings = Field(default_factory=CsrfSettings)
    edge: EdgeSettings = Field(default_factory=EdgeSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


settings = Settings()
