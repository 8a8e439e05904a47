"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field
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


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


MINUTE_MS = 60 * 1000


class RateLimitPolicy(BaseModel):
    """Window length and request budget for one group of routes."""

    window_ms: int = Field(..., gt=0, description="Fixed window length in milliseconds")
    max_requests: int = Field(..., ge=1, description="Requests allowed per window per client")


def _default_policies() -> dict[str, RateLimitPolicy]:
    return {
        "auth": RateLimitPolicy(window_ms=15 * MINUTE_MS, max_requests=20),
        "resend_verification": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=2),
        "ticket_create": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=10),
        "ticket_list": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=30),
        "ticket_get": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=60),
        "ticket_delete": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=10),
        "purchase_create": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=5),
        "purchase_list": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=30),
        "review_create": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=10),
        "qrcode_verify": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=20),
        "qrcode_fetch": RateLimitPolicy(window_ms=MINUTE_MS, max_requests=30),
    }


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) populates values from environment variables, but
    static type checkers treat required fields as constructor arguments.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    name: str = Field(
        "Ticket Marketplace API",
        description="Service name shown in docs and health responses",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to receive and return the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-route rate limit policies and limiter tuning."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting on guarded routes",
    )
    sweep_threshold: int = Field(
        1000,
        description="Tracked client count above which expired counters are swept",
        ge=0,
    )
    sweep_interval: int = Field(
        100,
        description="Minimum number of checks between two sweeps of one limiter",
        ge=1,
    )
    policies: dict[str, RateLimitPolicy] = Field(
        default_factory=_default_policies,
        description=(
            "Policy name to {window_ms, max_requests}. Set RATE_LIMIT_POLICIES "
            "to a JSON object to replace the defaults."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
