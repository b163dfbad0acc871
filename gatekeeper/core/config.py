"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

All values are read once at process startup. The rate limiter is built from
them by the app factory and never reconfigured afterwards.
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
if _env_file and os.getenv("TESTING") != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment."""

    return AppSettings()


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment."""

    return RateLimitSettings()


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    name: str = Field(
        "Gatekeeper API",
        description="Human readable service name (OpenAPI title)",
    )
    version: str = Field(
        "1.0.0",
        description="Service version reported by the health endpoint",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-client admission control for the public API.

    ``limit`` and ``window_seconds`` are the two tunables of the fixed-window
    scheme; the rest shape how the middleware is mounted and how the store
    keeps memory bounded.
    """

    enabled: bool = Field(
        True,
        description="Enable per-client rate limiting on the public API",
    )
    limit: int = Field(
        100,
        description="Maximum number of points each client may consume per window",
        ge=1,
    )
    window_seconds: int = Field(
        900,
        description="Fixed window length in seconds",
        ge=1,
    )
    shards: int = Field(
        16,
        description="Number of independently locked partitions in the quota store",
        ge=1,
    )
    sweep_interval_seconds: float = Field(
        60.0,
        description="Seconds between expired-record sweeps (0 disables sweeping)",
        ge=0,
    )
    path_prefix: str = Field(
        "/api",
        description="Only requests under this path prefix are rate limited",
    )
    exempt_paths: str = Field(
        "/api/rate-limit",
        description="Comma-separated list of paths that never consume quota",
    )
    fail_open: bool = Field(
        True,
        description="Admit requests when the quota store fails unexpectedly",
    )
    trust_forwarded: bool = Field(
        False,
        description="Use the first X-Forwarded-For hop as the client key (behind a proxy)",
    )
    message: str = Field(
        "Too many requests. Please try again later.",
        description="User-facing message returned with 429 responses",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    def exempt_path_set(self) -> frozenset[str]:
        """Return exempt paths as a normalized set."""

        return frozenset(p.strip() for p in self.exempt_paths.split(",") if p.strip())


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance used by the default application.
settings = Settings()
