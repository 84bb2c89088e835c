"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


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

# Production may inject everything via env vars only
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class ThrottleSettings(BaseSettings):
    """Quota tracker behaviour shared by every caller of the same store."""

    backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Backing store: 'redis' (shared) or 'memory' (per-process)",
    )
    key_prefix: str = Field(
        "throttle",
        description="Namespace prepended to every tenant record key",
    )
    default_ceiling: float = Field(
        1000.0,
        description="Budget reported for tenants that have never been synchronized",
        gt=0,
    )
    default_cost: float = Field(
        10.0,
        description="Cost reserved by check() when the caller passes none",
        ge=0,
    )
    record_ttl_seconds: int = Field(
        86400,
        description="Expiry applied to a record on synchronization (0 disables expiry)",
        ge=0,
    )
    plan: str | None = Field(
        None,
        description="Plan tier applied by the HTTP guard (e.g. STANDARD, PLUS)",
    )

    model_config = SettingsConfigDict(
        env_prefix="THROTTLE_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection parameters for the shared Redis store."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    socket_timeout_seconds: float = Field(
        5.0,
        description="Timeout for a single Redis command",
        gt=0,
    )
    socket_connect_timeout_seconds: float = Field(
        5.0,
        description="Timeout for establishing the Redis connection",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """HTTP-facing configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    throttle_enabled: bool = Field(
        True,
        description="Enforce the tenant budget on guarded routes",
    )
    tenant_header: str = Field(
        "X-Tenant-ID",
        description="Request header carrying the tenant identifier",
    )
    throttle_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    throttle_fail_open: bool = Field(
        False,
        description="Let requests through when the backing store is unreachable",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log line format",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Log destination",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
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
    Raises validation errors on startup if a setting is malformed.
    """

    app_env: str = APP_ENV
    throttle: ThrottleSettings = Field(default_factory=ThrottleSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
