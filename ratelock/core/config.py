"""Limiter configuration using Pydantic Settings.

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


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LimiterSettings(BaseSettings):
    """Default limiter shape used by ``build_from_settings``."""

    id: str = Field(
        "default",
        min_length=1,
        description="Identifier of the shared budget (also the lock name)",
    )
    policy: Literal["sliding_window", "token_bucket"] = Field(
        "sliding_window",
        description="Limiter algorithm",
    )
    limit: int = Field(
        60,
        ge=1,
        description="Units per window (sliding window) or burst capacity (token bucket)",
    )
    interval_seconds: float = Field(
        60.0,
        gt=0,
        description="Window length or token refill period in seconds",
    )
    clock: Literal["monotonic", "wall"] | None = Field(
        None,
        description=(
            "Time source; unset picks 'wall' for the redis store and 'monotonic' otherwise"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="LIMITER_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Counter store backend configuration."""

    backend: Literal["memory", "file", "redis"] = Field(
        "memory",
        description="Where limiter state is persisted between attempts",
    )
    file_dir: str = Field(
        ".ratelock",
        description="Directory holding one state file per limiter (file backend)",
    )
    redis_url: str | None = Field(
        None,
        description="Redis connection URL (redis backend)",
    )
    key_prefix: str = Field(
        "ratelock:state:",
        description="Prefix applied to every store key",
    )
    ttl_seconds: int | None = Field(
        None,
        ge=1,
        description="Optional expiry for stored state (redis backend)",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class LockSettings(BaseSettings):
    """Distributed lock provider configuration."""

    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Lock provider",
    )
    redis_url: str | None = Field(
        None,
        description="Redis connection URL (redis backend)",
    )
    ttl_seconds: float = Field(
        30.0,
        gt=0,
        description="Safety expiry for a held lock; must dwarf the critical section",
    )
    blocking_timeout_seconds: float | None = Field(
        None,
        gt=0,
        description="Give up acquiring after this long (None blocks until acquired)",
    )
    key_prefix: str = Field(
        "ratelock:lock:",
        description="Prefix applied to every lock name",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOCK_",
        case_sensitive=False,
    )


class OverflowSettings(BaseSettings):
    """Behaviour when a consume attempt is rejected."""

    strategy: Literal["sleep", "fail_fast"] = Field(
        "sleep",
        description="Block and retry, or abort with a retry hint",
    )
    normalize_ms: int | None = Field(
        2000,
        ge=1,
        description="Delays at or above this are rounded up to multiples of it",
    )
    min_ms: int = Field(
        0,
        ge=0,
        description="Lower clamp for handled delays",
    )
    max_ms: int = Field(
        300_000,
        ge=0,
        description="Upper clamp for handled delays",
    )
    jitter: float = Field(
        0.0,
        ge=0.0,
        le=1.0,
        description="Random extra delay as a fraction of the wait",
    )
    lock_backoff_ms: int = Field(
        1000,
        ge=0,
        description="Delay handed to the overflow handler when the lock provider fails",
    )

    model_config = SettingsConfigDict(
        env_prefix="OVERFLOW_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """HTTP integration configuration."""

    rate_limit_enabled: bool = Field(
        True,
        description="Enable rate limiting in the FastAPI dependency",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path (file output)")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        ge=0,
        description="Rotate the log file at this size (0 disables rotation)",
    )
    backup_count: int = Field(5, ge=0, description="Rotated files to keep")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_limiter_settings() -> LimiterSettings:
    return LimiterSettings()


def _build_store_settings() -> StoreSettings:
    return StoreSettings()


def _build_lock_settings() -> LockSettings:
    return LockSettings()


def _build_overflow_settings() -> OverflowSettings:
    return OverflowSettings()


def _build_app_settings() -> AppSettings:
    return AppSettings()


def _build_log_settings() -> LogSettings:
    return LogSettings()


class Settings(BaseSettings):
    """Main settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if values are out of range.
    """

    app_env: str = APP_ENV
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    lock: LockSettings = Field(default_factory=_build_lock_settings)
    overflow: OverflowSettings = Field(default_factory=_build_overflow_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
