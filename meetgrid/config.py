"""Centralized configuration management using Pydantic Settings.

This module provides typed configuration for all application settings,
loaded from environment variables with sensible defaults.

Usage:
    from meetgrid.config import get_settings
    settings = get_settings()
    redis_host = settings.redis.host
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from meetgrid.gestures import GestureConfig, TouchActivation


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = Field(default="redis", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: str = Field(default="", description="Redis password")
    max_connections: int = Field(default=200, description="Maximum pool connections")
    pool_timeout_sec: float = Field(default=5.0, description="Pool timeout in seconds")
    health_check_interval: int = Field(default=30, description="Health check interval in seconds")
    retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    socket_timeout: float = Field(default=5.0, description="Socket timeout in seconds")
    socket_connect_timeout: float = Field(default=5.0, description="Socket connect timeout in seconds")


class PostgresSettings(BaseSettings):
    """PostgreSQL connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        extra="ignore",
        populate_by_name=True,
    )

    host: str = Field(default="postgres", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="devuser", description="PostgreSQL user")
    password: str = Field(default="", description="PostgreSQL password")
    database: str = Field(
        default="devdb",
        validation_alias="POSTGRES_DB",
        description="Database name",
    )
    pool_min_size: int = Field(default=2, description="Minimum pool size")
    pool_max_size: int = Field(default=10, description="Maximum pool size")
    pool_timeout: int = Field(default=30, description="Timeout for acquiring connections")
    pool_max_lifetime: int = Field(
        default=1800, description="Maximum connection lifetime in seconds"
    )
    pool_max_idle: int = Field(
        default=300, description="Maximum idle time before closing connection"
    )
    pool_reconnect_timeout: int = Field(
        default=300, description="Reconnection timeout in seconds"
    )

    def get_dsn(self) -> str:
        """Generate PostgreSQL DSN connection string."""
        return (
            f"host={self.host} port={self.port} user={self.user} "
            f"password={self.password} dbname={self.database} sslmode=disable"
        )


class StoreSettings(BaseSettings):
    """Which event store backs the service."""

    model_config = SettingsConfigDict(env_prefix="STORE_", extra="ignore")

    backend: Literal["postgres", "memory"] = Field(
        default="postgres", description="postgres for deployments, memory for local runs"
    )


class CorsSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    origins_raw: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )
    origins_regex: str = Field(
        default="",
        validation_alias="CORS_ORIGINS_REGEX",
        description="Regex pattern for origins",
    )

    @property
    def origins(self) -> list[str]:
        """Parse comma-separated origins into list."""
        return [o.strip() for o in self.origins_raw.split(",") if o.strip()]

    @property
    def allow_credentials(self) -> bool:
        """Credentials not allowed with wildcard origins."""
        return self.origins != ["*"] and not self.origins_regex


class DebugSettings(BaseSettings):
    """Debug flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    request: bool = Field(default=False, alias="request_debug")
    websocket: bool = Field(default=False, alias="ws_debug")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower() in ("1", "true", "yes")
        return bool(v)


class GridSettings(BaseSettings):
    """Pointer handling on the availability grid."""

    model_config = SettingsConfigDict(env_prefix="GRID_", extra="ignore")

    long_press_delay_ms: float = Field(default=250, description="Clamped to 200-300ms")
    move_threshold_px: float = Field(default=5, description="Movement that starts a touch drag")
    scroll_intent_px: float = Field(default=12, description="Horizontal travel read as scrolling")
    touch_activation: TouchActivation = Field(default=TouchActivation.SCROLL_AWARE)
    edge_margin_px: float = Field(default=50, description="Auto-scroll zone at viewport edges")
    autoscroll_step_px: float = Field(default=20)
    autoscroll_interval_ms: float = Field(default=16)
    lock_failure_jump_px: float = Field(default=20)
    lock_failure_window_ms: float = Field(default=100)
    mouse_suppress_ms: float = Field(default=500, description="Ignore synthesized mouse after touch")
    preview: bool = Field(default=False, description="Commit drags on release only")

    @field_validator("preview", mode="before")
    @classmethod
    def parse_preview(cls, v):
        if isinstance(v, str):
            return v.lower() in ("1", "true", "yes")
        return bool(v)

    def gesture_config(self) -> GestureConfig:
        return GestureConfig(
            long_press_delay_ms=self.long_press_delay_ms,
            move_threshold_px=self.move_threshold_px,
            scroll_intent_px=self.scroll_intent_px,
            touch_activation=self.touch_activation,
            edge_margin_px=self.edge_margin_px,
            autoscroll_step_px=self.autoscroll_step_px,
            autoscroll_interval_ms=self.autoscroll_interval_ms,
            lock_failure_jump_px=self.lock_failure_jump_px,
            lock_failure_window_ms=self.lock_failure_window_ms,
            mouse_suppress_ms=self.mouse_suppress_ms,
        )


class MeetingSettings(BaseSettings):
    """Event and participant limits."""

    model_config = SettingsConfigDict(env_prefix="MEETING_", extra="ignore")

    best_times_limit: int = Field(default=10)
    event_id_length: int = Field(default=10)
    max_title_length: int = Field(default=200)
    max_name_length: int = Field(default=100)
    max_dates: int = Field(default=62, description="Candidate days per event")
    ws_heartbeat_sec: float = Field(default=25)


class PushSettings(BaseSettings):
    """Web push hand-off configuration."""

    model_config = SettingsConfigDict(env_prefix="PUSH_", extra="ignore")

    vapid_public_key: str = Field(default="", description="Served to browsers for subscription")
    outbox_key: str = Field(default="push:outbox", description="Redis list drained by the delivery worker")
    subscription_ttl_sec: int = Field(default=60 * 60 * 24 * 30)


class Settings:
    """Main application settings combining all configuration sections.

    This is not a BaseSettings subclass to avoid env var conflicts.
    Each subsetting is loaded independently with its own prefix.

    Usage:
        settings = Settings()
        # or use cached singleton:
        settings = get_settings()
    """

    def __init__(self) -> None:
        self.redis = RedisSettings()
        self.postgres = PostgresSettings()
        self.store = StoreSettings()
        self.cors = CorsSettings()
        self.debug = DebugSettings()
        self.grid = GridSettings()
        self.meetings = MeetingSettings()
        self.push = PushSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear cached settings (useful for testing)."""
    get_settings.cache_clear()
