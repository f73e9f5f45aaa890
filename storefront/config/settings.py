"""
Storefront Fulfillment Backend
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import Dict, List, Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="storefront", description="Database name")
    user: str = Field(default="storefront", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    auto_create: bool = Field(default=True, description="Create missing tables at startup")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Cache and Realtime Channel Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    enabled: bool = Field(default=True, description="Use Redis for cache and change feed")
    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=100, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    channel_prefix: str = Field(default="storefront", description="Prefix for pub/sub channel names")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class CatalogSettings(BaseSettings):
    """Public Catalog Configuration"""

    model_config = SettingsConfigDict(env_prefix="CATALOG_")

    page_size: int = Field(default=12, description="Products per catalog page")
    default_priority: int = Field(default=999, description="Priority assigned when none is set")
    low_stock_threshold: int = Field(default=10, description="Stock level counted as low")
    cache_ttl_seconds: int = Field(default=300, description="Catalog cache TTL")
    collation_locale: str = Field(default="en_US.UTF-8", description="Locale used to collate product names")


class AnalyticsSettings(BaseSettings):
    """Visitor Activity Analytics Configuration"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    activity_window: int = Field(default=1000, description="Most recent records fetched before text search")
    page_size: int = Field(default=10, description="Activity rows per page")


class ReconciliationSettings(BaseSettings):
    """Order Fulfillment / Stock Reconciliation Configuration"""

    model_config = SettingsConfigDict(env_prefix="RECONCILIATION_")

    restock_on_reversal: bool = Field(
        default=True,
        description="Restore decremented stock when an order leaves confirmed/delivered",
    )
    replay_on_startup: bool = Field(default=True, description="Replay pending stock adjustments at startup")


class DeliverySettings(BaseSettings):
    """Delivery Zone Fee Defaults"""

    model_config = SettingsConfigDict(env_prefix="DELIVERY_")

    inside_dhaka: float = Field(default=60, description="Fallback fee inside the primary service area")
    outside_dhaka: float = Field(default=120, description="Fallback fee outside the primary service area")

    @property
    def defaults(self) -> Dict[str, float]:
        return {"inside_dhaka": self.inside_dhaka, "outside_dhaka": self.outside_dhaka}


class TrackingSettings(BaseSettings):
    """Visitor Tracking and Conversion Forwarding Configuration"""

    model_config = SettingsConfigDict(env_prefix="TRACKING_")

    session_cookie: str = Field(default="tracking_session_id", description="Session token cookie name")
    session_header: str = Field(default="X-Session-ID", description="Session token header name")
    conversion_endpoint: Optional[str] = Field(default=None, description="Conversion API endpoint URL")
    pixel_id: Optional[str] = Field(default=None, description="Conversion pixel identifier")
    access_token: Optional[SecretStr] = Field(default=None, description="Conversion API access token")
    timeout_seconds: float = Field(default=3.0, description="Conversion request timeout")
    currency: str = Field(default="BDT", description="Currency reported with conversion values")


class MediaSettings(BaseSettings):
    """Media Storage Configuration"""

    model_config = SettingsConfigDict(env_prefix="MEDIA_")

    root_path: str = Field(default="./data/media", description="Local media root")
    public_base_url: str = Field(default="/media", description="Public URL prefix for stored media")
    max_image_bytes: int = Field(default=10 * 1024 * 1024, description="Image size limit")
    max_video_bytes: int = Field(default=50 * 1024 * 1024, description="Video size limit")


class SecuritySettings(BaseSettings):
    """Security Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    admin_token: Optional[SecretStr] = Field(
        default=None, alias="ADMIN_TOKEN", description="Static token required on admin routes when set"
    )

    # Rate limiting
    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS", description="Rate limit requests")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS", description="Rate limit window")
    trusted_proxies: List[str] = Field(
        default_factory=list,
        alias="TRUSTED_PROXIES",
        description="Proxy addresses whose X-Forwarded-For header is believed",
    )

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storefront", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    media: MediaSettings = Field(default_factory=MediaSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
