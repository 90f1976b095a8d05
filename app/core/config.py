# python
# app/core/config.py
"""Configuration settings for the chat sync core.

Uses Pydantic BaseSettings for environment variable management.
"""
from enum import Enum

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentEnum(str, Enum):
    development = "development"
    testing = "testing"
    staging = "staging"
    production = "production"


class LogLevelEnum(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormatEnum(str, Enum):
    simple = "simple"
    json = "json"


class Settings(BaseSettings):
    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===== Application Settings =====
    app_name: str = Field(default="Chat Sync API", description="Application name")
    environment: EnvironmentEnum = Field(
        default=EnvironmentEnum.development, description="Environment type"
    )
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="2.0.0", description="Application version")
    api_prefix: str = Field(default="/api/v2", description="Prefix for the chat API routes")

    # ===== Authentication =====
    auth_secret_key: str | None = Field(
        default=None, description="Secret used to verify bearer tokens"
    )
    auth_algorithm: str = Field(default="HS256", description="JWT algorithm")

    # ===== Database Settings =====
    database_url: str | None = Field(default=None, description="Database connection URL")
    db_pool_size: int = Field(default=20, description="Database connection pool size")
    db_max_overflow: int = Field(default=0, description="Database max overflow connections")

    # Test database URL
    test_database_url: str | None = Field(default=None, description="Test database URL")

    # ===== Redis Cache =====
    redis_url: str | None = Field(default=None, description="Redis connection URL")
    cache_enabled: bool = Field(default=True, description="Use Redis when it is configured")
    cache_socket_timeout: float = Field(
        default=0.5, description="Seconds before a cache operation is treated as a miss"
    )

    # ===== Remote API (client side) =====
    api_base_url: str = Field(
        default="http://127.0.0.1:8000/api/v2", description="Base URL of the chat API"
    )
    api_timeout: float = Field(default=15.0, description="Remote API request timeout in seconds")

    # ===== Sync & Local Storage =====
    sync_debounce_seconds: float = Field(
        default=2.0, description="Window that collapses message edits into one push"
    )
    local_storage_dir: str = Field(
        default=".chat-storage", description="Directory holding the per-user chat files"
    )
    local_storage_namespace: str = Field(default="vox", description="Local storage key prefix")

    # ===== Limits =====
    last_message_max_length: int = Field(default=100, description="Length of lastMessage preview")
    messages_default_limit: int = Field(default=50, description="Default messages page size")
    messages_max_limit: int = Field(default=100, description="Maximum messages page size")
    max_message_length: int = Field(default=10000, description="Maximum message content length")
    migration_stale_after_seconds: int = Field(
        default=600, description="An in_progress migration older than this may be taken over"
    )

    # ===== Rate Limiting =====
    rate_limit_enabled: bool = Field(
        default=False, description="Limit sync and migration requests per user (needs Redis)"
    )
    rate_limit_window_seconds: int = Field(default=60, description="Rate limit window in seconds")
    sync_rate_limit_requests: int = Field(
        default=30, description="Sync and migration status requests allowed per window"
    )
    migration_rate_limit_requests: int = Field(
        default=1, description="Migration runs allowed per window"
    )

    # ===== CORS Settings =====
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000",
        description="Allowed CORS origins (comma-separated)",
    )

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if isinstance(self.allowed_origins, str):
            return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
        return self.allowed_origins if isinstance(self.allowed_origins, list) else []

    # ===== Monitoring & Logging =====
    log_level: LogLevelEnum = Field(default=LogLevelEnum.INFO, description="Logging level")
    log_format: LogFormatEnum = Field(default=LogFormatEnum.json, description="Log format")

    # ===== Server Settings =====
    host: str = Field(default="127.0.0.1", description="Host to bind the server")
    port: int = Field(default=8000, description="Port to bind the server")

    # ===== Computed Properties =====
    @property
    def is_development(self) -> bool:
        return self.environment == EnvironmentEnum.development

    @property
    def is_production(self) -> bool:
        return self.environment == EnvironmentEnum.production

    @property
    def is_testing(self) -> bool:
        return self.environment == EnvironmentEnum.testing

    @property
    def has_cache(self) -> bool:
        return bool(self.cache_enabled and self.redis_url)

    # ===== Validation Methods =====
    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        if v and isinstance(v, str):
            lv = v.lower()
            if lv in ["dev", "develop"]:
                return "development"
            if lv in ["prod"]:
                return "production"
            if lv in ["test"]:
                return "testing"
        return v

    @field_validator("sync_debounce_seconds")
    @classmethod
    def validate_debounce(cls, v):
        if v < 0:
            raise ValueError("Debounce window cannot be negative")
        return v

    @field_validator(
        "rate_limit_window_seconds", "sync_rate_limit_requests", "migration_rate_limit_requests"
    )
    @classmethod
    def validate_rate_limit(cls, v):
        if v < 1:
            raise ValueError("Rate limits must be positive")
        return v

    @field_validator("messages_max_limit")
    @classmethod
    def validate_max_limit(cls, v):
        if v > 500:
            raise ValueError("Maximum messages page size cannot exceed 500")
        return v

    @model_validator(mode="after")
    def set_computed_fields(self):
        if self.messages_default_limit > self.messages_max_limit:
            self.messages_default_limit = self.messages_max_limit
        return self


settings = Settings()


class ConfigValidator:
    @staticmethod
    def validate_required_settings():
        errors = []
        if not settings.database_url:
            errors.append("DATABASE_URL is required")
        if settings.is_production and not settings.auth_secret_key:
            errors.append("AUTH_SECRET_KEY is required in production")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @staticmethod
    def get_feature_status() -> dict:
        return {
            "cache_enabled": settings.has_cache,
            "rate_limiting": bool(settings.rate_limit_enabled and settings.has_cache),
            "token_verification": bool(settings.auth_secret_key),
            "environment": settings.environment,
        }


def get_config_summary() -> dict:
    return {
        "app_name": settings.app_name,
        "version": settings.version,
        "environment": settings.environment,
        "debug": settings.debug,
        "features": ConfigValidator.get_feature_status(),
        "database_configured": bool(settings.database_url),
        "sync_debounce_seconds": settings.sync_debounce_seconds,
    }


__all__ = [
    "settings",
    "Settings",
    "ConfigValidator",
    "get_config_summary",
    "EnvironmentEnum",
    "LogLevelEnum",
    "LogFormatEnum",
]
