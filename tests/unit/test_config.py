"""
Unit tests for Configuration module.

This module contains unit tests for the configuration settings,
validators, and computed properties.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from app.core.config import (
    ConfigValidator,
    EnvironmentEnum,
    LogFormatEnum,
    LogLevelEnum,
    Settings,
    get_config_summary,
    settings,
)


class TestSettings:
    """Test cases for Settings configuration."""

    def test_default_settings(self):
        """Test default configuration values."""
        with patch.dict(os.environ, {}, clear=True):
            test_settings = Settings(_env_file=None)

        assert test_settings.app_name == "Chat Sync API"
        assert test_settings.environment == EnvironmentEnum.development
        assert test_settings.debug is False
        assert test_settings.api_prefix == "/api/v2"
        assert test_settings.auth_algorithm == "HS256"
        assert test_settings.redis_url is None
        assert test_settings.sync_debounce_seconds == 2.0
        assert test_settings.local_storage_namespace == "vox"
        assert test_settings.last_message_max_length == 100
        assert test_settings.messages_default_limit == 50
        assert test_settings.messages_max_limit == 100
        assert test_settings.log_level == LogLevelEnum.INFO
        assert test_settings.log_format == LogFormatEnum.json
        assert test_settings.rate_limit_enabled is False
        assert test_settings.rate_limit_window_seconds == 60
        assert test_settings.migration_rate_limit_requests == 1

    def test_environment_validation(self):
        """Test environment validation with various inputs."""
        # Test direct enum values
        test_settings = Settings(environment="production")
        assert test_settings.environment == EnvironmentEnum.production

        # Test shortcuts
        test_settings = Settings(environment="dev")
        assert test_settings.environment == EnvironmentEnum.development

        test_settings = Settings(environment="prod")
        assert test_settings.environment == EnvironmentEnum.production

        test_settings = Settings(environment="test")
        assert test_settings.environment == EnvironmentEnum.testing

    def test_computed_properties(self):
        """Test computed properties."""
        dev_settings = Settings(environment="development")
        assert dev_settings.is_development is True
        assert dev_settings.is_production is False
        assert dev_settings.is_testing is False

        prod_settings = Settings(environment="production")
        assert prod_settings.is_development is False
        assert prod_settings.is_production is True

        test_settings = Settings(environment="testing")
        assert test_settings.is_testing is True

    def test_has_cache_property(self):
        """Test the cache is only used when enabled and configured."""
        assert Settings(redis_url=None).has_cache is False
        assert Settings(redis_url="").has_cache is False
        assert Settings(redis_url="redis://localhost:6379/0").has_cache is True
        assert (
            Settings(redis_url="redis://localhost:6379/0", cache_enabled=False).has_cache is False
        )

    def test_negative_debounce_rejected(self):
        """Test debounce window validation."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(sync_debounce_seconds=-1)
        assert "Debounce window cannot be negative" in str(exc_info.value)

    def test_rate_limits_must_be_positive(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(migration_rate_limit_requests=0)
        assert "Rate limits must be positive" in str(exc_info.value)

    def test_max_limit_validation(self):
        """Test the maximum page size is bounded."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(messages_max_limit=1000)
        assert "cannot exceed 500" in str(exc_info.value)

    def test_default_limit_clamped_to_max(self):
        """Test a default page size above the maximum is lowered."""
        test_settings = Settings(messages_default_limit=80, messages_max_limit=60)
        assert test_settings.messages_default_limit == 60

    def test_allowed_origins_list(self):
        """Test CORS origins parsing."""
        test_settings = Settings(allowed_origins="http://a.test, http://b.test,,")
        assert test_settings.allowed_origins_list == ["http://a.test", "http://b.test"]

    def test_environment_variables_loading(self):
        """Test loading configuration from environment variables."""
        with patch.dict(
            os.environ,
            {
                "APP_NAME": "Test App",
                "ENVIRONMENT": "production",
                "REDIS_URL": "redis://cache:6379/1",
                "SYNC_DEBOUNCE_SECONDS": "0.5",
                "LOCAL_STORAGE_NAMESPACE": "vox-test",
            },
        ):
            test_settings = Settings()
            assert test_settings.app_name == "Test App"
            assert test_settings.environment == EnvironmentEnum.production
            assert test_settings.redis_url == "redis://cache:6379/1"
            assert test_settings.sync_debounce_seconds == 0.5
            assert test_settings.local_storage_namespace == "vox-test"


class TestConfigValidator:
    """Test cases for ConfigValidator."""

    def test_validate_required_settings_success(self):
        """Test successful validation of required settings."""
        with patch.object(settings, "database_url", "postgresql+asyncpg://test"):
            ConfigValidator.validate_required_settings()

    def test_validate_required_settings_missing_database(self):
        """Test validation failure with missing database URL."""
        with patch.object(settings, "database_url", None):
            with pytest.raises(ValueError) as exc_info:
                ConfigValidator.validate_required_settings()
            assert "DATABASE_URL is required" in str(exc_info.value)

    def test_validate_required_settings_production_needs_secret(self):
        """Test production refuses to run without a token secret."""
        with patch.object(settings, "database_url", "postgresql+asyncpg://test"), patch.object(
            settings, "environment", EnvironmentEnum.production
        ), patch.object(settings, "auth_secret_key", None):
            with pytest.raises(ValueError) as exc_info:
                ConfigValidator.validate_required_settings()
            assert "AUTH_SECRET_KEY is required in production" in str(exc_info.value)

    def test_get_feature_status(self):
        """Test feature status reporting."""
        with patch.object(settings, "redis_url", "redis://localhost"), patch.object(
            settings, "cache_enabled", True
        ):
            status = ConfigValidator.get_feature_status()
        assert status["cache_enabled"] is True
        assert status["token_verification"] is True
        assert status["rate_limiting"] is False

    def test_get_config_summary(self):
        """Test configuration summary."""
        summary = get_config_summary()
        assert summary["app_name"] == settings.app_name
        assert summary["sync_debounce_seconds"] == settings.sync_debounce_seconds
        assert "features" in summary
