"""
Tests for configuration management.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from pharma_inspections.config import (
    InspectionConfig,
    PasswordScheme,
    configure,
    get_config,
    set_config,
)


class TestInspectionConfig:
    """Test the configuration model."""

    def test_defaults(self):
        config = InspectionConfig()

        assert config.environment == "production"
        assert config.database_url == "sqlite:///./inspections.db"
        assert config.session_ttl == timedelta(hours=24)
        assert config.password_scheme is PasswordScheme.PBKDF2_SHA256
        assert config.default_admin_username == "admin"
        assert config.audit_enabled is True
        assert config.catalog_path is None

    def test_environment_normalized(self):
        assert InspectionConfig(environment="Staging").environment == "staging"
        with pytest.raises(ValidationError):
            InspectionConfig(environment="qa")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("session_ttl_hours", 0),
            ("password_rounds", 10),
            ("audit_max_limit", 0),
            ("default_admin_password", "123"),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            InspectionConfig(**{field: value})

    def test_to_dict_is_json_ready(self):
        config = InspectionConfig(session_ttl_hours=8)
        assert config.to_dict()["password_scheme"] == "pbkdf2_sha256"
        assert config.to_dict()["session_ttl_hours"] == 8


class TestFromEnv:
    """Test loading from environment variables."""

    def test_typed_values(self, monkeypatch):
        monkeypatch.setenv("INSPECTION_DATABASE_URL", "sqlite:///:memory:")
        monkeypatch.setenv("INSPECTION_SESSION_TTL_HOURS", "2")
        monkeypatch.setenv("INSPECTION_AUDIT_ENABLED", "off")
        monkeypatch.setenv("INSPECTION_PASSWORD_SCHEME", "pbkdf2_sha512")
        monkeypatch.setenv("INSPECTION_CATALOG_PATH", "/srv/grids")

        config = InspectionConfig.from_env()

        assert config.database_url == "sqlite:///:memory:"
        assert config.session_ttl_hours == 2
        assert config.audit_enabled is False
        assert config.password_scheme is PasswordScheme.PBKDF2_SHA512
        assert config.catalog_path == "/srv/grids"

    def test_malformed_value(self, monkeypatch):
        monkeypatch.setenv("INSPECTION_SESSION_TTL_HOURS", "soon")
        with pytest.raises(ValidationError):
            InspectionConfig.from_env()

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("APP_ENVIRONMENT", "development")
        assert InspectionConfig.from_env("APP_").environment == "development"


class TestGlobalConfig:
    """Test the process-wide instance."""

    def test_lazy_from_env(self, monkeypatch):
        monkeypatch.setenv("INSPECTION_ENVIRONMENT", "test")
        assert get_config().environment == "test"
        assert get_config() is get_config()

    def test_set_config(self):
        config = InspectionConfig(environment="development")
        set_config(config)
        assert get_config() is config

    def test_configure_merges(self):
        configure(environment="test")
        config = configure(session_ttl_hours=4)

        assert config.environment == "test"
        assert config.session_ttl_hours == 4
        assert get_config() is config
