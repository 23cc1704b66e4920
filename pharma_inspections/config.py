"""
Configuration module for the pharmaceutical inspection core.

Provides centralized configuration for storage, authentication and audit trail
behaviour.
"""

from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union, get_args, get_origin

from pydantic import BaseModel, Field, field_validator


class PasswordScheme(str, Enum):
    """Supported passlib schemes for credential hashing."""

    PBKDF2_SHA256 = "pbkdf2_sha256"
    PBKDF2_SHA512 = "pbkdf2_sha512"
    SHA512_CRYPT = "sha512_crypt"


class InspectionConfig(BaseModel):
    """Central configuration for the inspection persistence core.

    Configuration Sources (in order of precedence):
        1. Programmatic settings (highest priority)
        2. Environment variables (INSPECTION_ prefix)
        3. Default values (lowest priority)

    Example:
        >>> config = InspectionConfig(
        ...     database_url="sqlite:///./inspections.db",
        ...     session_ttl_hours=24,
        ... )

        Loading from environment:

        >>> import os
        >>> os.environ['INSPECTION_DATABASE_URL'] = 'sqlite:///:memory:'
        >>> config = InspectionConfig.from_env()

    Note:
        The default administrator credentials exist only so that a fresh
        datastore can be opened. Rotate them immediately in production.
    """

    # General settings
    application_name: str = Field(
        "Inspection Officine", description="Name of the application"
    )
    environment: str = Field(
        "production", description="Environment (development, staging, production)"
    )

    # Storage settings
    database_url: str = Field(
        "sqlite:///./inspections.db", description="SQLAlchemy URL of the datastore"
    )
    sqlite_wal: bool = Field(
        True, description="Enable write-ahead logging for file-based SQLite"
    )

    # Authentication settings
    session_ttl_hours: int = Field(
        24, description="Lifetime of a session token in hours", gt=0, le=24 * 30
    )
    password_scheme: PasswordScheme = Field(
        PasswordScheme.PBKDF2_SHA256, description="passlib scheme for credentials"
    )
    password_rounds: int = Field(
        29000, description="Key-stretching rounds for the password scheme", ge=1000
    )

    # Bootstrap settings
    default_admin_username: str = Field(
        "admin", description="Username of the seeded administrator"
    )
    default_admin_password: str = Field(
        "admin123", description="Initial password of the seeded administrator"
    )
    default_admin_full_name: str = Field(
        "Administrateur", description="Display name of the seeded administrator"
    )

    # Audit trail settings
    audit_enabled: bool = Field(True, description="Enable audit trail logging")
    audit_default_limit: int = Field(
        100, description="Default page size for audit queries", gt=0
    )
    audit_max_limit: int = Field(
        1000, description="Maximum page size for audit queries", gt=0
    )

    # Catalog settings
    catalog_path: Optional[str] = Field(
        None, description="Directory holding the checklist grid YAML files"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is valid."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Environment must be one of: {', '.join(sorted(valid_environments))}"
            )
        return v.lower()

    @field_validator("default_admin_password")
    @classmethod
    def validate_admin_password(cls, v: str) -> str:
        """Ensure the seeded password is usable."""
        if len(v) < 6:
            raise ValueError("Administrator password must be at least 6 characters")
        return v

    @property
    def session_ttl(self) -> timedelta:
        """Session lifetime as a timedelta."""
        return timedelta(hours=self.session_ttl_hours)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_env(cls, prefix: str = "INSPECTION_") -> "InspectionConfig":
        """
        Load configuration from environment variables.

        Args:
            prefix: Prefix for environment variables

        Returns:
            Configuration instance
        """
        import os

        config_dict: Dict[str, Any] = {}

        for field_name, field_info in cls.model_fields.items():
            env_var = f"{prefix}{field_name.upper()}"
            if env_var not in os.environ:
                continue

            value = os.environ[env_var]
            field_type = field_info.annotation

            # Optional[T] -> T
            if get_origin(field_type) is Union:
                args = get_args(field_type)
                field_type = next((arg for arg in args if arg is not type(None)), str)

            try:
                if field_type == bool:
                    config_dict[field_name] = value.lower() in (
                        "true",
                        "1",
                        "yes",
                        "on",
                    )
                elif field_type == int:
                    config_dict[field_name] = int(value)
                elif isinstance(field_type, type) and issubclass(field_type, Enum):
                    config_dict[field_name] = field_type(value)
                else:
                    config_dict[field_name] = value
            except (ValueError, TypeError):
                # Let pydantic report the malformed value
                config_dict[field_name] = value

        return cls.model_validate(config_dict)


# Global configuration instance
_config: Optional[InspectionConfig] = None


def get_config() -> InspectionConfig:
    """
    Get the global configuration instance.

    Returns:
        Global configuration
    """
    global _config

    if _config is None:
        _config = InspectionConfig.from_env()

    return _config


def set_config(config: Optional[InspectionConfig]) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Configuration to set, or None to reload from the environment
    """
    global _config
    _config = config


def configure(**kwargs: Any) -> InspectionConfig:
    """
    Configure the inspection core with keyword arguments.

    Args:
        **kwargs: Configuration parameters

    Returns:
        Updated configuration
    """
    global _config

    if _config is None:
        _config = InspectionConfig(**kwargs)
    else:
        config_dict = _config.model_dump()
        config_dict.update(kwargs)
        _config = InspectionConfig(**config_dict)

    return _config
