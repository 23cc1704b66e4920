"""Credential hashing backed by passlib."""

from typing import Optional

from passlib.context import CryptContext

from .config import InspectionConfig, get_config


def build_password_context(config: Optional[InspectionConfig] = None) -> CryptContext:
    """
    Build the passlib context for the configured scheme.

    Args:
        config: Configuration to read the scheme and rounds from

    Returns:
        CryptContext hashing with a salted, slow one-way function
    """
    config = config or get_config()
    scheme = config.password_scheme.value
    return CryptContext(
        schemes=[scheme],
        deprecated="auto",
        **{f"{scheme}__default_rounds": config.password_rounds},
    )


class PasswordHasher:
    """Hashes and verifies passwords with a passlib context."""

    def __init__(self, context: Optional[CryptContext] = None):
        self.context = context or build_password_context()

    def hash(self, password: str) -> str:
        return self.context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password; malformed hashes never verify."""
        try:
            return bool(self.context.verify(password, password_hash))
        except (ValueError, TypeError):
            return False
