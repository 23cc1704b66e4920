"""Exceptions raised by the inspection persistence core."""

from typing import Iterable, Optional, Tuple


class InspectionCoreError(Exception):
    """Base exception for all inspection core failures."""

    code = "error"

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.message = message
        self.entity_id = entity_id
        super().__init__(message)


class InvalidCredentials(InspectionCoreError):
    """Raised when a username/password pair does not verify."""

    code = "invalid_credentials"

    def __init__(self) -> None:
        super().__init__("Identifiants incorrects")


class AccountDisabled(InspectionCoreError):
    """Raised when an inactive account attempts to log in."""

    code = "account_disabled"

    def __init__(self) -> None:
        super().__init__("Compte désactivé")


class SessionInvalid(InspectionCoreError):
    """Raised when a token is unknown, expired, or owned by an inactive user."""

    code = "session_invalid"

    def __init__(self) -> None:
        super().__init__("Session invalide ou expirée")


class Forbidden(InspectionCoreError):
    """Raised when the authenticated role is not in the allowed set."""

    code = "forbidden"

    def __init__(self, allowed_roles: Iterable[str]):
        self.allowed_roles: Tuple[str, ...] = tuple(
            getattr(role, "value", role) for role in allowed_roles
        )
        super().__init__(
            f"Accès refusé. Rôle requis : {' ou '.join(self.allowed_roles)}"
        )


class DuplicateUsername(InspectionCoreError):
    """Raised when creating a user whose username is already taken."""

    code = "duplicate_username"

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Le nom d'utilisateur '{username}' existe déjà")


class NotFound(InspectionCoreError):
    """Raised when an entity lookup misses."""

    code = "not_found"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        super().__init__(
            f"{entity_type.capitalize()} introuvable ou accès refusé",
            entity_id=entity_id,
        )


class ValidationFailure(InspectionCoreError):
    """Raised when a request is malformed."""

    code = "validation_failure"

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None):
        self.errors = list(errors or [])
        super().__init__(message)


class StorageFailure(InspectionCoreError):
    """Raised when the underlying datastore fails."""

    code = "storage_failure"

    def __init__(self, operation: str, detail: Optional[str] = None):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Erreur de stockage pendant l'opération '{operation}'")
