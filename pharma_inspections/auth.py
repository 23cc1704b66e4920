"""
Session-based authentication and role gating.

Turns a username/password pair into an opaque, expiring session token and
turns a token back into the authenticated user, optionally checking that the
user's role belongs to an allowed set.
"""

import logging
import secrets
from typing import Iterable, Optional, Union

from sqlalchemy import delete, select

from .config import InspectionConfig
from .exceptions import AccountDisabled, Forbidden, InvalidCredentials, SessionInvalid
from .models import Role, SessionInfo, User
from .passwords import PasswordHasher
from .storage import Database, SessionRecord, UserRecord, local_now

logger = logging.getLogger(__name__)

RoleLike = Union[str, Role]


def new_session_token() -> str:
    """256 bits from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(32)


class AuthGateway:
    """Issues, validates and revokes session tokens.

    Example:
        >>> gateway = AuthGateway(database)
        >>> info = gateway.login("admin", "admin123")
        >>> gateway.authorize(info.token, [Role.ADMIN]).username
        'admin'
    """

    def __init__(
        self,
        database: Database,
        hasher: Optional[PasswordHasher] = None,
        config: Optional[InspectionConfig] = None,
    ):
        """
        Initialize the gateway.

        Args:
            database: Shared datastore handle
            hasher: Password hasher; defaults to the database's hasher
            config: Configuration; defaults to the database's configuration
        """
        self.database = database
        self.hasher = hasher or database.hasher
        self.config = config or database.config

    def hash_password(self, password: str) -> str:
        return self.hasher.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        return self.hasher.verify(password, password_hash)

    def login(self, username: str, password: str) -> SessionInfo:
        """
        Authenticate a user and open a session.

        Args:
            username: Login name
            password: Clear-text password

        Returns:
            Fresh session token and the public projection of the user

        Raises:
            InvalidCredentials: Unknown username or wrong password
            AccountDisabled: The account exists but is deactivated
        """
        with self.database.session("login") as session:
            record = session.scalars(
                select(UserRecord).where(UserRecord.username == username)
            ).first()

            if record is None:
                logger.info(f"Login refused for unknown user '{username}'")
                raise InvalidCredentials()
            if not record.active:
                logger.info(f"Login refused for disabled user '{username}'")
                raise AccountDisabled()
            if not self.hasher.verify(password, record.password_hash):
                logger.info(f"Login refused for '{username}': bad password")
                raise InvalidCredentials()

            now = local_now()
            token = new_session_token()
            session.add(
                SessionRecord(
                    token=token,
                    user_id=record.id,
                    created_at=now,
                    expires_at=now + self.config.session_ttl,
                )
            )
            user = User.model_validate(record)

        logger.info(f"User '{username}' logged in")
        return SessionInfo(token=token, user=user)

    def validate_session(self, token: str) -> User:
        """
        Resolve a token to its owner.

        Raises:
            SessionInvalid: Unknown token, expired token, or inactive owner
        """
        if not token:
            raise SessionInvalid()

        with self.database.session("validate session") as session:
            record = session.scalars(
                select(UserRecord)
                .join(SessionRecord, SessionRecord.user_id == UserRecord.id)
                .where(
                    SessionRecord.token == token,
                    SessionRecord.expires_at > local_now(),
                    UserRecord.active.is_(True),
                )
            ).first()

            if record is None:
                raise SessionInvalid()
            return User.model_validate(record)

    def logout(self, token: str) -> None:
        """Delete the session. Unknown tokens are ignored."""
        with self.database.session("logout") as session:
            session.execute(delete(SessionRecord).where(SessionRecord.token == token))

    def authorize(self, token: str, allowed_roles: Iterable[RoleLike]) -> User:
        """
        Validate a token and check that its owner holds one of the roles.

        Args:
            token: Session token
            allowed_roles: Acceptable roles

        Returns:
            The authenticated user

        Raises:
            SessionInvalid: See validate_session
            Forbidden: The user's role is not in allowed_roles
        """
        user = self.validate_session(token)
        allowed = [Role(role) for role in allowed_roles]
        if user.role not in allowed:
            logger.info(
                f"User '{user.username}' ({user.role.value}) denied, "
                f"requires {[role.value for role in allowed]}"
            )
            raise Forbidden(allowed)
        return user

    def revoke_user_sessions(
        self, user_id: str, keep_token: Optional[str] = None
    ) -> int:
        """Delete every session of a user, optionally sparing one token."""
        with self.database.session("revoke sessions") as session:
            statement = delete(SessionRecord).where(SessionRecord.user_id == user_id)
            if keep_token:
                statement = statement.where(SessionRecord.token != keep_token)
            return session.execute(statement).rowcount or 0
