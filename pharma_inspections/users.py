"""
User directory: account creation, updates, credential rotation and logical
deactivation.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .exceptions import DuplicateUsername, NotFound
from .models import CreateUserRequest, UpdateUserRequest, User
from .passwords import PasswordHasher
from .storage import Database, SessionRecord, UserRecord, local_now

logger = logging.getLogger(__name__)


class UserDirectory:
    """Repository of user accounts.

    Accounts are never physically deleted; deactivation flips the active flag
    and revokes every session in the same unit of work.
    """

    def __init__(self, database: Database, hasher: Optional[PasswordHasher] = None):
        self.database = database
        self.hasher = hasher or database.hasher

    @staticmethod
    def _require(session: Session, user_id: str) -> UserRecord:
        record = session.get(UserRecord, user_id)
        if record is None:
            raise NotFound("utilisateur", user_id)
        return record

    def create(self, request: CreateUserRequest) -> User:
        """
        Create an account.

        Raises:
            DuplicateUsername: The username is already taken
        """
        password_hash = self.hasher.hash(request.password)
        now = local_now()

        with self.database.session("create user") as session:
            taken = session.execute(
                select(UserRecord.id).where(UserRecord.username == request.username)
            ).first()
            if taken:
                raise DuplicateUsername(request.username)

            record = UserRecord(
                id=str(uuid.uuid4()),
                username=request.username,
                full_name=request.full_name,
                role=request.role.value,
                password_hash=password_hash,
                active=True,
                created_at=now,
                updated_at=now,
            )
            session.add(record)
            try:
                session.flush()
            except IntegrityError as e:
                raise DuplicateUsername(request.username) from e
            user = User.model_validate(record)

        logger.info(f"Created user '{user.username}' with role {user.role.value}")
        return user

    def get(self, user_id: str) -> User:
        with self.database.session("get user") as session:
            return User.model_validate(self._require(session, user_id))

    def get_by_username(self, username: str) -> User:
        with self.database.session("get user") as session:
            record = session.scalars(
                select(UserRecord).where(UserRecord.username == username)
            ).first()
            if record is None:
                raise NotFound("utilisateur", username)
            return User.model_validate(record)

    def update(self, user_id: str, request: UpdateUserRequest) -> User:
        """
        Apply the fields present in the request; each is its own update.

        Raises:
            NotFound: No such user
        """
        with self.database.session("update user") as session:
            self._require(session, user_id)
            now = local_now()

            if request.full_name is not None:
                session.execute(
                    update(UserRecord)
                    .where(UserRecord.id == user_id)
                    .values(full_name=request.full_name, updated_at=now)
                )
            if request.role is not None:
                session.execute(
                    update(UserRecord)
                    .where(UserRecord.id == user_id)
                    .values(role=request.role.value, updated_at=now)
                )
            if request.active is not None:
                session.execute(
                    update(UserRecord)
                    .where(UserRecord.id == user_id)
                    .values(active=request.active, updated_at=now)
                )
                if not request.active:
                    session.execute(
                        delete(SessionRecord).where(SessionRecord.user_id == user_id)
                    )

            session.expire_all()
            return User.model_validate(self._require(session, user_id))

    def change_password(
        self, user_id: str, new_password: str, keep_token: Optional[str] = None
    ) -> None:
        """
        Re-hash and overwrite the credential.

        Every other session of the user is revoked; ``keep_token`` (the
        caller's own session on self-service) survives.

        Raises:
            NotFound: No such user
        """
        password_hash = self.hasher.hash(new_password)

        with self.database.session("change password") as session:
            self._require(session, user_id)
            session.execute(
                update(UserRecord)
                .where(UserRecord.id == user_id)
                .values(password_hash=password_hash, updated_at=local_now())
            )
            revoke = delete(SessionRecord).where(SessionRecord.user_id == user_id)
            if keep_token:
                revoke = revoke.where(SessionRecord.token != keep_token)
            revoked = session.execute(revoke).rowcount or 0

        logger.info(
            f"Password changed for user {user_id}, {revoked} session(s) revoked"
        )

    def deactivate(self, user_id: str) -> None:
        """
        Disable the account and delete all its sessions in one unit.

        Raises:
            NotFound: No such user
        """
        with self.database.session("deactivate user") as session:
            self._require(session, user_id)
            session.execute(
                update(UserRecord)
                .where(UserRecord.id == user_id)
                .values(active=False, updated_at=local_now())
            )
            session.execute(
                delete(SessionRecord).where(SessionRecord.user_id == user_id)
            )

        logger.info(f"Deactivated user {user_id}")

    def list(self) -> List[User]:
        """All users, inactive included, in creation order."""
        with self.database.session("list users") as session:
            records = session.scalars(
                select(UserRecord).order_by(UserRecord.created_at, UserRecord.username)
            ).all()
            return [User.model_validate(record) for record in records]
