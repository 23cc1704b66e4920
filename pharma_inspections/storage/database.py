"""
Shared datastore handle.

A single SQLAlchemy connection guarded by one mutual-exclusion lock. Every
component receives the same :class:`Database` and reaches the store only
through :meth:`Database.session`, so statements from different callers never
interleave.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import InspectionConfig, get_config
from ..exceptions import StorageFailure
from ..models import Role
from ..passwords import PasswordHasher, build_password_context
from .schema import Base, UserRecord

logger = logging.getLogger(__name__)


class Database:
    """Owner of the single serialized connection to the embedded store.

    Example:
        >>> db = Database("sqlite:///:memory:")
        >>> db.initialize()
        >>> with db.session("count users") as session:
        ...     session.query(UserRecord).count()
        1
    """

    def __init__(
        self,
        url: Optional[str] = None,
        config: Optional[InspectionConfig] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        """
        Initialize the datastore handle.

        Args:
            url: SQLAlchemy URL; defaults to the configured database_url
            config: Configuration instance; defaults to the global one
            hasher: Password hasher used to seed the default administrator
        """
        self.config = config or get_config()
        self.url = url or self.config.database_url
        self.hasher = hasher or PasswordHasher(build_password_context(self.config))

        self._lock = threading.Lock()
        self._initialized = False

        self.engine: Engine = self._create_engine()
        self.SessionLocal = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    @property
    def is_memory(self) -> bool:
        return self.url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in self.url

    def _create_engine(self) -> Engine:
        """Create an engine holding exactly one DBAPI connection."""
        if not self.url.startswith("sqlite"):
            raise StorageFailure("open", f"unsupported database URL {self.url}")
        engine = create_engine(
            self.url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        event.listen(engine, "connect", self._configure_sqlite)
        return engine

    def _configure_sqlite(self, dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if self.config.sqlite_wal and not self.is_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    def initialize(self) -> None:
        """Create the schema and seed the default administrator. Idempotent."""
        with self._lock:
            if self._initialized:
                return
            try:
                Base.metadata.create_all(bind=self.engine)
                with self.SessionLocal() as session:
                    self._seed_admin(session)
                    session.commit()
            except SQLAlchemyError as e:
                logger.error(f"Failed to initialize datastore {self.url}: {e}")
                raise StorageFailure("initialize", str(e)) from e
            self._initialized = True
            logger.info(f"Datastore ready at {self.url}")

    def _seed_admin(self, session: Session) -> None:
        username = self.config.default_admin_username
        exists = session.execute(
            select(UserRecord.id).where(UserRecord.username == username)
        ).first()
        if exists:
            return

        session.add(
            UserRecord(
                id=str(uuid.uuid4()),
                username=username,
                full_name=self.config.default_admin_full_name,
                role=Role.ADMIN.value,
                password_hash=self.hasher.hash(self.config.default_admin_password),
                active=True,
            )
        )
        logger.warning(
            f"Seeded default administrator '{username}'; change its password"
        )

    @contextmanager
    def session(self, operation: str = "database") -> Iterator[Session]:
        """
        Run one unit of work inside the global critical section.

        The unit commits when the block exits normally and rolls back on any
        exception. Driver errors are re-raised as StorageFailure.

        Args:
            operation: Short label used in logs and error messages

        Yields:
            SQLAlchemy session bound to the shared connection
        """
        if not self._initialized:
            self.initialize()

        with self._lock:
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Storage failure during {operation}: {e}")
                raise StorageFailure(operation, str(e)) from e
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    def close(self) -> None:
        """Release the underlying connection."""
        self.engine.dispose()
