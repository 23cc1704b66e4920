"""
Tests for the shared datastore: schema, bootstrap and unit-of-work handling.
"""

import threading

import pytest
from sqlalchemy import inspect, select, text

from pharma_inspections.exceptions import NotFound, StorageFailure
from pharma_inspections.models import Role
from pharma_inspections.storage import Database, UserRecord


class TestSchema:
    """Test the normative table layout."""

    def test_tables_created(self, database):
        """All five tables exist after initialization."""
        names = set(inspect(database.engine).get_table_names())
        assert {"users", "sessions", "inspections", "responses", "audit_log"} <= names

    def test_indexes_created(self, database):
        """Lookup indexes are part of the schema."""
        inspector = inspect(database.engine)
        audit = {ix["name"] for ix in inspector.get_indexes("audit_log")}
        inspections = {ix["name"] for ix in inspector.get_indexes("inspections")}
        responses = {ix["name"] for ix in inspector.get_indexes("responses")}

        assert {"idx_audit_timestamp", "idx_audit_user", "idx_audit_entity"} <= audit
        assert {"idx_inspections_status", "idx_inspections_user"} <= inspections
        assert "idx_responses_insp" in responses

    def test_foreign_keys_enforced(self, database):
        """PRAGMA foreign_keys is on for every connection."""
        with database.session("pragma") as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_role_check_constraint(self, database):
        """Roles outside the closed set are rejected by the store."""
        with pytest.raises(StorageFailure):
            with database.session("bad role") as session:
                session.add(
                    UserRecord(
                        id="u-1",
                        username="mallory",
                        full_name="Mallory",
                        role="superuser",
                        password_hash="x",
                    )
                )


class TestBootstrap:
    """Test default administrator seeding."""

    def test_default_admin_seeded(self, database):
        """A fresh datastore holds exactly one active administrator."""
        with database.session("read admin") as session:
            admins = session.scalars(select(UserRecord)).all()

        assert len(admins) == 1
        assert admins[0].username == "admin"
        assert admins[0].role == Role.ADMIN.value
        assert admins[0].active is True
        assert admins[0].password_hash != "admin123"

    def test_initialize_idempotent(self, database):
        """Re-running initialization does not duplicate the administrator."""
        database._initialized = False
        database.initialize()

        with database.session("count") as session:
            assert len(session.scalars(select(UserRecord)).all()) == 1

    def test_lazy_initialization(self, config):
        """The first unit of work creates the schema."""
        db = Database(config=config)
        with db.session("count") as session:
            assert session.scalars(select(UserRecord.username)).all() == ["admin"]
        db.close()

    def test_file_database(self, config, tmp_path):
        """File datastores persist across handles."""
        url = f"sqlite:///{tmp_path / 'inspections.db'}"
        first = Database(url, config=config)
        first.initialize()
        first.close()

        second = Database(url, config=config)
        assert not second.is_memory
        with second.session("count") as session:
            assert len(session.scalars(select(UserRecord)).all()) == 1
        second.close()

    def test_only_sqlite_supported(self, config):
        with pytest.raises(StorageFailure) as exc_info:
            Database("postgresql://inspector@localhost/inspections", config=config)
        assert exc_info.value.operation == "open"


class TestUnitOfWork:
    """Test commit, rollback and error translation."""

    def test_rollback_on_core_error(self, database):
        """Domain errors roll the unit back and propagate unchanged."""
        with pytest.raises(NotFound):
            with database.session("partial") as session:
                session.add(
                    UserRecord(
                        id="u-2",
                        username="bob",
                        full_name="Bob",
                        role=Role.VIEWER.value,
                        password_hash="x",
                    )
                )
                session.flush()
                raise NotFound("utilisateur", "u-2")

        with database.session("check") as session:
            assert session.get(UserRecord, "u-2") is None

    def test_driver_error_wrapped(self, database):
        """SQLAlchemy errors surface as StorageFailure with the operation."""
        with pytest.raises(StorageFailure) as exc_info:
            with database.session("broken query") as session:
                session.execute(text("SELECT * FROM missing_table"))

        assert exc_info.value.operation == "broken query"
        assert "missing_table" in exc_info.value.detail
        assert "missing_table" not in exc_info.value.message

    def test_serialized_access(self, database):
        """Concurrent units of work never interleave."""
        active = []
        overlaps = []

        def worker():
            for _ in range(20):
                with database.session("worker"):
                    active.append(1)
                    if len(active) > 1:
                        overlaps.append(True)
                    active.pop()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []
