"""Shared fixtures: an isolated in-memory datastore per test."""

from datetime import date

import pytest

from pharma_inspections.audit_trail import AuditTrail
from pharma_inspections.auth import AuthGateway
from pharma_inspections.commands import InspectionService
from pharma_inspections.config import InspectionConfig, set_config
from pharma_inspections.inspections import InspectionLifecycle
from pharma_inspections.models import CreateInspectionRequest, CreateUserRequest, Role
from pharma_inspections.responses import ResponseLedger
from pharma_inspections.storage import Database
from pharma_inspections.users import UserDirectory


@pytest.fixture(autouse=True)
def reset_global_config():
    """Keep the process-wide configuration from leaking between tests."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def config():
    """Fast hashing, in-memory storage."""
    return InspectionConfig(
        environment="test",
        database_url="sqlite:///:memory:",
        password_rounds=1000,
    )


@pytest.fixture
def database(config):
    """Fresh, initialized in-memory datastore."""
    db = Database(config=config)
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def gateway(database):
    return AuthGateway(database)


@pytest.fixture
def directory(database):
    return UserDirectory(database)


@pytest.fixture
def lifecycle(database):
    return InspectionLifecycle(database)


@pytest.fixture
def ledger(database):
    return ResponseLedger(database)


@pytest.fixture
def trail(database):
    return AuditTrail(database)


@pytest.fixture
def service(database):
    return InspectionService(database)


@pytest.fixture
def admin_token(gateway):
    """Session of the seeded administrator."""
    return gateway.login("admin", "admin123").token


@pytest.fixture
def make_user(directory):
    """Factory creating users with a known password."""

    def _make(username="alice", role=Role.INSPECTOR, password="secret123"):
        return directory.create(
            CreateUserRequest(
                username=username,
                full_name=username.capitalize(),
                role=role,
                password=password,
            )
        )

    return _make


@pytest.fixture
def inspection_request():
    return CreateInspectionRequest(
        grid_id="officine",
        date_inspection=date(2024, 3, 1),
        establishment="Pharmacie X",
        inspection_type="initiale",
        inspectors=["Dr Diallo", "Dr Traoré"],
    )


@pytest.fixture
def admin_user(directory):
    return directory.get_by_username("admin")
