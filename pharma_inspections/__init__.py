"""
Pharma Inspections - persistence and authorization core for pharmaceutical
inspection records.

Inspectors record regulatory compliance checklists against pharmaceutical
establishments; leads and administrators validate them and review every
action in the audit trail. Everything lives in one local SQLite datastore
shared by all components behind a single lock.

Key Features
------------
* **Authentication**: Expiring session tokens and role gating
* **User Directory**: Account lifecycle with logical deactivation
* **Inspection Lifecycle**: Status state machine with guarded validation
* **Response Ledger**: Upserted answers and on-demand progress counts
* **Audit Trail**: Append-only action log with filtered, paginated search
* **Reports**: Compliance KPIs and CSV, Excel and JSON exports

Quick Start
-----------
>>> from pharma_inspections import InspectionService, configure
>>>
>>> configure(database_url="sqlite:///./inspections.db")
>>> service = InspectionService.open()
>>> token = service.login("admin", "admin123").data.token
>>> result = service.create_inspection(token, {
...     "grid_id": "officine",
...     "date_inspection": "2024-03-01",
...     "establishment": "Pharmacie X",
...     "inspection_type": "initiale",
...     "inspectors": ["Dr Diallo"],
... })
>>> result.ok
True
"""

__version__ = "1.0.0"
__author__ = "Inspection Officine Team"

from .audit_trail import AuditAction, AuditEntry, AuditFilter, AuditTrail
from .auth import AuthGateway
from .catalog import Criterion, Grid, GridCatalog, Section
from .commands import CommandResult, InspectionService
from .config import InspectionConfig, configure, get_config, set_config
from .exceptions import (
    AccountDisabled,
    DuplicateUsername,
    Forbidden,
    InspectionCoreError,
    InvalidCredentials,
    NotFound,
    SessionInvalid,
    StorageFailure,
    ValidationFailure,
)
from .inspections import InspectionLifecycle
from .models import (
    CreateInspectionRequest,
    CreateUserRequest,
    Inspection,
    InspectionProgress,
    InspectionStatus,
    Role,
    SavedResponse,
    SessionInfo,
    UpdateUserRequest,
    User,
)
from .responses import ResponseLedger
from .storage import Database
from .users import UserDirectory

__all__ = [
    # Version info
    "__version__",
    "__author__",
    # Configuration
    "InspectionConfig",
    "configure",
    "get_config",
    "set_config",
    # Storage
    "Database",
    # Components
    "AuthGateway",
    "UserDirectory",
    "InspectionLifecycle",
    "ResponseLedger",
    "AuditTrail",
    "InspectionService",
    "CommandResult",
    "GridCatalog",
    # Models
    "Role",
    "InspectionStatus",
    "User",
    "SessionInfo",
    "CreateUserRequest",
    "UpdateUserRequest",
    "CreateInspectionRequest",
    "Inspection",
    "InspectionProgress",
    "SavedResponse",
    "AuditAction",
    "AuditEntry",
    "AuditFilter",
    "Grid",
    "Section",
    "Criterion",
    # Exceptions
    "InspectionCoreError",
    "InvalidCredentials",
    "AccountDisabled",
    "SessionInvalid",
    "Forbidden",
    "DuplicateUsername",
    "NotFound",
    "ValidationFailure",
    "StorageFailure",
]
