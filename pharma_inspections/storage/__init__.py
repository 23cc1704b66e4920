"""
Storage Module - the shared embedded datastore.

Defines the normative relational schema and the lock-guarded connection handle
that every repository shares.
"""

from .database import Database
from .schema import (
    AuditLogRecord,
    Base,
    InspectionRecord,
    ResponseRecord,
    SessionRecord,
    UserRecord,
    local_now,
)

__all__ = [
    "Database",
    "Base",
    "UserRecord",
    "SessionRecord",
    "InspectionRecord",
    "ResponseRecord",
    "AuditLogRecord",
    "local_now",
]
