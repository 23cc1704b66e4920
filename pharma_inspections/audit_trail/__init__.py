"""
Audit Trail Module - append-only record of every action.

Provides best-effort audit appends and a dynamic, parameterized filter engine
with pagination for reviewing them.
"""

from .models import AuditAction, AuditEntry, AuditFilter
from .query import AuditQueryBuilder
from .trail import AuditTrail

__all__ = [
    "AuditTrail",
    "AuditQueryBuilder",
    "AuditAction",
    "AuditEntry",
    "AuditFilter",
]
