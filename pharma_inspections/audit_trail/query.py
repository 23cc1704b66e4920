"""
Filter-to-statement translation for the audit log.

Each active predicate contributes one SQLAlchemy clause whose value travels as
a bound parameter. The rendered statement text depends only on which
predicates are active, never on their values.
"""

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import Select, and_, func, select
from sqlalchemy.sql.elements import ColumnElement

from ..storage.schema import AuditLogRecord
from .models import AuditFilter


class AuditQueryBuilder:
    """Accumulates (predicate, bound value) pairs over ``audit_log``."""

    def __init__(self) -> None:
        self._clauses: List[ColumnElement] = []

    @classmethod
    def from_filter(cls, audit_filter: AuditFilter) -> "AuditQueryBuilder":
        """Build the predicate set described by an AuditFilter."""
        return (
            cls()
            .equals(AuditLogRecord.user_id, audit_filter.user_id)
            .equals(AuditLogRecord.action, audit_filter.action)
            .equals(AuditLogRecord.entity_type, audit_filter.entity_type)
            .equals(AuditLogRecord.entity_id, audit_filter.entity_id)
            .not_before(AuditLogRecord.timestamp, audit_filter.from_date)
            .not_after(AuditLogRecord.timestamp, audit_filter.to_date)
        )

    @property
    def clauses(self) -> List[ColumnElement]:
        return list(self._clauses)

    def equals(self, column: Any, value: Optional[Any]) -> "AuditQueryBuilder":
        if value is not None:
            self._clauses.append(column == value)
        return self

    def not_before(self, column: Any, value: Optional[datetime]) -> "AuditQueryBuilder":
        if value is not None:
            self._clauses.append(column >= value)
        return self

    def not_after(self, column: Any, value: Optional[datetime]) -> "AuditQueryBuilder":
        if value is not None:
            self._clauses.append(column <= value)
        return self

    def _apply(self, statement: Select) -> Select:
        if self._clauses:
            statement = statement.where(and_(*self._clauses))
        return statement

    def select_entries(self, limit: int, offset: int = 0) -> Select:
        """Newest-first page of matching rows."""
        statement = self._apply(select(AuditLogRecord))
        return (
            statement.order_by(
                AuditLogRecord.timestamp.desc(), AuditLogRecord.id.desc()
            )
            .limit(limit)
            .offset(offset)
        )

    def select_count(self) -> Select:
        """Number of matching rows, without ordering or pagination."""
        return self._apply(select(func.count(AuditLogRecord.id)))
