"""
Core audit trail implementation.

Provides the AuditTrail class that appends entries to the shared datastore and
answers filtered, paginated queries over them.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from ..config import get_config
from ..models import User
from ..storage import AuditLogRecord, Database, local_now
from .models import AuditAction, AuditEntry, AuditFilter
from .query import AuditQueryBuilder

logger = logging.getLogger(__name__)


class AuditTrail:
    """Append-only action log with a filtered query engine.

    Writes are advisory: a failed append is logged and dropped so that it can
    never fail or roll back the business operation it describes. Each append
    holds the datastore lock for its single insert only.

    Example:
        >>> trail = AuditTrail(database)
        >>> trail.record(user, AuditAction.CREATE_INSPECTION, "inspection", insp_id,
        ...              details={"grid": "officine"})
        >>> trail.count(AuditFilter(entity_type="inspection"))
        1
    """

    def __init__(self, database: Database, enabled: Optional[bool] = None):
        """
        Initialize the audit trail.

        Args:
            database: Shared datastore handle
            enabled: Override of the configured audit_enabled flag
        """
        self.database = database
        self.config = database.config or get_config()
        self.enabled = self.config.audit_enabled if enabled is None else enabled

    def append(
        self,
        action: Union[str, AuditAction],
        actor_id: Optional[str] = None,
        actor_name: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_info: Optional[str] = None,
    ) -> Optional[int]:
        """
        Append one audit entry, best effort.

        Args:
            action: Action label
            actor_id: ID of the acting user
            actor_name: Username snapshot of the acting user
            entity_type: Type of entity affected
            entity_id: ID of entity affected
            details: Free-form structured details
            ip_info: Client network information

        Returns:
            ID of the new entry, or None if nothing was written
        """
        if not self.enabled:
            return None

        label = action.value if isinstance(action, AuditAction) else str(action)
        try:
            with self.database.session("audit append") as session:
                record = AuditLogRecord(
                    timestamp=local_now(),
                    user_id=actor_id,
                    username=actor_name,
                    action=label,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details=details or None,
                    ip_info=ip_info,
                )
                session.add(record)
                session.flush()
                entry_id = record.id
        except Exception as e:
            logger.warning(f"Failed to write audit entry {label}: {e}")
            return None

        return int(entry_id)

    def record(
        self,
        actor: User,
        action: Union[str, AuditAction],
        entity_type: str,
        entity_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[int]:
        """Append an entry attributed to an authenticated user."""
        return self.append(
            action,
            actor_id=actor.id,
            actor_name=actor.username,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )

    def query(self, audit_filter: Optional[AuditFilter] = None) -> List[AuditEntry]:
        """
        Query audit entries, newest first.

        Args:
            audit_filter: Predicates and pagination; all predicates optional

        Returns:
            One page of matching entries
        """
        audit_filter = audit_filter or AuditFilter()
        builder = AuditQueryBuilder.from_filter(audit_filter)
        limit = min(audit_filter.limit, self.config.audit_max_limit)

        with self.database.session("audit query") as session:
            rows = session.scalars(
                builder.select_entries(limit, audit_filter.offset)
            ).all()
            return [AuditEntry.model_validate(row) for row in rows]

    def count(self, audit_filter: Optional[AuditFilter] = None) -> int:
        """
        Count audit entries matching the same predicates as query().

        Args:
            audit_filter: Predicates; pagination fields are ignored

        Returns:
            Total number of matching entries
        """
        builder = AuditQueryBuilder.from_filter(audit_filter or AuditFilter())

        with self.database.session("audit count") as session:
            return int(session.scalar(builder.select_count()) or 0)

    def entity_history(self, entity_type: str, entity_id: str) -> List[AuditEntry]:
        """Complete history of one entity, oldest first."""
        audit_filter = AuditFilter(
            entity_type=entity_type,
            entity_id=entity_id,
            limit=self.config.audit_max_limit,
        )
        return list(reversed(self.query(audit_filter)))
