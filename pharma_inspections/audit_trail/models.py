"""
Data models for audit trail functionality.

These models define the structure of audit entries and of the filters used to
search them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuditAction(str, Enum):
    """Action labels written by the inspection core."""

    # Authentication events
    LOGIN = "LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"

    # User administration
    CREATE_USER = "CREATE_USER"
    UPDATE_USER = "UPDATE_USER"
    CHANGE_PASSWORD = "CHANGE_PASSWORD"
    DEACTIVATE_USER = "DEACTIVATE_USER"

    # Inspection events
    CREATE_INSPECTION = "CREATE_INSPECTION"
    SAVE_RESPONSE = "SAVE_RESPONSE"
    UPDATE_META = "UPDATE_META"
    DELETE_INSPECTION = "DELETE_INSPECTION"

    # System events
    APP_START = "APP_START"

    @staticmethod
    def status_change(status: str) -> str:
        """Label for a lifecycle transition, e.g. SET_STATUS_VALIDATED."""
        return f"SET_STATUS_{getattr(status, 'value', status).upper()}"


class AuditEntry(BaseModel):
    """
    One row of the append-only audit log.

    The username is a snapshot taken when the action happened, so history
    stays readable after the account is renamed or deactivated.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Monotonic identifier")
    timestamp: datetime = Field(..., description="Server-local time of the action")
    user_id: Optional[str] = Field(None, description="ID of the acting user")
    username: Optional[str] = Field(None, description="Username at time of action")
    action: str = Field(..., description="Action label")
    entity_type: Optional[str] = Field(None, description="Type of entity affected")
    entity_id: Optional[str] = Field(None, description="ID of entity affected")
    details: Optional[Dict[str, Any]] = Field(
        None, description="Additional context-specific details"
    )
    ip_info: Optional[str] = Field(None, description="Client network information")

    def to_log_format(self) -> str:
        """
        Convert to a standardized log format string.

        Returns:
            Formatted log string
        """
        parts = [
            f"[{self.timestamp.isoformat(sep=' ', timespec='seconds')}]",
            f"USER={self.username or self.user_id or 'system'}",
            f"ACTION={self.action}",
        ]

        if self.entity_type and self.entity_id:
            parts.append(f"ENTITY={self.entity_type}:{self.entity_id}")
        elif self.entity_type:
            parts.append(f"ENTITY={self.entity_type}")

        return " ".join(parts)


class AuditFilter(BaseModel):
    """Independently optional predicates for searching the audit log."""

    user_id: Optional[str] = Field(None, description="Filter by acting user")
    action: Optional[str] = Field(None, description="Exact action label")
    entity_type: Optional[str] = Field(None, description="Exact entity type")
    entity_id: Optional[str] = Field(None, description="Exact entity ID")
    from_date: Optional[datetime] = Field(None, description="Inclusive lower bound")
    to_date: Optional[datetime] = Field(None, description="Inclusive upper bound")

    # Pagination
    limit: int = Field(100, description="Maximum results to return", gt=0)
    offset: int = Field(0, description="Result offset for pagination", ge=0)

    @field_validator("user_id", "action", "entity_type", "entity_id", mode="before")
    @classmethod
    def blank_is_absent(cls, v: Any) -> Any:
        """Empty form fields mean 'no predicate'."""
        if isinstance(v, str) and not v.strip():
            return None
        return v
