"""
Relational schema of the inspection datastore.

The table layout is normative: other tools read the same SQLite file.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from ..models import InspectionStatus, Role

Base = declarative_base()


def local_now() -> datetime:
    """Server-local wall clock time, the time base of every stored timestamp."""
    return datetime.now()


def _in_enum(column: str, enum: type) -> str:
    values = ",".join(f"'{member.value}'" for member in enum)
    return f"{column} IN ({values})"


class UserRecord(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for user accounts."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    username = Column(String(50), nullable=False, unique=True)
    full_name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default=Role.INSPECTOR.value)
    password_hash = Column(String(255), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=local_now)
    updated_at = Column(DateTime, nullable=False, default=local_now)

    __table_args__ = (CheckConstraint(_in_enum("role", Role), name="ck_users_role"),)


class SessionRecord(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for session tokens."""

    __tablename__ = "sessions"

    token = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=local_now)
    expires_at = Column(DateTime, nullable=False)


class InspectionRecord(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for inspections."""

    __tablename__ = "inspections"

    id = Column(String(36), primary_key=True)
    grid_id = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=InspectionStatus.DRAFT.value)
    date_inspection = Column(Date, nullable=True)
    establishment = Column(String(200), nullable=True)
    inspection_type = Column(String(50), nullable=True)
    inspectors = Column(JSON, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    validated_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    validated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=local_now)
    updated_at = Column(DateTime, nullable=False, default=local_now)

    __table_args__ = (
        CheckConstraint(
            _in_enum("status", InspectionStatus), name="ck_inspections_status"
        ),
        Index("idx_inspections_status", "status"),
        Index("idx_inspections_user", "created_by"),
    )


class ResponseRecord(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for checklist answers."""

    __tablename__ = "responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inspection_id = Column(
        String(36),
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
    )
    criterion_id = Column(Integer, nullable=False)
    # NULL = unanswered, False = non conforme, True = conforme
    conforme = Column(Boolean, nullable=True)
    observation = Column(Text, nullable=True, default="")
    updated_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime, nullable=False, default=local_now)

    __table_args__ = (
        UniqueConstraint(
            "inspection_id", "criterion_id", name="uq_responses_criterion"
        ),
        Index("idx_responses_insp", "inspection_id"),
    )


class AuditLogRecord(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for the append-only audit log."""

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, default=local_now)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    username = Column(String(50), nullable=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(200), nullable=True)
    details = Column(JSON, nullable=True)
    ip_info = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_audit_timestamp", "timestamp"),
        Index("idx_audit_user", "user_id"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )
