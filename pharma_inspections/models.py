"""
Data models for users, sessions, inspections and responses.

These are the public projections returned by the core and the request shapes
it accepts. Credential hashes never appear in any of them.
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")

INSPECTION_TYPES = ("initiale", "suivi", "plainte", "régulière")


class Role(str, Enum):
    """Closed set of authorization levels."""

    ADMIN = "admin"
    LEAD_INSPECTOR = "lead_inspector"
    INSPECTOR = "inspector"
    VIEWER = "viewer"


class InspectionStatus(str, Enum):
    """Lifecycle states of an inspection."""

    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    VALIDATED = "validated"
    ARCHIVED = "archived"


class User(BaseModel):
    """Public projection of a user account."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    full_name: str
    role: Role
    active: bool
    created_at: datetime
    updated_at: datetime


class SessionInfo(BaseModel):
    """Result of a successful login."""

    token: str
    user: User


class CreateUserRequest(BaseModel):
    """Request to create a user account."""

    username: str = Field(..., description="Unique login name")
    full_name: str = Field(..., min_length=1, max_length=200)
    role: Role = Field(Role.INSPECTOR, description="Authorization level")
    password: str = Field(..., min_length=6, max_length=100)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Usernames are 3-50 characters of letters, digits, '.', '_' or '-'."""
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Nom d'utilisateur minimum 3 caractères")
        if len(v) > 50:
            raise ValueError("Nom d'utilisateur maximum 50 caractères")
        if not USERNAME_PATTERN.match(v):
            raise ValueError("Caractères non autorisés")
        return v

    @field_validator("full_name")
    @classmethod
    def strip_full_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Nom complet requis")
        return v


class UpdateUserRequest(BaseModel):
    """Partial update of a user; absent fields are left untouched."""

    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[Role] = None
    active: Optional[bool] = None


class CreateInspectionRequest(BaseModel):
    """Metadata of an inspection, used for creation and wholesale updates."""

    grid_id: str = Field(..., min_length=1, description="Checklist grid identifier")
    date_inspection: date = Field(..., description="Date of the inspection visit")
    establishment: str = Field(..., description="Inspected establishment")
    inspection_type: str = Field(..., description="Kind of inspection")
    inspectors: List[str] = Field(..., description="Ordered inspector names")

    @field_validator("establishment")
    @classmethod
    def validate_establishment(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Établissement minimum 2 caractères")
        if len(v) > 200:
            raise ValueError("Établissement trop long")
        return v

    @field_validator("inspection_type")
    @classmethod
    def validate_inspection_type(cls, v: str) -> str:
        if v not in INSPECTION_TYPES:
            raise ValueError(
                f"Type d'inspection invalide, attendu : {', '.join(INSPECTION_TYPES)}"
            )
        return v

    @field_validator("inspectors")
    @classmethod
    def validate_inspectors(cls, v: List[str]) -> List[str]:
        names = [name.strip() for name in v if name and name.strip()]
        if not names:
            raise ValueError("Au moins un inspecteur requis")
        return names


class InspectionProgress(BaseModel):
    """Derived answer counts for one inspection. Never stored."""

    total: int = 0
    answered: int = 0
    conforme: int = 0
    non_conforme: int = 0

    @property
    def pending(self) -> int:
        """Rows written but not yet answered."""
        return self.total - self.answered


class Inspection(BaseModel):
    """An inspection enriched with display names and progress."""

    id: str
    grid_id: str
    status: InspectionStatus
    date_inspection: Optional[date] = None
    establishment: str = ""
    inspection_type: str = ""
    inspectors: List[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_by_name: Optional[str] = None
    validated_by: Optional[str] = None
    validated_by_name: Optional[str] = None
    validated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    progress: InspectionProgress = Field(default_factory=InspectionProgress)


class ResponseInput(BaseModel):
    """One answer to a checklist criterion."""

    criterion_id: int = Field(..., ge=1)
    conforme: Optional[bool] = Field(
        None, description="None = unanswered, True = conforme, False = non-conforme"
    )
    observation: str = Field("", max_length=1000)


class SavedResponse(BaseModel):
    """A stored answer."""

    model_config = ConfigDict(from_attributes=True)

    criterion_id: int
    conforme: Optional[bool] = None
    observation: str = ""
    updated_by: Optional[str] = None
    updated_at: datetime


class ChangePasswordRequest(BaseModel):
    """New credential for an account."""

    new_password: str = Field(..., min_length=6, max_length=100)
