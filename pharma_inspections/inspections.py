"""
Inspection lifecycle: records, metadata and the status state machine.

Status transitions::

    draft ──(first response, automatic)──> in_progress
    any ──(admin | lead_inspector)──> validated   stamps validator + time
    any ──────────────────────────────> any other status

No state is terminal; validated and archived inspections may be reopened.
"""

import logging
import uuid
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, aliased

from .exceptions import NotFound
from .models import (
    CreateInspectionRequest,
    Inspection,
    InspectionProgress,
    InspectionStatus,
    Role,
)
from .responses import progress_for
from .storage import Database, InspectionRecord, UserRecord, local_now

logger = logging.getLogger(__name__)

StatusLike = Union[str, InspectionStatus]

_ANY_ROLE: FrozenSet[Role] = frozenset(Role)

# Role guard per target status; every source state may reach every target.
TRANSITION_GUARDS: Dict[InspectionStatus, FrozenSet[Role]] = {
    InspectionStatus.DRAFT: _ANY_ROLE,
    InspectionStatus.IN_PROGRESS: _ANY_ROLE,
    InspectionStatus.COMPLETED: _ANY_ROLE,
    InspectionStatus.VALIDATED: frozenset({Role.ADMIN, Role.LEAD_INSPECTOR}),
    InspectionStatus.ARCHIVED: _ANY_ROLE,
}


def required_roles(status: StatusLike) -> Optional[Tuple[Role, ...]]:
    """Roles allowed to move an inspection to ``status``; None when unguarded."""
    guard = TRANSITION_GUARDS[InspectionStatus(status)]
    if guard == _ANY_ROLE:
        return None
    return tuple(role for role in Role if role in guard)


def can_transition(source: StatusLike, target: StatusLike, role: Role) -> bool:
    InspectionStatus(source)  # unknown source states raise ValueError
    return Role(role) in TRANSITION_GUARDS[InspectionStatus(target)]


class InspectionLifecycle:
    """Repository and state machine for inspections."""

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _require(session: Session, inspection_id: str) -> InspectionRecord:
        record = session.get(InspectionRecord, inspection_id)
        if record is None:
            raise NotFound("inspection", inspection_id)
        return record

    @staticmethod
    def _project(
        record: InspectionRecord,
        progress: Optional[InspectionProgress] = None,
        created_by_name: Optional[str] = None,
        validated_by_name: Optional[str] = None,
    ) -> Inspection:
        return Inspection(
            id=record.id,
            grid_id=record.grid_id,
            status=InspectionStatus(record.status),
            date_inspection=record.date_inspection,
            establishment=record.establishment or "",
            inspection_type=record.inspection_type or "",
            inspectors=list(record.inspectors or []),
            created_by=record.created_by,
            created_by_name=created_by_name,
            validated_by=record.validated_by,
            validated_by_name=validated_by_name,
            validated_at=record.validated_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
            progress=progress or InspectionProgress(),
        )

    def create(self, request: CreateInspectionRequest, creator_id: str) -> str:
        """
        Create an inspection in the draft state.

        Returns:
            ID of the new inspection
        """
        inspection_id = str(uuid.uuid4())
        now = local_now()

        with self.database.session("create inspection") as session:
            session.add(
                InspectionRecord(
                    id=inspection_id,
                    grid_id=request.grid_id,
                    status=InspectionStatus.DRAFT.value,
                    date_inspection=request.date_inspection,
                    establishment=request.establishment,
                    inspection_type=request.inspection_type,
                    inspectors=list(request.inspectors),
                    created_by=creator_id,
                    created_at=now,
                    updated_at=now,
                )
            )

        logger.info(f"Created inspection {inspection_id} on grid {request.grid_id}")
        return inspection_id

    def list(
        self,
        user_filter: Optional[str] = None,
        status_filter: Optional[StatusLike] = None,
    ) -> List[Inspection]:
        """
        Inspections, most recently updated first, each with fresh progress.

        Args:
            user_filter: Only inspections created by this user ID
            status_filter: Only inspections in this status
        """
        statement = select(InspectionRecord)
        if user_filter:
            statement = statement.where(InspectionRecord.created_by == user_filter)
        if status_filter:
            statement = statement.where(
                InspectionRecord.status == InspectionStatus(status_filter).value
            )
        statement = statement.order_by(
            InspectionRecord.updated_at.desc(), InspectionRecord.created_at.desc()
        )

        with self.database.session("list inspections") as session:
            records = session.scalars(statement).all()
            progress = progress_for(session, [record.id for record in records])
            return [
                self._project(record, progress.get(record.id)) for record in records
            ]

    def get(self, inspection_id: str) -> Inspection:
        """
        One inspection with creator and validator display names.

        Raises:
            NotFound: No such inspection
        """
        creator = aliased(UserRecord)
        validator = aliased(UserRecord)

        with self.database.session("get inspection") as session:
            row = session.execute(
                select(InspectionRecord, creator.full_name, validator.full_name)
                .outerjoin(creator, creator.id == InspectionRecord.created_by)
                .outerjoin(validator, validator.id == InspectionRecord.validated_by)
                .where(InspectionRecord.id == inspection_id)
            ).first()
            if row is None:
                raise NotFound("inspection", inspection_id)

            record, created_by_name, validated_by_name = row
            progress = progress_for(session, [inspection_id]).get(inspection_id)
            return self._project(record, progress, created_by_name, validated_by_name)

    def update_meta(
        self, inspection_id: str, request: CreateInspectionRequest
    ) -> None:
        """
        Overwrite date, establishment, type and inspectors wholesale.

        Raises:
            NotFound: No such inspection
        """
        with self.database.session("update inspection") as session:
            self._require(session, inspection_id)
            session.execute(
                update(InspectionRecord)
                .where(InspectionRecord.id == inspection_id)
                .values(
                    date_inspection=request.date_inspection,
                    establishment=request.establishment,
                    inspection_type=request.inspection_type,
                    inspectors=list(request.inspectors),
                    updated_at=local_now(),
                )
            )

    def set_status(
        self,
        inspection_id: str,
        status: StatusLike,
        actor_id: Optional[str] = None,
    ) -> InspectionStatus:
        """
        Move an inspection to ``status``.

        Role checks belong to the caller (see required_roles). Validation stamps
        the validator and the validation time together.

        Raises:
            NotFound: No such inspection
        """
        target = InspectionStatus(status)
        now = local_now()
        values: Dict[str, object] = {"status": target.value, "updated_at": now}
        if target is InspectionStatus.VALIDATED:
            values.update(validated_by=actor_id, validated_at=now)

        with self.database.session("set inspection status") as session:
            record = self._require(session, inspection_id)
            previous = record.status
            session.execute(
                update(InspectionRecord)
                .where(InspectionRecord.id == inspection_id)
                .values(**values)
            )

        logger.info(f"Inspection {inspection_id}: {previous} -> {target.value}")
        return target

    def delete(self, inspection_id: str) -> None:
        """
        Delete an inspection; its responses go with it.

        Raises:
            NotFound: No such inspection
        """
        with self.database.session("delete inspection") as session:
            self._require(session, inspection_id)
            session.execute(
                delete(InspectionRecord).where(InspectionRecord.id == inspection_id)
            )

        logger.info(f"Deleted inspection {inspection_id}")
