"""
Response ledger: per-criterion answers of an inspection and the progress
counts derived from them.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .exceptions import NotFound
from .models import InspectionProgress, InspectionStatus, SavedResponse
from .storage import Database, InspectionRecord, ResponseRecord, local_now

logger = logging.getLogger(__name__)


def _progress_columns() -> tuple:
    return (
        func.count(ResponseRecord.id),
        func.count(ResponseRecord.conforme),
        func.coalesce(
            func.sum(case((ResponseRecord.conforme.is_(True), 1), else_=0)), 0
        ),
        func.coalesce(
            func.sum(case((ResponseRecord.conforme.is_(False), 1), else_=0)), 0
        ),
    )


def progress_for(
    session: Session, inspection_ids: Iterable[str]
) -> Dict[str, InspectionProgress]:
    """
    Aggregate answer counts for several inspections in one grouped query.

    Inspections without any response row are absent from the result.
    """
    ids = list(inspection_ids)
    if not ids:
        return {}

    rows = session.execute(
        select(ResponseRecord.inspection_id, *_progress_columns())
        .where(ResponseRecord.inspection_id.in_(ids))
        .group_by(ResponseRecord.inspection_id)
    ).all()

    return {
        row[0]: InspectionProgress(
            total=row[1], answered=row[2], conforme=row[3], non_conforme=row[4]
        )
        for row in rows
    }


class ResponseLedger:
    """Upsert-only store of checklist answers."""

    def __init__(self, database: Database):
        self.database = database

    def save(
        self,
        inspection_id: str,
        criterion_id: int,
        conforme: Optional[bool],
        observation: str,
        editor_id: Optional[str],
    ) -> None:
        """
        Write the answer for one criterion, replacing any previous one.

        Raises:
            NotFound: The inspection does not exist
        """
        now = local_now()

        with self.database.session("save response") as session:
            inspection = session.get(InspectionRecord, inspection_id)
            if inspection is None:
                raise NotFound("inspection", inspection_id)

            statement = sqlite_insert(ResponseRecord).values(
                inspection_id=inspection_id,
                criterion_id=criterion_id,
                conforme=conforme,
                observation=observation or "",
                updated_by=editor_id,
                updated_at=now,
            )
            session.execute(
                statement.on_conflict_do_update(
                    index_elements=["inspection_id", "criterion_id"],
                    set_={
                        "conforme": statement.excluded.conforme,
                        "observation": statement.excluded.observation,
                        "updated_by": statement.excluded.updated_by,
                        "updated_at": statement.excluded.updated_at,
                    },
                )
            )

            session.execute(
                update(InspectionRecord)
                .where(InspectionRecord.id == inspection_id)
                .values(updated_at=now)
            )

            # The only automatic lifecycle edge: the first answer written to a
            # draft moves it to in_progress. Other states are left untouched.
            session.execute(
                update(InspectionRecord)
                .where(
                    InspectionRecord.id == inspection_id,
                    InspectionRecord.status == InspectionStatus.DRAFT.value,
                )
                .values(status=InspectionStatus.IN_PROGRESS.value)
            )

        logger.debug(f"Saved response {inspection_id}:{criterion_id}")

    def get_progress(self, inspection_id: str) -> InspectionProgress:
        """Counts over the rows written so far; all zero when there are none."""
        with self.database.session("response progress") as session:
            row = session.execute(
                select(*_progress_columns()).where(
                    ResponseRecord.inspection_id == inspection_id
                )
            ).one()
            return InspectionProgress(
                total=row[0], answered=row[1], conforme=row[2], non_conforme=row[3]
            )

    def list(self, inspection_id: str) -> List[SavedResponse]:
        """Every stored answer of an inspection, in no particular order."""
        with self.database.session("list responses") as session:
            records = session.scalars(
                select(ResponseRecord).where(
                    ResponseRecord.inspection_id == inspection_id
                )
            ).all()
            return [SavedResponse.model_validate(record) for record in records]
