"""
Tests for the response ledger and progress aggregation.
"""

import pytest
from pydantic import ValidationError

from pharma_inspections.exceptions import NotFound
from pharma_inspections.models import InspectionStatus, ResponseInput


@pytest.fixture
def inspection_id(lifecycle, admin_user, inspection_request):
    return lifecycle.create(inspection_request, admin_user.id)


class TestSaveResponse:
    """Test upsert semantics."""

    def test_upsert_is_idempotent(self, ledger, inspection_id, admin_user):
        """Saving the same criterion twice keeps one row with the last value."""
        ledger.save(inspection_id, 1, True, "", admin_user.id)
        ledger.save(inspection_id, 1, False, "Thermomètre absent", admin_user.id)

        (response,) = ledger.list(inspection_id)
        assert response.criterion_id == 1
        assert response.conforme is False
        assert response.observation == "Thermomètre absent"
        assert response.updated_by == admin_user.id

        progress = ledger.get_progress(inspection_id)
        assert progress.total == 1
        assert progress.non_conforme == 1

    def test_tri_state(self, ledger, inspection_id, admin_user):
        ledger.save(inspection_id, 1, True, "", admin_user.id)
        ledger.save(inspection_id, 2, False, "", admin_user.id)
        ledger.save(inspection_id, 3, None, "À revoir", admin_user.id)

        verdicts = {r.criterion_id: r.conforme for r in ledger.list(inspection_id)}
        assert verdicts == {1: True, 2: False, 3: None}

    def test_missing_inspection(self, ledger, admin_user):
        with pytest.raises(NotFound):
            ledger.save("missing", 1, True, "", admin_user.id)

    def test_input_validation(self):
        with pytest.raises(ValidationError):
            ResponseInput(criterion_id=0, conforme=True)
        with pytest.raises(ValidationError):
            ResponseInput(criterion_id=1, conforme=True, observation="x" * 1001)


class TestAutomaticTransition:
    """Test the draft -> in_progress edge."""

    def test_first_answer_starts_inspection(
        self, ledger, lifecycle, inspection_id, admin_user
    ):
        assert lifecycle.get(inspection_id).status is InspectionStatus.DRAFT

        ledger.save(inspection_id, 1, True, "", admin_user.id)

        assert lifecycle.get(inspection_id).status is InspectionStatus.IN_PROGRESS

    def test_fires_from_draft_only(self, ledger, lifecycle, inspection_id, admin_user):
        """Later answers never move a completed inspection back."""
        ledger.save(inspection_id, 1, True, "", admin_user.id)
        lifecycle.set_status(inspection_id, "completed")

        ledger.save(inspection_id, 2, True, "", admin_user.id)

        assert lifecycle.get(inspection_id).status is InspectionStatus.COMPLETED

    def test_reopened_draft_moves_again(
        self, ledger, lifecycle, inspection_id, admin_user
    ):
        ledger.save(inspection_id, 1, True, "", admin_user.id)
        lifecycle.set_status(inspection_id, "draft")

        ledger.save(inspection_id, 1, False, "", admin_user.id)

        assert lifecycle.get(inspection_id).status is InspectionStatus.IN_PROGRESS


class TestProgress:
    """Test derived counts."""

    def test_empty(self, ledger, inspection_id):
        progress = ledger.get_progress(inspection_id)
        assert (progress.total, progress.answered) == (0, 0)
        assert (progress.conforme, progress.non_conforme) == (0, 0)

    def test_counts(self, ledger, inspection_id, admin_user):
        ledger.save(inspection_id, 1, True, "", admin_user.id)
        ledger.save(inspection_id, 2, True, "", admin_user.id)
        ledger.save(inspection_id, 3, False, "", admin_user.id)
        ledger.save(inspection_id, 4, None, "", admin_user.id)

        progress = ledger.get_progress(inspection_id)
        assert progress.total == 4
        assert progress.answered == 3
        assert progress.conforme == 2
        assert progress.non_conforme == 1
        assert progress.pending == 1

    def test_answer_cleared(self, ledger, inspection_id, admin_user):
        """Resetting a verdict to None keeps the row but un-answers it."""
        ledger.save(inspection_id, 1, True, "", admin_user.id)
        ledger.save(inspection_id, 1, None, "", admin_user.id)

        progress = ledger.get_progress(inspection_id)
        assert progress.total == 1
        assert progress.answered == 0

    def test_isolated_per_inspection(
        self, ledger, lifecycle, inspection_id, admin_user, inspection_request
    ):
        other = lifecycle.create(inspection_request, admin_user.id)
        ledger.save(inspection_id, 1, True, "", admin_user.id)
        ledger.save(other, 1, False, "", admin_user.id)

        assert ledger.get_progress(inspection_id).conforme == 1
        assert ledger.get_progress(other).non_conforme == 1

    def test_unknown_inspection_reads_zero(self, ledger):
        assert ledger.get_progress("missing").total == 0
        assert ledger.list("missing") == []
