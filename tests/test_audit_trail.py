"""
Tests for the audit trail: best-effort appends and the filtered query engine.
"""

from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest
from pydantic import ValidationError
from sqlalchemy import update

from pharma_inspections.audit_trail import (
    AuditAction,
    AuditEntry,
    AuditFilter,
    AuditQueryBuilder,
    AuditTrail,
)
from pharma_inspections.exceptions import StorageFailure
from pharma_inspections.storage import AuditLogRecord

pytestmark = pytest.mark.gxp


@pytest.fixture
def populated(trail, admin_user, make_user):
    """Six entries from two actors over two entity types."""
    alice = make_user()
    trail.record(admin_user, AuditAction.CREATE_USER, "user", alice.id)
    trail.record(alice, AuditAction.CREATE_INSPECTION, "inspection", "insp-1")
    trail.record(alice, AuditAction.UPDATE_META, "inspection", "insp-1")
    trail.record(admin_user, AuditAction.CREATE_INSPECTION, "inspection", "insp-2")
    trail.record(alice, AuditAction.SAVE_RESPONSE, "response", "insp-1:1")
    trail.append(AuditAction.APP_START, entity_type="system")
    return {"admin": admin_user, "alice": alice}


class TestAuditModels:
    """Test entry and filter models."""

    def test_status_change_label(self):
        assert AuditAction.status_change("validated") == "SET_STATUS_VALIDATED"
        assert AuditAction.status_change("in_progress") == "SET_STATUS_IN_PROGRESS"

    def test_blank_predicates_are_absent(self):
        audit_filter = AuditFilter(user_id="", action="  ", entity_type=None)
        assert audit_filter.user_id is None
        assert audit_filter.action is None
        assert AuditQueryBuilder.from_filter(audit_filter).clauses == []

    def test_inverted_range_is_accepted(self):
        now = datetime.now()
        audit_filter = AuditFilter(from_date=now, to_date=now - timedelta(days=1))
        assert len(AuditQueryBuilder.from_filter(audit_filter).clauses) == 2

    def test_limit_not_capped_by_model(self):
        assert AuditFilter(limit=5000).limit == 5000

    def test_pagination_bounds(self):
        with pytest.raises(ValidationError):
            AuditFilter(limit=0)
        with pytest.raises(ValidationError):
            AuditFilter(offset=-1)

    def test_log_format(self):
        entry = AuditEntry(
            id=1,
            timestamp=datetime(2024, 3, 1, 9, 30),
            username="alice",
            action="CREATE_INSPECTION",
            entity_type="inspection",
            entity_id="insp-1",
        )
        assert entry.to_log_format() == (
            "[2024-03-01 09:30:00] USER=alice ACTION=CREATE_INSPECTION "
            "ENTITY=inspection:insp-1"
        )


class TestAppend:
    """Test best-effort writes."""

    def test_append_returns_increasing_ids(self, trail):
        first = trail.append("LOGIN")
        second = trail.append("LOGOUT")
        assert second > first

    def test_snapshot_fields(self, trail, admin_user):
        trail.record(
            admin_user,
            AuditAction.CREATE_USER,
            "user",
            "u-1",
            details={"username": "alice", "role": "inspector"},
        )
        (entry,) = trail.query(AuditFilter(action="CREATE_USER"))

        assert entry.user_id == admin_user.id
        assert entry.username == "admin"
        assert entry.details == {"username": "alice", "role": "inspector"}
        assert entry.timestamp <= datetime.now()

    def test_failure_is_swallowed(self, config, caplog):
        """A broken store never raises out of append."""
        broken = Mock()
        broken.config = config
        broken.session.side_effect = StorageFailure("audit append", "disk I/O error")

        trail = AuditTrail(broken)
        assert trail.append(AuditAction.LOGIN) is None
        assert "Failed to write audit entry LOGIN" in caplog.text

    def test_disabled(self, database, trail):
        silent = AuditTrail(database, enabled=False)
        assert silent.append(AuditAction.LOGIN) is None
        assert trail.count() == 0


class TestQuery:
    """Test predicate conjunction, ordering and pagination."""

    def test_newest_first(self, trail, populated):
        actions = [entry.action for entry in trail.query()]
        assert actions == [
            "APP_START",
            "SAVE_RESPONSE",
            "CREATE_INSPECTION",
            "UPDATE_META",
            "CREATE_INSPECTION",
            "CREATE_USER",
        ]

    def test_conjunction(self, trail, populated):
        alice = populated["alice"]
        audit_filter = AuditFilter(user_id=alice.id, entity_type="inspection")

        entries = trail.query(audit_filter)

        assert [e.action for e in entries] == ["UPDATE_META", "CREATE_INSPECTION"]
        assert all(e.user_id == alice.id for e in entries)
        assert all(e.entity_type == "inspection" for e in entries)
        assert trail.count(audit_filter) == len(entries)

    def test_count_matches_unpaginated_query(self, trail, populated):
        for audit_filter in [
            AuditFilter(),
            AuditFilter(action="CREATE_INSPECTION"),
            AuditFilter(entity_type="inspection", entity_id="insp-1"),
            AuditFilter(user_id=populated["admin"].id),
            AuditFilter(user_id="nobody"),
        ]:
            assert trail.count(audit_filter) == len(trail.query(audit_filter))

    def test_pagination_after_ordering(self, trail, populated):
        page = trail.query(AuditFilter(limit=2, offset=1))
        assert [e.action for e in page] == ["SAVE_RESPONSE", "CREATE_INSPECTION"]
        assert trail.count(AuditFilter(limit=2, offset=1)) == 6

    def test_date_bounds_inclusive(self, trail, database, populated):
        stamp = datetime(2024, 1, 15, 12, 0, 0)
        with database.session("pin timestamps") as session:
            session.execute(
                update(AuditLogRecord)
                .where(AuditLogRecord.action == "UPDATE_META")
                .values(timestamp=stamp)
            )

        exact = AuditFilter(from_date=stamp, to_date=stamp)
        assert [e.action for e in trail.query(exact)] == ["UPDATE_META"]
        assert trail.count(AuditFilter(to_date=stamp)) == 1
        assert trail.count(AuditFilter(from_date=stamp + timedelta(seconds=1))) == 5

    def test_inverted_range_matches_nothing(self, trail, populated):
        now = datetime.now()
        inverted = AuditFilter(from_date=now, to_date=now - timedelta(days=1))
        assert trail.query(inverted) == []
        assert trail.count(inverted) == 0

    def test_hostile_values_are_bound(self, trail, populated):
        """Filter values never reach the statement text."""
        hostile = "x' OR '1'='1"
        audit_filter = AuditFilter(action=hostile, entity_id=hostile)

        assert trail.query(audit_filter) == []
        assert trail.count(audit_filter) == 0

        statement = AuditQueryBuilder.from_filter(audit_filter).select_entries(10)
        assert hostile not in str(statement)

    def test_entity_history_oldest_first(self, trail, populated):
        history = trail.entity_history("inspection", "insp-1")
        assert [e.action for e in history] == ["CREATE_INSPECTION", "UPDATE_META"]

    def test_query_capped_by_max_limit(self, database, config):
        capped = AuditTrail(database)
        capped.config = config.model_copy(update={"audit_max_limit": 2})
        for _ in range(3):
            capped.append("LOGIN")
        assert len(capped.query(AuditFilter(limit=50))) == 2
        assert len(capped.query(AuditFilter(limit=5000))) == 2
