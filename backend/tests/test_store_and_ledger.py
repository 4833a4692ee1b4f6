"""
Test Suite: Complaint Store, History Ledger and Workload Index

Tests the persistence guarantees the lifecycle relies on:
1. Compare-and-update rejects stale status or version reads
2. Of two racing writers, exactly one succeeds, at store and service level
3. A failed history write rolls back the status change
4. The ledger is ordered by time, then insertion sequence
5. Workload snapshots count only active, assigned complaints
"""
import pytest
import sys
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.exc import SQLAlchemyError

from app.models.db_models import ActorRole, ComplaintEvent, ComplaintStatus
from app.services.complaints import (
    ComplaintService,
    ComplaintStore,
    ConflictError,
    EventEmitter,
    HistoryLedger,
    NotFoundError,
)
from app.services.complaints.writer import TransitionWriter


S = ComplaintStatus
BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# COMPARE-AND-UPDATE
# =============================================================================

class TestCompareAndUpdate:

    def test_matching_status_applies_and_bumps_version(self, db, add_complaint):
        complaint_id = add_complaint()
        store = ComplaintStore(db)

        updated = store.compare_and_update(complaint_id, S.PENDING, {"status": S.WITHDRAWN}, expected_version=1)

        assert updated.status == S.WITHDRAWN
        assert updated.version == 2

    def test_stale_status(self, db, add_complaint):
        complaint_id = add_complaint(status=S.IN_PROGRESS, assignee_id="staff-a")
        store = ComplaintStore(db)

        with pytest.raises(ConflictError) as exc_info:
            store.compare_and_update(complaint_id, S.PENDING, {"status": S.WITHDRAWN})

        assert exc_info.value.expected_status == S.PENDING
        assert exc_info.value.actual_status == S.IN_PROGRESS

    def test_stale_version(self, db, add_complaint):
        complaint_id = add_complaint()
        store = ComplaintStore(db)

        with pytest.raises(ConflictError):
            store.compare_and_update(complaint_id, S.PENDING, {"status": S.WITHDRAWN}, expected_version=7)
        db.rollback()

        assert store.get(complaint_id).status == S.PENDING

    def test_missing_complaint(self, db, world):
        with pytest.raises(NotFoundError):
            ComplaintStore(db).compare_and_update("missing", S.PENDING, {"status": S.WITHDRAWN})

    def test_racing_writers_one_wins(self, session_factory, world, add_complaint):
        complaint_id = add_complaint()
        first, second = session_factory(), session_factory()
        try:
            # Both writers read PENDING before either writes
            seen_by_first = ComplaintStore(first).get(complaint_id)
            seen_by_second = ComplaintStore(second).get(complaint_id)

            TransitionWriter(first).write(
                seen_by_first, S.IN_PROGRESS, ComplaintEvent.ASSIGNED, world.staff_a,
                message="Assigned to staff-a", changes={"assignee_id": "staff-a"},
            )
            first.commit()

            with pytest.raises(ConflictError) as exc_info:
                TransitionWriter(second).write(
                    seen_by_second, S.IN_PROGRESS, ComplaintEvent.ASSIGNED, world.staff_b,
                    message="Assigned to staff-b", changes={"assignee_id": "staff-b"},
                )
            second.rollback()
            assert exc_info.value.actual_status == S.IN_PROGRESS
        finally:
            first.close()
            second.close()

        check = session_factory()
        try:
            assert ComplaintStore(check).get(complaint_id).assignee_id == "staff-a"
            assert HistoryLedger(check).count_for(complaint_id) == 1
        finally:
            check.close()



# =============================================================================
# CONCURRENT SERVICES
# =============================================================================

class TestConcurrentServices:
    """
    Two services on separate sessions. The second commits between the
    first one's legality check and its conditional write.
    """

    @pytest.fixture
    def other_session(self, session_factory):
        session = session_factory()
        yield session
        session.close()

    def interleave(self, service, action):
        """Run `action` just before `service` issues its conditional update."""
        original = service.store.compare_and_update

        def run_first(*args, **kwargs):
            action()
            return original(*args, **kwargs)

        return patch.object(service.store, "compare_and_update", side_effect=run_first)

    def test_withdraw_loses_to_assign(self, service, other_session, world, add_complaint, events):
        complaint_id = add_complaint()
        seen = []
        rival = ComplaintService(other_session, emitter=EventEmitter(handlers=[seen.append]))

        with self.interleave(service, lambda: rival.assign_complaint(complaint_id, world.staff_a)):
            with pytest.raises(ConflictError) as exc_info:
                service.withdraw_complaint(complaint_id, world.client)

        assert exc_info.value.actual_status == S.IN_PROGRESS
        complaint = service.get_complaint(complaint_id)
        assert complaint.status == S.IN_PROGRESS
        assert complaint.version == 2
        assert [e.event for e in service.get_history(complaint_id)] == [ComplaintEvent.ASSIGNED]
        assert [e.event for e in seen] == [ComplaintEvent.ASSIGNED]
        assert events == []

    def test_two_staff_start_the_same_complaint(self, service, other_session, world, add_complaint, events):
        complaint_id = add_complaint()
        rival = ComplaintService(other_session, emitter=EventEmitter(handlers=[lambda e: None]))

        with self.interleave(
            service, lambda: rival.assign_complaint(complaint_id, world.staff_b, assignee_id="staff-b"),
        ):
            with pytest.raises(ConflictError):
                service.assign_complaint(complaint_id, world.staff_a, assignee_id="staff-a")

        complaint = service.get_complaint(complaint_id)
        assert complaint.assignee_id == "staff-b"
        assert HistoryLedger(service.db).count_for(complaint_id) == 1
        assert events == []

    def test_resolution_response_races_force(self, service, other_session, world, add_complaint):
        complaint_id = add_complaint(status=S.RESOLVED, assignee_id="staff-a", resolution_comment="done")
        rival = ComplaintService(other_session, emitter=EventEmitter(handlers=[lambda e: None]))

        with self.interleave(
            service,
            lambda: rival.force_status(complaint_id, world.admin, S.IN_PROGRESS, "customer called back"),
        ):
            with pytest.raises(ConflictError):
                service.respond_to_resolution(complaint_id, world.client, "APPROVE")

        complaint = service.get_complaint(complaint_id)
        assert complaint.status == S.IN_PROGRESS
        assert [e.event for e in service.get_history(complaint_id)] == [ComplaintEvent.STATUS_FORCED]

# =============================================================================
# UNIT OF WORK
# =============================================================================

class TestTransitionAtomicity:

    def test_failed_history_write_rolls_back(self, service, world, add_complaint, events):
        complaint_id = add_complaint()

        with patch.object(service.ledger, "append", side_effect=SQLAlchemyError("disk full")):
            with pytest.raises(SQLAlchemyError):
                service.withdraw_complaint(complaint_id, world.client)

        complaint = service.get_complaint(complaint_id)
        assert complaint.status == S.PENDING
        assert complaint.version == 1
        assert service.get_history(complaint_id) == []
        assert events == []

    def test_failed_create_leaves_nothing(self, service, world):
        with patch.object(service.ledger, "append", side_effect=SQLAlchemyError("disk full")):
            with pytest.raises(SQLAlchemyError):
                service.create_complaint(world.client, "project-1", "Lost on rollback")

        assert service.list_complaints(world.client) == []


# =============================================================================
# HISTORY LEDGER
# =============================================================================

class TestHistoryLedger:

    def test_sequence_is_per_complaint(self, db, add_complaint):
        first, second = add_complaint(), add_complaint()
        ledger = HistoryLedger(db)

        a1 = ledger.append(first, None, S.PENDING, ComplaintEvent.CREATED, "client-1", ActorRole.CLIENT)
        b1 = ledger.append(second, None, S.PENDING, ComplaintEvent.CREATED, "client-1", ActorRole.CLIENT)
        a2 = ledger.append(first, S.PENDING, S.WITHDRAWN, ComplaintEvent.WITHDRAWN, "client-1", ActorRole.CLIENT)

        assert (a1.sequence, b1.sequence, a2.sequence) == (1, 1, 2)
        assert ledger.count_for(first) == 2

    def test_ordered_by_time_then_sequence(self, db, add_complaint):
        complaint_id = add_complaint()
        ledger = HistoryLedger(db)
        later = BASE_TIME + timedelta(hours=1)

        ledger.append(complaint_id, S.PENDING, S.IN_PROGRESS, ComplaintEvent.ASSIGNED,
                      "staff-a", ActorRole.SUPPORT, created_at=later)
        ledger.append(complaint_id, None, S.PENDING, ComplaintEvent.CREATED,
                      "client-1", ActorRole.CLIENT, created_at=BASE_TIME)
        ledger.append(complaint_id, S.IN_PROGRESS, S.IN_PROGRESS, ComplaintEvent.REASSIGNED,
                      "admin-1", ActorRole.ADMIN, created_at=later)
        db.commit()

        timeline = ledger.list_for(complaint_id)

        assert [e.event for e in timeline] == [
            ComplaintEvent.CREATED,
            ComplaintEvent.ASSIGNED,
            ComplaintEvent.REASSIGNED,
        ]

    def test_empty_history(self, db, add_complaint):
        assert HistoryLedger(db).list_for(add_complaint()) == []


# =============================================================================
# WORKLOAD INDEX
# =============================================================================

class TestWorkload:

    def test_snapshot_counts_and_percentages(self, service, add_complaint):
        add_complaint(status=S.IN_PROGRESS, assignee_id="staff-a")
        add_complaint(status=S.PENDING, assignee_id="staff-a")
        add_complaint(status=S.IN_PROGRESS, assignee_id="staff-b")
        add_complaint(status=S.RESOLVED, assignee_id="staff-b", resolution_comment="done")
        add_complaint(status=S.PENDING)

        snapshot = service.get_workload()

        assert [(s.staff_id, s.active_complaint_count, s.workload_percentage) for s in snapshot] == [
            ("admin-1", 0, 0.0),
            ("staff-b", 1, 50.0),
            ("staff-a", 2, 100.0),
        ]

    def test_project_scope(self, service, add_complaint):
        add_complaint(status=S.IN_PROGRESS, assignee_id="staff-a")
        assert [s.staff_id for s in service.get_workload("project-1")] == ["staff-b", "staff-a"]
        assert service.get_workload("project-2") == []

    def test_idle_team(self, service):
        snapshot = service.get_workload("project-1")
        assert all(s.active_complaint_count == 0 and s.workload_percentage == 0.0 for s in snapshot)

    def test_repeated_reads_agree(self, service, add_complaint):
        add_complaint(status=S.IN_PROGRESS, assignee_id="staff-b")
        assert service.get_workload() == service.get_workload()
