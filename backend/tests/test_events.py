"""
Test Suite: Transition Events

Tests the outbound event contract:
1. Exactly one event per accepted transition, after commit
2. No event for a rejected transition
3. A failing subscriber never undoes or blocks a transition
"""
import logging
import pytest
import sys
import os
from unittest.mock import MagicMock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.models.db_models import ActorRole, ComplaintEvent, ComplaintStatus, utcnow
from app.models.domain import TransitionEvent
from app.services.complaints import ComplaintService, EventEmitter, IllegalTransitionError


S = ComplaintStatus


def make_event(**overrides):
    fields = dict(
        complaint_id="c-001",
        event=ComplaintEvent.CREATED,
        from_status=None,
        to_status=S.PENDING,
        actor_id="client-1",
        actor_role=ActorRole.CLIENT,
        timestamp=utcnow(),
    )
    fields.update(overrides)
    return TransitionEvent(**fields)


# =============================================================================
# EMISSION THROUGH THE SERVICE
# =============================================================================

class TestServiceEvents:

    def test_one_event_per_transition(self, service, world, events):
        complaint_id = service.create_complaint(world.client, "project-1", "Broken link").id
        service.assign_complaint(complaint_id, world.staff_a, assignee_id="staff-b")
        service.resolve_complaint(complaint_id, world.staff_b, "link fixed")
        service.respond_to_resolution(complaint_id, world.client, "APPROVE", feedback="thanks")

        assert [e.event for e in events] == [
            ComplaintEvent.CREATED,
            ComplaintEvent.ASSIGNED,
            ComplaintEvent.RESOLVED,
            ComplaintEvent.CLOSED,
        ]
        assert all(e.complaint_id == complaint_id for e in events)

    def test_event_carries_transition_details(self, service, world, events):
        complaint_id = service.create_complaint(world.client, "project-1", "Broken link").id
        service.assign_complaint(complaint_id, world.staff_a)

        assigned = events[-1]
        assert assigned.from_status == S.PENDING
        assert assigned.to_status == S.IN_PROGRESS
        assert assigned.actor_id == "staff-a"
        assert assigned.actor_role == ActorRole.SUPPORT
        assert assigned.assignee_id == "staff-a"

    def test_rejected_transition_emits_nothing(self, service, world, add_complaint, events):
        complaint_id = add_complaint(status=S.CLOSED, assignee_id="staff-a", resolution_comment="done")

        with pytest.raises(IllegalTransitionError):
            service.withdraw_complaint(complaint_id, world.client)

        assert events == []

    def test_failing_subscriber_does_not_undo_transition(self, db, world, add_complaint):
        received = []
        broken = MagicMock(side_effect=RuntimeError("mail server down"))
        emitter = EventEmitter(handlers=[broken, received.append])
        service = ComplaintService(db, emitter=emitter)
        complaint_id = add_complaint()

        complaint = service.withdraw_complaint(complaint_id, world.client)

        assert complaint.status == S.WITHDRAWN
        assert service.get_complaint(complaint_id).status == S.WITHDRAWN
        assert emitter.failures == 1
        assert [e.event for e in received] == [ComplaintEvent.WITHDRAWN]


# =============================================================================
# EMITTER
# =============================================================================

class TestEventEmitter:

    def test_subscribe_and_unsubscribe(self):
        handler = MagicMock()
        emitter = EventEmitter(handlers=[MagicMock()])
        emitter.subscribe(handler)

        emitter.emit(make_event())
        emitter.unsubscribe(handler)
        emitter.emit(make_event())

        assert handler.call_count == 1

    def test_default_handler_logs(self, caplog):
        emitter = EventEmitter()

        with caplog.at_level(logging.INFO, logger="app.services.complaints.events"):
            emitter.emit(make_event())

        assert "c-001 CREATED" in caplog.text
        assert emitter.failures == 0

    def test_to_dict_is_plain_values(self):
        event = make_event(event=ComplaintEvent.ASSIGNED, from_status=S.PENDING,
                           to_status=S.IN_PROGRESS, assignee_id="staff-a")

        payload = event.to_dict()

        assert payload["event"] == "ASSIGNED"
        assert payload["from_status"] == "PENDING"
        assert payload["to_status"] == "IN_PROGRESS"
        assert payload["assignee_id"] == "staff-a"
        assert isinstance(payload["timestamp"], str)
