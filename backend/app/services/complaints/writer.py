"""
Transition writer shared by the state machine and the assignment engine.

One accepted transition = one conditional update + one history entry,
both inside the caller's open transaction. Committing (or rolling back)
is the caller's job.
"""
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from ...models.db_models import ComplaintDB, ComplaintEvent, ComplaintStatus, utcnow
from ...models.domain import Actor, TransitionEvent
from .history_ledger import HistoryLedger
from .store import ComplaintStore


class TransitionWriter:

    def __init__(self, db: Session, store: ComplaintStore = None, ledger: HistoryLedger = None):
        self.db = db
        self.store = store or ComplaintStore(db)
        self.ledger = ledger or HistoryLedger(db)

    def write(
        self,
        complaint: ComplaintDB,
        to_status: ComplaintStatus,
        event: ComplaintEvent,
        actor: Actor,
        message: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
        expected_status: Optional[ComplaintStatus] = None,
        expected_version: Optional[int] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """
        Apply a transition guarded by the status and version read into
        `complaint`, or by `expected_status` / `expected_version` when the
        caller observed them earlier.

        Raises:
            ConflictError: another actor moved the complaint first
        """
        from_status = expected_status or complaint.status
        if expected_version is None:
            expected_version = complaint.version
        now = utcnow()

        values = dict(changes or {})
        values["status"] = to_status
        values["updated_at"] = now

        updated = self.store.compare_and_update(
            complaint.id,
            expected_status=from_status,
            changes=values,
            expected_version=expected_version,
        )
        self.ledger.append(
            complaint_id=updated.id,
            from_status=from_status,
            to_status=to_status,
            event=event,
            actor_id=actor.id,
            actor_role=actor.role,
            message=message,
            created_at=now,
        )

        return updated, TransitionEvent(
            complaint_id=updated.id,
            event=event,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor.id,
            actor_role=actor.role,
            timestamp=now,
            message=message,
            assignee_id=updated.assignee_id,
        )
