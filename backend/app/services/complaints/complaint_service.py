"""
Complaint Service

Inbound interface of the complaint core. Wraps every state machine call
in one unit of work: the conditional update and the history entry are
committed together or rolled back together, and the outbound event is
emitted only after the commit succeeds.

AUTHORITY MODEL:
- CLIENT: create, edit, delete, withdraw, approve/reject a resolution (own complaints)
- SUPPORT: assign, resolve (own assignments), reassign
- ADMIN: everything SUPPORT can do, plus force_status, delete and balance_workload
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ...models.db_models import (
    ActorRole, Category, ComplaintDB, ComplaintHistoryDB, ComplaintStatus, Priority,
)
from ...models.domain import Actor, BalanceResult, TransitionEvent, WorkloadSnapshot
from .assignment import SYSTEM_ACTOR
from .directory import StaffDirectory
from .errors import IllegalTransitionError, PermissionDeniedError, ValidationError
from .events import EventEmitter, default_emitter
from .state_machine import LifecycleStateMachine, legal_targets

logger = logging.getLogger(__name__)


class ResolutionAction:
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class ComplaintService:
    """
    Main service for complaint lifecycle management.

    Orchestrates:
    - State machine transitions
    - Assignment and workload balancing
    - History ledger reads
    - Event emission
    """

    def __init__(
        self,
        db_session: Session,
        emitter: EventEmitter = None,
        directory: StaffDirectory = None,
    ):
        """Initialize with database session."""
        self.db = db_session
        self.emitter = emitter or default_emitter
        self.state_machine = LifecycleStateMachine(db_session, directory=directory)
        self.assignment = self.state_machine.assignment
        self.store = self.state_machine.store
        self.ledger = self.state_machine.ledger
        self.directory = self.state_machine.directory

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    def _run(
        self,
        operation: Callable[..., Tuple[ComplaintDB, TransitionEvent]],
        *args,
        **kwargs,
    ) -> ComplaintDB:
        try:
            complaint, event = operation(*args, **kwargs)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.emitter.emit(event)
        return complaint

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def create_complaint(
        self,
        actor: Actor,
        project_id: str,
        title: str,
        description: str = "",
        category: Optional[Category] = None,
        priority: Optional[Priority] = None,
    ) -> ComplaintDB:
        complaint = self._run(
            self.state_machine.create,
            actor, project_id, title,
            description=description, category=category, priority=priority,
        )
        logger.info(f"Complaint {complaint.id} created by {actor.id} for project {project_id}")
        return complaint

    def assign_complaint(
        self,
        complaint_id: str,
        actor: Actor,
        assignee_id: Optional[str] = None,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> ComplaintDB:
        """Assign and start work. Auto-assigns when `assignee_id` is omitted."""
        return self._run(
            self.state_machine.assign,
            complaint_id, actor, assignee_id=assignee_id, expected_status=expected_status,
        )

    # Starting work is the assignment itself
    start_work = assign_complaint

    def reassign_complaint(
        self,
        complaint_id: str,
        actor: Actor,
        assignee_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> ComplaintDB:
        return self._run(
            self.assignment.reassign,
            complaint_id, actor, new_assignee_id=assignee_id, reason=reason,
        )

    def resolve_complaint(
        self,
        complaint_id: str,
        actor: Actor,
        resolution_comment: str,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> ComplaintDB:
        return self._run(
            self.state_machine.resolve,
            complaint_id, actor, resolution_comment, expected_status=expected_status,
        )

    def respond_to_resolution(
        self,
        complaint_id: str,
        actor: Actor,
        action: str,
        feedback: Optional[str] = None,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> ComplaintDB:
        """Client APPROVEs (-> CLOSED) or REJECTs (-> IN_PROGRESS) a resolution."""
        action = (action or "").upper()
        if action == ResolutionAction.APPROVE:
            operation = self.state_machine.approve
        elif action == ResolutionAction.REJECT:
            operation = self.state_machine.reject
        else:
            raise ValidationError("action", "Invalid action. Must be APPROVE or REJECT")

        return self._run(
            operation, complaint_id, actor, feedback=feedback, expected_status=expected_status,
        )

    def withdraw_complaint(
        self,
        complaint_id: str,
        actor: Actor,
        reason: Optional[str] = None,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> ComplaintDB:
        return self._run(
            self.state_machine.withdraw,
            complaint_id, actor, reason=reason, expected_status=expected_status,
        )

    def force_status(
        self,
        complaint_id: str,
        actor: Actor,
        target_status: ComplaintStatus,
        reason: str,
        bypass: bool = False,
        assignee_id: Optional[str] = None,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> ComplaintDB:
        complaint = self._run(
            self.state_machine.force_status,
            complaint_id, actor, target_status, reason,
            bypass=bypass, assignee_id=assignee_id, expected_status=expected_status,
        )
        logger.warning(
            f"Complaint {complaint_id} forced to {target_status.value} by admin {actor.id}"
            f"{' (bypass)' if bypass else ''}"
        )
        return complaint

    # =========================================================================
    # EDIT AND DELETE
    # =========================================================================

    def update_complaint(
        self,
        complaint_id: str,
        actor: Actor,
        title: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[Category] = None,
        priority: Optional[Priority] = None,
    ) -> ComplaintDB:
        """
        Submitting client edits the details of a PENDING complaint.

        Status is unchanged and nothing is written to the history ledger.
        The write is guarded on PENDING and the version read here.
        """
        if actor.role != ActorRole.CLIENT:
            raise PermissionDeniedError("edit complaints", actor.role, "only the submitting client edits")

        changes: Dict[str, Any] = {}
        if title is not None:
            if not title.strip():
                raise ValidationError("title", "Complaint title is required")
            changes["title"] = title.strip()
        if description is not None:
            changes["description"] = description
        if category is not None:
            changes["category"] = category
        if priority is not None:
            changes["priority"] = priority

        try:
            complaint = self.store.get(complaint_id)
            if complaint.client_id != actor.id:
                raise IllegalTransitionError(
                    complaint.status, None, reason="only the submitting client may edit this complaint",
                )
            if complaint.status != ComplaintStatus.PENDING:
                raise IllegalTransitionError(
                    complaint.status, None, reason="only PENDING complaints can be edited",
                )
            if not changes:
                return complaint

            complaint = self.store.compare_and_update(
                complaint_id, ComplaintStatus.PENDING, changes, expected_version=complaint.version,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Complaint {complaint_id} edited by {actor.id}: {sorted(changes)}")
        return complaint

    def delete_complaint(self, complaint_id: str, actor: Actor) -> None:
        """
        Remove a complaint together with its history.

        Admins may delete in any status. The submitting client may delete
        only while the complaint is PENDING.
        """
        if actor.role == ActorRole.SUPPORT:
            raise PermissionDeniedError("delete complaints", actor.role)

        try:
            complaint = self.store.get(complaint_id)
            if actor.role == ActorRole.CLIENT:
                if complaint.client_id != actor.id:
                    raise IllegalTransitionError(
                        complaint.status, None, reason="only the submitting client may delete this complaint",
                    )
                if complaint.status != ComplaintStatus.PENDING:
                    raise IllegalTransitionError(
                        complaint.status, None, reason="only PENDING complaints can be deleted",
                    )
            status = complaint.status
            self.store.delete(complaint_id, expected_version=complaint.version)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.warning(f"Complaint {complaint_id} ({status.value}) deleted by {actor.role.value} {actor.id}")

    # =========================================================================
    # WORKLOAD
    # =========================================================================

    def balance_workload(self, actor: Actor = SYSTEM_ACTOR) -> BalanceResult:
        """Advisory maintenance run. Each move commits on its own."""
        if actor.role != ActorRole.ADMIN:
            raise PermissionDeniedError("balance workload", actor.role, "admin only")
        try:
            result, events = self.assignment.balance_workload(actor)
        except Exception:
            self.db.rollback()
            raise

        for event in events:
            self.emitter.emit(event)
        return result

    def get_workload(self, project_id: Optional[str] = None) -> List[WorkloadSnapshot]:
        """Per-staff active load. Project-scoped when `project_id` is given."""
        if project_id:
            staff_ids = self.directory.list_eligible_staff(project_id)
        else:
            staff_ids = self.directory.list_staff()
        return self.assignment.workload.snapshot(staff_ids)

    # =========================================================================
    # READS
    # =========================================================================

    def get_complaint(self, complaint_id: str) -> ComplaintDB:
        return self.store.get(complaint_id)

    def get_history(self, complaint_id: str) -> List[ComplaintHistoryDB]:
        self.store.get(complaint_id)
        return self.ledger.list_for(complaint_id)

    def list_complaints(self, actor: Actor, status: Optional[ComplaintStatus] = None) -> List[ComplaintDB]:
        """Clients see what they filed; staff see what is assigned to them."""
        if actor.role == ActorRole.CLIENT:
            return self.store.list_for_client(actor.id, status)
        return self.store.list_assigned_to(actor.id, status)

    def list_all_complaints(
        self,
        actor: Actor,
        status: Optional[ComplaintStatus] = None,
        category: Optional[Category] = None,
        priority: Optional[Priority] = None,
        project_id: Optional[str] = None,
        client_id: Optional[str] = None,
        assignee_id: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[ComplaintDB], int]:
        """Staff-wide filtered listing. Returns (page of complaints, total matches)."""
        if not actor.is_staff:
            raise PermissionDeniedError("list all complaints", actor.role, "staff only")
        page = max(page, 1)
        return self.store.list_filtered(
            status=status, category=category, priority=priority,
            project_id=project_id, client_id=client_id, assignee_id=assignee_id,
            search=search, offset=(page - 1) * limit, limit=limit,
        )

    def allowed_actions(self, complaint_id: str, actor: Actor) -> Dict[str, Any]:
        """What the caller may do next, for UI guidance."""
        complaint = self.store.get(complaint_id)
        actions = self.state_machine.allowed_transitions(complaint, actor)
        result: Dict[str, Any] = {
            "complaint_id": complaint.id,
            "status": complaint.status.value,
            "actions": {action.value: target.value for action, target in actions.items()},
        }
        if actor.role == ActorRole.ADMIN:
            result["force_targets"] = [s.value for s in legal_targets(complaint.status)]
        return result
