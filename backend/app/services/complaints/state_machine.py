"""
Complaint Lifecycle State Machine

Deterministic state machine for complaints. TRANSITIONS is the single
source of truth: any (state, action) pair not listed is illegal, and
every listed edge names the roles and ownership it requires.

    PENDING --assign--> IN_PROGRESS --resolve--> RESOLVED --approve--> CLOSED
       |                     ^                      |
       +--withdraw--> WITHDRAWN                     +--reject--> IN_PROGRESS

Admins may force a status along any legal edge, or anywhere (including
out of a terminal state) with an explicit bypass and a reason.

Writes go through TransitionWriter: one conditional update plus one
history entry. Commit and event emission are done by ComplaintService.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy.orm import Session

from ...models.db_models import (
    ActorRole, Category, ComplaintDB, ComplaintEvent, ComplaintStatus, Priority,
    ASSIGNED_STATUSES, TERMINAL_STATUSES, utcnow,
)
from ...models.domain import Actor, TransitionEvent
from .assignment import AssignmentEngine
from .directory import SqlStaffDirectory, StaffDirectory
from .errors import (
    ConflictError, IllegalTransitionError, NotFoundError, PermissionDeniedError, ValidationError,
)
from .history_ledger import HistoryLedger
from .store import ComplaintStore
from .writer import TransitionWriter


class LifecycleAction(str, Enum):
    """Actions a caller can request against a complaint."""
    CREATE = "CREATE"
    ASSIGN = "ASSIGN"
    WITHDRAW = "WITHDRAW"
    RESOLVE = "RESOLVE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    FORCE = "FORCE"


class Ownership(str, Enum):
    """Relationship the actor must have with the complaint."""
    ANY = "ANY"
    OWNER = "OWNER"  # actor is the submitting client
    ASSIGNEE = "ASSIGNEE"  # actor is the current assignee


@dataclass(frozen=True)
class TransitionRule:
    to_status: ComplaintStatus
    roles: FrozenSet[ActorRole]
    ownership: Ownership
    event: ComplaintEvent


STAFF = frozenset({ActorRole.SUPPORT, ActorRole.ADMIN})
CLIENT = frozenset({ActorRole.CLIENT})


# =============================================================================
# TRANSITION TABLE
# =============================================================================

TRANSITIONS: Dict[Tuple[ComplaintStatus, LifecycleAction], TransitionRule] = {
    (ComplaintStatus.PENDING, LifecycleAction.ASSIGN): TransitionRule(
        ComplaintStatus.IN_PROGRESS, STAFF, Ownership.ANY, ComplaintEvent.ASSIGNED,
    ),
    (ComplaintStatus.PENDING, LifecycleAction.WITHDRAW): TransitionRule(
        ComplaintStatus.WITHDRAWN, CLIENT, Ownership.OWNER, ComplaintEvent.WITHDRAWN,
    ),
    (ComplaintStatus.IN_PROGRESS, LifecycleAction.RESOLVE): TransitionRule(
        ComplaintStatus.RESOLVED, STAFF, Ownership.ASSIGNEE, ComplaintEvent.RESOLVED,
    ),
    (ComplaintStatus.RESOLVED, LifecycleAction.APPROVE): TransitionRule(
        ComplaintStatus.CLOSED, CLIENT, Ownership.OWNER, ComplaintEvent.CLOSED,
    ),
    (ComplaintStatus.RESOLVED, LifecycleAction.REJECT): TransitionRule(
        ComplaintStatus.IN_PROGRESS, CLIENT, Ownership.OWNER, ComplaintEvent.REOPENED,
    ),
}

# Target status of each action, for error reporting on unlisted pairs
ACTION_TARGETS: Dict[LifecycleAction, ComplaintStatus] = {
    LifecycleAction.CREATE: ComplaintStatus.PENDING,
    LifecycleAction.ASSIGN: ComplaintStatus.IN_PROGRESS,
    LifecycleAction.WITHDRAW: ComplaintStatus.WITHDRAWN,
    LifecycleAction.RESOLVE: ComplaintStatus.RESOLVED,
    LifecycleAction.APPROVE: ComplaintStatus.CLOSED,
    LifecycleAction.REJECT: ComplaintStatus.IN_PROGRESS,
}


def legal_targets(status: ComplaintStatus) -> List[ComplaintStatus]:
    """Statuses reachable from `status` by a single legal edge, for any role."""
    return [rule.to_status for (from_status, _), rule in TRANSITIONS.items() if from_status == status]


# =============================================================================
# STATE MACHINE
# =============================================================================

class LifecycleStateMachine:
    """
    Validates and applies complaint transitions.

    Core Principles:
    - Actor id and role are always explicit parameters
    - Every accepted transition writes exactly one history entry
    - A stale observed status is a ConflictError, never an overwrite
    - Validation happens before any write
    """

    def __init__(self, db_session: Session, directory: StaffDirectory = None):
        """Initialize with database session."""
        self.db = db_session
        self.store = ComplaintStore(db_session)
        self.ledger = HistoryLedger(db_session)
        self.directory = directory or SqlStaffDirectory(db_session)
        self.writer = TransitionWriter(db_session, store=self.store, ledger=self.ledger)
        self.assignment = AssignmentEngine(
            db_session, directory=self.directory, store=self.store, writer=self.writer,
        )

    # -------------------------------------------------------------------------
    # Legality
    # -------------------------------------------------------------------------

    def can_transition(
        self,
        complaint: ComplaintDB,
        action: LifecycleAction,
        actor: Actor,
    ) -> Tuple[bool, str]:
        """
        Check if `actor` may apply `action` to `complaint` right now.

        Returns (allowed, reason)
        """
        rule = TRANSITIONS.get((complaint.status, action))
        if rule is None:
            return False, f"{action.value} is not allowed from {complaint.status.value}"

        if actor.role not in rule.roles:
            return False, f"{actor.role.value} cannot {action.value.lower()} a complaint"

        if rule.ownership == Ownership.OWNER and complaint.client_id != actor.id:
            return False, "only the client who submitted the complaint can do this"

        if rule.ownership == Ownership.ASSIGNEE and complaint.assignee_id != actor.id:
            return False, "only the assigned staff member can do this"

        return True, "Transition allowed"

    def allowed_transitions(self, complaint: ComplaintDB, actor: Actor) -> Dict[LifecycleAction, ComplaintStatus]:
        """Actions (and their targets) this actor may apply now."""
        return {
            action: rule.to_status
            for (status, action), rule in TRANSITIONS.items()
            if status == complaint.status and self.can_transition(complaint, action, actor)[0]
        }

    def _require(
        self,
        complaint: ComplaintDB,
        action: LifecycleAction,
        actor: Actor,
        expected_status: Optional[ComplaintStatus],
    ) -> TransitionRule:
        if expected_status is not None and complaint.status != expected_status:
            raise ConflictError(complaint.id, expected_status, complaint.status)

        allowed, reason = self.can_transition(complaint, action, actor)
        if not allowed:
            raise IllegalTransitionError(
                complaint.status,
                ACTION_TARGETS.get(action),
                allowed=self.allowed_transitions(complaint, actor).values(),
                reason=reason,
            )
        return TRANSITIONS[(complaint.status, action)]

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def create(
        self,
        actor: Actor,
        project_id: str,
        title: str,
        description: str = "",
        category: Optional[Category] = None,
        priority: Optional[Priority] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """Client files a new complaint (-> PENDING)."""
        if actor.role != ActorRole.CLIENT:
            raise PermissionDeniedError("create complaints", actor.role, "only clients file complaints")
        if not title or not title.strip():
            raise ValidationError("title", "Complaint title is required")

        project = self.directory.get_project(project_id)
        if project is None or not project.is_active:
            raise NotFoundError("Project", project_id)

        now = utcnow()
        complaint = self.store.create(
            project_id=project_id,
            client_id=actor.id,
            title=title.strip(),
            description=description,
            category=category,
            priority=priority,
            created_at=now,
        )
        message = f"Complaint submitted: {complaint.title}"
        self.ledger.append(
            complaint_id=complaint.id,
            from_status=None,
            to_status=ComplaintStatus.PENDING,
            event=ComplaintEvent.CREATED,
            actor_id=actor.id,
            actor_role=actor.role,
            message=message,
            created_at=now,
        )
        return complaint, TransitionEvent(
            complaint_id=complaint.id,
            event=ComplaintEvent.CREATED,
            from_status=None,
            to_status=ComplaintStatus.PENDING,
            actor_id=actor.id,
            actor_role=actor.role,
            timestamp=now,
            message=message,
        )

    def assign(
        self,
        complaint_id: str,
        actor: Actor,
        assignee_id: Optional[str] = None,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """Staff assigns and starts work (PENDING -> IN_PROGRESS)."""
        complaint = self.store.get(complaint_id)
        self._require(complaint, LifecycleAction.ASSIGN, actor, expected_status)
        return self.assignment.assign(complaint_id, actor, explicit_assignee_id=assignee_id)

    def withdraw(
        self,
        complaint_id: str,
        actor: Actor,
        reason: Optional[str] = None,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """Owner withdraws a complaint nobody has started (PENDING -> WITHDRAWN)."""
        complaint = self.store.get(complaint_id)
        rule = self._require(complaint, LifecycleAction.WITHDRAW, actor, expected_status)

        reason = (reason or "").strip()
        message = f"Client withdrew complaint: {reason}" if reason else "Client withdrew complaint"
        return self.writer.write(complaint, rule.to_status, rule.event, actor, message)

    def resolve(
        self,
        complaint_id: str,
        actor: Actor,
        resolution_comment: str,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """Assignee resolves (IN_PROGRESS -> RESOLVED)."""
        complaint = self.store.get(complaint_id)
        rule = self._require(complaint, LifecycleAction.RESOLVE, actor, expected_status)

        comment = (resolution_comment or "").strip()
        if not comment:
            raise ValidationError("resolution_comment", "Resolution comment is required")

        return self.writer.write(
            complaint, rule.to_status, rule.event, actor,
            message=f"Complaint resolved: {comment}",
            changes={"resolution_comment": comment},
        )

    def approve(
        self,
        complaint_id: str,
        actor: Actor,
        feedback: Optional[str] = None,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """Owner accepts the resolution (RESOLVED -> CLOSED)."""
        complaint = self.store.get(complaint_id)
        rule = self._require(complaint, LifecycleAction.APPROVE, actor, expected_status)

        feedback = (feedback or "").strip()
        message = f"Client approved resolution: {feedback or 'No additional feedback'}"
        return self.writer.write(complaint, rule.to_status, rule.event, actor, message)

    def reject(
        self,
        complaint_id: str,
        actor: Actor,
        feedback: Optional[str] = None,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """
        Owner rejects the resolution (RESOLVED -> IN_PROGRESS).
        The resolution comment stays until the next resolve overwrites it.
        """
        complaint = self.store.get(complaint_id)
        rule = self._require(complaint, LifecycleAction.REJECT, actor, expected_status)

        feedback = (feedback or "").strip()
        message = f"Client rejected resolution: {feedback or 'No additional feedback'}"
        return self.writer.write(complaint, rule.to_status, rule.event, actor, message)

    def force_status(
        self,
        complaint_id: str,
        actor: Actor,
        target_status: ComplaintStatus,
        reason: str,
        bypass: bool = False,
        assignee_id: Optional[str] = None,
        expected_status: Optional[ComplaintStatus] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """
        Admin override.

        Without `bypass` the target must be reachable from the current
        status by a legal edge (role and ownership are waived). With
        `bypass` any other status is allowed, including leaving a
        terminal state. A reason is always required.

        Forcing into IN_PROGRESS or RESOLVED without an assignee resolves
        one through the Assignment Engine; forcing into RESOLVED records
        the reason as the resolution comment.
        """
        complaint = self.store.get(complaint_id)
        if expected_status is not None and complaint.status != expected_status:
            raise ConflictError(complaint.id, expected_status, complaint.status)

        if actor.role != ActorRole.ADMIN:
            raise IllegalTransitionError(
                complaint.status, target_status,
                allowed=self.allowed_transitions(complaint, actor).values(),
                reason="only admins can force a status",
            )

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "A reason is required to force a status")

        if target_status == complaint.status:
            raise IllegalTransitionError(
                complaint.status, target_status,
                allowed=legal_targets(complaint.status),
                reason="complaint is already in that status",
            )

        if not bypass and target_status not in legal_targets(complaint.status):
            why = "terminal status requires bypass" if complaint.status in TERMINAL_STATUSES else "no legal edge; use bypass"
            raise IllegalTransitionError(
                complaint.status, target_status,
                allowed=legal_targets(complaint.status),
                reason=why,
            )

        changes = {}
        if assignee_id:
            changes["assignee_id"] = self.assignment.resolve_assignee(complaint, assignee_id)
        elif target_status in ASSIGNED_STATUSES and complaint.assignee_id is None:
            changes["assignee_id"] = self.assignment.resolve_assignee(complaint)

        if target_status == ComplaintStatus.RESOLVED:
            changes["resolution_comment"] = reason

        message = f"Status forced from {complaint.status.value} to {target_status.value}: {reason}"
        if bypass:
            message = f"{message} [bypass]"

        return self.writer.write(
            complaint, target_status, ComplaintEvent.STATUS_FORCED, actor,
            message=message, changes=changes,
        )
