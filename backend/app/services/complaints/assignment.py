"""
Assignment Engine

Selects or validates the staff member for a complaint and writes the
assignment. Consults the Workload Index for auto-assignment and for
workload balancing.

Selection rules:
- Explicit assignee: must be an active SUPPORT/ADMIN user on the
  project's team, otherwise InvalidAssigneeError.
- Starting work with no explicit assignee keeps a PENDING complaint's
  prior assignee while that member is still eligible.
- Auto-assign: lowest active complaint count among eligible staff,
  ties broken by the lexicographically smallest staff_id.
"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ...models.db_models import ComplaintDB, ComplaintEvent, ComplaintStatus, ActorRole
from ...models.domain import Actor, BalanceResult, TransitionEvent
from .directory import SqlStaffDirectory, StaffDirectory, STAFF_ROLES
from .errors import (
    ConflictError,
    IllegalTransitionError,
    InvalidAssigneeError,
    PermissionDeniedError,
    NoEligibleStaffError,
)
from .store import ComplaintStore
from .workload import WorkloadIndex
from .writer import TransitionWriter

logger = logging.getLogger(__name__)

# Actor recorded for system-initiated reassignments (scheduler runs)
SYSTEM_ACTOR = Actor(id="system", role=ActorRole.ADMIN)

# Statuses whose assignee may be changed
REASSIGNABLE_STATUSES = (ComplaintStatus.PENDING, ComplaintStatus.IN_PROGRESS)


class AssignmentEngine:
    """Assignee selection, assignment writes and workload balancing."""

    def __init__(
        self,
        db: Session,
        directory: StaffDirectory = None,
        store: ComplaintStore = None,
        writer: TransitionWriter = None,
    ):
        self.db = db
        self.store = store or ComplaintStore(db)
        self.directory = directory or SqlStaffDirectory(db)
        self.workload = WorkloadIndex(self.store)
        self.writer = writer or TransitionWriter(db, store=self.store)

    # =========================================================================
    # SELECTION
    # =========================================================================

    def validate_assignee(self, staff_id: str, project_id: str) -> None:
        """Raise InvalidAssigneeError unless `staff_id` may work on `project_id`."""
        staff = self.directory.get_staff(staff_id)
        if staff is None:
            raise InvalidAssigneeError(staff_id, "no such user")
        if not staff.is_active:
            raise InvalidAssigneeError(staff_id, "user is inactive")
        if staff.role not in STAFF_ROLES:
            raise InvalidAssigneeError(staff_id, f"role {staff.role.value} cannot be assigned complaints")
        if not self.directory.is_eligible(staff_id, project_id):
            raise InvalidAssigneeError(staff_id, f"not a member of project {project_id}")

    def select_assignee(self, project_id: str, exclude: Optional[str] = None) -> str:
        """
        Least-loaded eligible staff member for a project.

        Raises:
            NoEligibleStaffError: nobody eligible (after exclusion)
        """
        eligible = [s for s in self.directory.list_eligible_staff(project_id) if s != exclude]
        if not eligible:
            raise NoEligibleStaffError(project_id)

        counts = self.workload.counts(eligible)
        chosen = WorkloadIndex.least_loaded(counts)
        logger.debug(f"Auto-assign for project {project_id}: {counts} -> {chosen}")
        return chosen

    def resolve_assignee(
        self,
        complaint: ComplaintDB,
        explicit_assignee_id: Optional[str] = None,
        exclude: Optional[str] = None,
    ) -> str:
        """Validate an explicit assignee, or pick one."""
        if explicit_assignee_id:
            self.validate_assignee(explicit_assignee_id, complaint.project_id)
            return explicit_assignee_id
        return self.select_assignee(complaint.project_id, exclude=exclude)

    # =========================================================================
    # ASSIGNMENT WRITES
    # =========================================================================

    def assign(
        self,
        complaint_id: str,
        actor: Actor,
        explicit_assignee_id: Optional[str] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """
        Assign a PENDING complaint and start work on it (-> IN_PROGRESS).

        Without an explicit assignee, a prior assignee who is still eligible
        keeps the complaint; otherwise one is auto-selected.

        Legality of the actor is checked by the state machine before
        this is called; the write itself is guarded on PENDING.
        """
        complaint = self.store.get(complaint_id)
        if complaint.status != ComplaintStatus.PENDING:
            raise ConflictError(complaint_id, ComplaintStatus.PENDING, complaint.status)

        previous = complaint.assignee_id
        if explicit_assignee_id:
            assignee_id = self.resolve_assignee(complaint, explicit_assignee_id)
            message = f"Assigned to {assignee_id}"
        elif previous and self.directory.is_eligible(previous, complaint.project_id):
            # A PENDING complaint already routed to someone stays with them
            assignee_id = previous
            message = f"Assigned to {assignee_id}"
        else:
            if previous:
                logger.info(f"Prior assignee {previous} of {complaint_id} is no longer eligible")
            assignee_id = self.select_assignee(complaint.project_id)
            message = f"Auto-assigned to {assignee_id}"

        logger.info(f"Assigning complaint {complaint_id} to {assignee_id} (by {actor.id})")
        return self.writer.write(
            complaint,
            to_status=ComplaintStatus.IN_PROGRESS,
            event=ComplaintEvent.ASSIGNED,
            actor=actor,
            message=message,
            changes={"assignee_id": assignee_id},
        )

    def reassign(
        self,
        complaint_id: str,
        actor: Actor,
        new_assignee_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        """
        Move a PENDING or IN_PROGRESS complaint to another staff member.
        Status is unchanged; the move is still recorded in the ledger.
        """
        complaint = self.store.get(complaint_id)
        return self._reassign(complaint, actor, new_assignee_id, reason)

    def _reassign(
        self,
        complaint: ComplaintDB,
        actor: Actor,
        new_assignee_id: Optional[str],
        reason: Optional[str],
        expected_status: Optional[ComplaintStatus] = None,
        expected_version: Optional[int] = None,
    ) -> Tuple[ComplaintDB, TransitionEvent]:
        if not actor.is_staff:
            raise PermissionDeniedError("reassign complaints", actor.role)
        if complaint.status not in REASSIGNABLE_STATUSES:
            raise IllegalTransitionError(
                complaint.status, None,
                reason="only PENDING or IN_PROGRESS complaints can be reassigned",
            )

        previous = complaint.assignee_id
        assignee_id = self.resolve_assignee(complaint, new_assignee_id, exclude=previous)
        if assignee_id == previous:
            raise InvalidAssigneeError(assignee_id, "already assigned to this complaint")

        message = f"Reassigned from {previous or 'nobody'} to {assignee_id}"
        if reason:
            message = f"{message}: {reason}"

        # Status is unchanged, so the guard status is also the target
        status = expected_status or complaint.status
        return self.writer.write(
            complaint,
            to_status=status,
            event=ComplaintEvent.REASSIGNED,
            actor=actor,
            message=message,
            changes={"assignee_id": assignee_id},
            expected_status=status,
            expected_version=expected_version,
        )

    # =========================================================================
    # WORKLOAD BALANCING
    # =========================================================================

    def balance_workload(self, actor: Actor = SYSTEM_ACTOR) -> Tuple[BalanceResult, List[TransitionEvent]]:
        """
        Move the oldest PENDING complaints off overloaded staff.

        A staff member is overloaded when their active count exceeds the
        mean by more than one. Complaints move to the least-loaded eligible
        staff member until the source is within one of the mean or has no
        PENDING complaints left. IN_PROGRESS and later are never touched.

        Each move is its own unit of work and is committed on success.
        A move that loses a race (ConflictError) is rolled back and skipped.

        Returns:
            (result, events) - events for the caller to emit
        """
        staff_ids = self.directory.list_staff()
        result = BalanceResult()
        events: List[TransitionEvent] = []
        if not staff_ids:
            return result, events

        # One snapshot for the whole run
        counts = self.workload.counts(staff_ids)
        result.workload_before = dict(counts)
        result.mean = sum(counts.values()) / len(counts)

        overloaded = sorted(
            (s for s in staff_ids if counts[s] - result.mean > 1),
            key=lambda s: (-counts[s], s),
        )
        logger.info(f"Balancing workload: mean={result.mean:.2f}, overloaded={overloaded}")

        for source in overloaded:
            # Candidates are fixed before any move commits; each move is
            # guarded on the PENDING status and version seen here
            candidates = [
                (c.id, c.version)
                for c in self.store.list_by_assignee(source, ComplaintStatus.PENDING)
            ]
            for complaint_id, listed_version in candidates:
                if counts[source] - result.mean <= 1:
                    break

                complaint = self.store.get(complaint_id)
                if (
                    complaint.status != ComplaintStatus.PENDING
                    or complaint.version != listed_version
                    or complaint.assignee_id != source
                ):
                    logger.info(f"Complaint {complaint_id} changed during balancing, skipped")
                    result.skipped.append({"complaint_id": complaint_id, "reason": "conflict"})
                    continue

                target = self._balance_target(complaint, source, counts)
                if target is None:
                    result.skipped.append({"complaint_id": complaint_id, "reason": "no_less_loaded_staff"})
                    continue

                try:
                    _, event = self._reassign(
                        complaint, actor, target, "workload balancing",
                        expected_status=ComplaintStatus.PENDING,
                        expected_version=listed_version,
                    )
                    self.db.commit()
                except ConflictError:
                    self.db.rollback()
                    logger.info(f"Complaint {complaint_id} changed during balancing, skipped")
                    result.skipped.append({"complaint_id": complaint_id, "reason": "conflict"})
                    continue

                counts[source] -= 1
                counts[target] += 1
                events.append(event)
                result.moved.append({"complaint_id": complaint_id, "from": source, "to": target})

        result.workload_after = dict(counts)
        logger.info(f"Workload balancing moved {result.moved_count} complaint(s)")
        return result, events

    def _balance_target(self, complaint: ComplaintDB, source: str, counts: Dict[str, int]) -> Optional[str]:
        """Least-loaded eligible staff member strictly better than leaving it."""
        candidates = {
            s: counts[s]
            for s in self.directory.list_eligible_staff(complaint.project_id)
            if s != source and s in counts
        }
        if not candidates:
            return None
        target = WorkloadIndex.least_loaded(candidates)
        if counts[target] >= counts[source] - 1:
            return None
        return target
