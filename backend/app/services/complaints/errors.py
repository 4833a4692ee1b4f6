"""
Complaint lifecycle errors.

All errors are local to the single call that raised them.
Nothing is retried inside the core.
"""
from typing import Iterable, List, Optional

from ...models.db_models import ComplaintStatus


class ComplaintError(Exception):
    """Base class for every error raised by the complaint core."""
    pass


class NotFoundError(ComplaintError):
    """Referenced complaint, project or staff member does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class IllegalTransitionError(ComplaintError):
    """
    Requested transition is not permitted from the current state
    for the actor's role.

    Carries the legal targets for that actor so callers can offer
    valid actions instead.
    """

    def __init__(
        self,
        current_status: ComplaintStatus,
        target_status: Optional[ComplaintStatus],
        allowed: Iterable[ComplaintStatus] = (),
        reason: Optional[str] = None,
    ):
        self.current_status = current_status
        self.target_status = target_status
        self.allowed: List[ComplaintStatus] = sorted(set(allowed), key=lambda s: s.value)
        self.reason = reason

        if target_status is not None:
            message = f"Cannot transition from {current_status.value} to {target_status.value}"
        else:
            message = f"Not allowed while {current_status.value}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PermissionDeniedError(ComplaintError):
    """
    Actor's role may never perform the operation, regardless of any
    complaint's state.
    """

    def __init__(self, operation: str, role, reason: Optional[str] = None):
        self.operation = operation
        self.role = role
        self.reason = reason
        message = f"{role.value} cannot {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConflictError(ComplaintError):
    """Optimistic concurrency check failed - the observed status is stale."""

    def __init__(
        self,
        complaint_id: str,
        expected_status: ComplaintStatus,
        actual_status: Optional[ComplaintStatus] = None,
    ):
        self.complaint_id = complaint_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        actual = actual_status.value if actual_status else "changed"
        super().__init__(
            f"Complaint {complaint_id} is no longer {expected_status.value} (now {actual})"
        )


class InvalidAssigneeError(ComplaintError):
    """Explicit assignee is not an active, eligible staff member."""

    def __init__(self, staff_id: str, reason: str):
        self.staff_id = staff_id
        self.reason = reason
        super().__init__(f"Cannot assign to {staff_id}: {reason}")


class NoEligibleStaffError(ComplaintError):
    """Auto-assignment found no eligible staff for the project."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"No eligible staff for project {project_id}")


class ValidationError(ComplaintError):
    """A field required by the transition is missing or empty."""

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(message)
