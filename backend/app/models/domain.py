"""
Complaint Desk - Domain Value Objects

Plain data carried between the core services and their callers.
None of these are persisted on their own.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .db_models import ActorRole, ComplaintEvent, ComplaintStatus


@dataclass(frozen=True)
class Actor:
    """The caller of a core operation. Always passed explicitly."""
    id: str
    role: ActorRole

    @property
    def is_staff(self) -> bool:
        return self.role in (ActorRole.SUPPORT, ActorRole.ADMIN)


@dataclass(frozen=True)
class TransitionEvent:
    """Outbound notification for one accepted transition."""
    complaint_id: str
    event: ComplaintEvent
    from_status: Optional[ComplaintStatus]
    to_status: ComplaintStatus
    actor_id: str
    actor_role: ActorRole
    timestamp: datetime
    message: Optional[str] = None
    assignee_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "complaint_id": self.complaint_id,
            "event": self.event.value,
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role.value,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "assignee_id": self.assignee_id,
        }


@dataclass(frozen=True)
class WorkloadSnapshot:
    """Active complaint load of one staff member at a point in time."""
    staff_id: str
    active_complaint_count: int
    workload_percentage: float


@dataclass
class BalanceResult:
    """Outcome of one balance_workload run."""
    mean: float = 0.0
    moved: List[Dict[str, str]] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)
    workload_before: Dict[str, int] = field(default_factory=dict)
    workload_after: Dict[str, int] = field(default_factory=dict)

    @property
    def moved_count(self) -> int:
        return len(self.moved)
