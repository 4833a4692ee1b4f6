"""
Complaint Core Services

Lifecycle state machine plus staff assignment and workload balancing.

- ComplaintStore: keyed store with compare-and-update
- HistoryLedger: append-only transition log
- WorkloadIndex: active complaint count per staff member
- AssignmentEngine: assignee selection, reassignment, balancing
- LifecycleStateMachine: transition table and transition writes
- ComplaintService: unit of work + event emission
"""

from .errors import (
    ComplaintError,
    NotFoundError,
    IllegalTransitionError,
    ConflictError,
    InvalidAssigneeError,
    NoEligibleStaffError,
    ValidationError,
    PermissionDeniedError,
)
from .store import ComplaintStore
from .history_ledger import HistoryLedger
from .directory import StaffDirectory, SqlStaffDirectory
from .workload import WorkloadIndex
from .events import EventEmitter, default_emitter
from .assignment import AssignmentEngine, SYSTEM_ACTOR
from .state_machine import LifecycleStateMachine, LifecycleAction, TRANSITIONS
from .complaint_service import ComplaintService

__all__ = [
    'ComplaintError',
    'NotFoundError',
    'IllegalTransitionError',
    'ConflictError',
    'InvalidAssigneeError',
    'NoEligibleStaffError',
    'ValidationError',
    'PermissionDeniedError',
    'ComplaintStore',
    'HistoryLedger',
    'StaffDirectory',
    'SqlStaffDirectory',
    'WorkloadIndex',
    'EventEmitter',
    'default_emitter',
    'AssignmentEngine',
    'SYSTEM_ACTOR',
    'LifecycleStateMachine',
    'LifecycleAction',
    'TRANSITIONS',
    'ComplaintService',
]
