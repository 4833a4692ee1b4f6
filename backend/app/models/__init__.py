"""Complaint Desk - Data Models"""
from .db_models import (
    # Enums
    ComplaintStatus, Priority, Category, ActorRole, ComplaintEvent,
    ACTIVE_STATUSES, TERMINAL_STATUSES, ASSIGNED_STATUSES,
    # ORM
    UserDB, ProjectDB, ProjectMemberDB, ComplaintDB, ComplaintHistoryDB,
)
from .domain import Actor, TransitionEvent, WorkloadSnapshot, BalanceResult

__all__ = [
    "ComplaintStatus", "Priority", "Category", "ActorRole", "ComplaintEvent",
    "ACTIVE_STATUSES", "TERMINAL_STATUSES", "ASSIGNED_STATUSES",
    "UserDB", "ProjectDB", "ProjectMemberDB", "ComplaintDB", "ComplaintHistoryDB",
    "Actor", "TransitionEvent", "WorkloadSnapshot", "BalanceResult",
]
