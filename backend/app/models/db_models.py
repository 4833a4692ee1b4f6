"""
Complaint Desk - SQLAlchemy ORM Models
Database models for complaints, their history and the staff directory
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, ForeignKey, Boolean,
    Enum as SQLEnum, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from ..database import Base


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp used for every stored datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS FOR THE COMPLAINT LIFECYCLE
# =============================================================================

class ComplaintStatus(str, Enum):
    """States in the complaint lifecycle state machine."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    WITHDRAWN = "WITHDRAWN"


class Priority(str, Enum):
    """Informational priority - weighs nothing in transition legality."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Category(str, Enum):
    """Complaint categories offered to clients."""
    BUG = "BUG"
    DELAY = "DELAY"
    QUALITY = "QUALITY"
    COMMUNICATION = "COMMUNICATION"
    OTHER = "OTHER"


class ActorRole(str, Enum):
    """Roles an actor can hold when performing a transition."""
    CLIENT = "CLIENT"
    SUPPORT = "SUPPORT"
    ADMIN = "ADMIN"


class ComplaintEvent(str, Enum):
    """Events recorded in the history ledger and emitted to subscribers."""
    CREATED = "CREATED"
    ASSIGNED = "ASSIGNED"
    REASSIGNED = "REASSIGNED"
    WITHDRAWN = "WITHDRAWN"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    REOPENED = "REOPENED"
    STATUS_FORCED = "STATUS_FORCED"


# Statuses that count toward a staff member's workload
ACTIVE_STATUSES = (ComplaintStatus.PENDING, ComplaintStatus.IN_PROGRESS)

# Statuses that accept no transitions except a bypass force
TERMINAL_STATUSES = (ComplaintStatus.CLOSED, ComplaintStatus.WITHDRAWN)

# Statuses that require an assignee
ASSIGNED_STATUSES = (ComplaintStatus.IN_PROGRESS, ComplaintStatus.RESOLVED)


# =============================================================================
# STAFF DIRECTORY (owned by user/team management, read by the core)
# =============================================================================

class UserDB(Base):
    """User account - clients, support agents and admins."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(ActorRole), nullable=False, default=ActorRole.CLIENT)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    memberships = relationship("ProjectMemberDB", back_populates="user", cascade="all, delete-orphan")


class ProjectDB(Base):
    """Project complaints are filed against."""
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    members = relationship("ProjectMemberDB", back_populates="project", cascade="all, delete-orphan")
    complaints = relationship("ComplaintDB", back_populates="project")


class ProjectMemberDB(Base):
    """Project-team membership - decides assignment eligibility."""
    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    project = relationship("ProjectDB", back_populates="members")
    user = relationship("UserDB", back_populates="memberships")


# =============================================================================
# COMPLAINT AGGREGATE
# =============================================================================

class ComplaintDB(Base):
    """
    A client-reported issue against a project.
    Aggregate root - owns its history entries.
    """
    __tablename__ = "complaints"
    __table_args__ = (
        Index("ix_complaints_assignee_status", "assignee_id", "status"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    assignee_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    # Content
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(SQLEnum(Category), nullable=False, default=Category.OTHER)
    priority = Column(SQLEnum(Priority), nullable=False, default=Priority.MEDIUM)

    # State Machine
    status = Column(SQLEnum(ComplaintStatus), nullable=False, default=ComplaintStatus.PENDING)
    version = Column(Integer, nullable=False, default=1)  # Bumped by every conditional update
    resolution_comment = Column(Text, nullable=True)  # Set on every entry into RESOLVED

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    project = relationship("ProjectDB", back_populates="complaints")
    history = relationship(
        "ComplaintHistoryDB",
        back_populates="complaint",
        cascade="all, delete-orphan",
        order_by="ComplaintHistoryDB.sequence",
    )


class ComplaintHistoryDB(Base):
    """
    Immutable log of complaint transitions.
    Append-only - one row per accepted transition.
    """
    __tablename__ = "complaint_history"
    __table_args__ = (
        UniqueConstraint("complaint_id", "sequence", name="uq_history_sequence"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    complaint_id = Column(String(36), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # Insertion order within the complaint

    # State Transition
    from_status = Column(SQLEnum(ComplaintStatus), nullable=True)  # NULL for creation
    to_status = Column(SQLEnum(ComplaintStatus), nullable=False)
    event = Column(SQLEnum(ComplaintEvent), nullable=False)

    # Actor
    actor_id = Column(String(36), nullable=False)
    actor_role = Column(SQLEnum(ActorRole), nullable=False)
    message = Column(Text, nullable=True)

    # Timestamps (immutable)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    complaint = relationship("ComplaintDB", back_populates="history")
