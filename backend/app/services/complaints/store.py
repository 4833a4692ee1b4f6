"""
Complaint Entity Store

Keyed store for complaints. The conditional update is the only
concurrency control in the system: every status change is a single
UPDATE guarded by the status (and version) the caller observed.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from ...models.db_models import ComplaintDB, ComplaintHistoryDB, ComplaintStatus, ACTIVE_STATUSES, utcnow
from .errors import ConflictError, NotFoundError

UNASSIGNED = "unassigned"


class ComplaintStore:
    """Lookup, creation and compare-and-update of complaints."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, complaint_id: str) -> ComplaintDB:
        """Fetch a complaint, raising NotFoundError if absent."""
        complaint = self.db.get(ComplaintDB, complaint_id, populate_existing=True)
        if complaint is None:
            raise NotFoundError("Complaint", complaint_id)
        return complaint

    def create(
        self,
        project_id: str,
        client_id: str,
        title: str,
        description: str = "",
        category=None,
        priority=None,
        created_at: Optional[datetime] = None,
    ) -> ComplaintDB:
        """Insert a new complaint in PENDING."""
        now = created_at or utcnow()
        complaint = ComplaintDB(
            id=str(uuid4()),
            project_id=project_id,
            client_id=client_id,
            title=title,
            description=description or "",
            status=ComplaintStatus.PENDING,
            version=1,
            created_at=now,
            updated_at=now,
        )
        if category is not None:
            complaint.category = category
        if priority is not None:
            complaint.priority = priority

        self.db.add(complaint)
        self.db.flush()
        return complaint

    def compare_and_update(
        self,
        complaint_id: str,
        expected_status: ComplaintStatus,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> ComplaintDB:
        """
        Atomically apply `changes` if the stored status still equals
        `expected_status` (and the version, when given).

        Args:
            complaint_id: Complaint to update
            expected_status: Status the caller observed
            changes: Column values to write
            expected_version: Version the caller observed, if any

        Returns:
            The refreshed complaint

        Raises:
            NotFoundError: complaint does not exist
            ConflictError: status or version moved since the caller read it
        """
        values = dict(changes)
        values["version"] = ComplaintDB.version + 1
        values.setdefault("updated_at", utcnow())

        stmt = (
            update(ComplaintDB)
            .where(ComplaintDB.id == complaint_id)
            .where(ComplaintDB.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if expected_version is not None:
            stmt = stmt.where(ComplaintDB.version == expected_version)

        result = self.db.execute(stmt)
        if result.rowcount != 1:
            current = self.db.get(ComplaintDB, complaint_id, populate_existing=True)
            if current is None:
                raise NotFoundError("Complaint", complaint_id)
            raise ConflictError(complaint_id, expected_status, current.status)

        return self.get(complaint_id)

    def list_active_assigned(self, staff_ids: Optional[Sequence[str]] = None) -> List[ComplaintDB]:
        """Active complaints with an assignee, optionally limited to `staff_ids`."""
        stmt = (
            select(ComplaintDB)
            .where(ComplaintDB.status.in_(ACTIVE_STATUSES))
            .where(ComplaintDB.assignee_id.is_not(None))
        )
        if staff_ids is not None:
            stmt = stmt.where(ComplaintDB.assignee_id.in_(list(staff_ids)))
        return list(self.db.scalars(stmt))

    def list_by_assignee(self, staff_id: str, status: ComplaintStatus) -> List[ComplaintDB]:
        """Complaints for one assignee in one status, oldest first."""
        stmt = (
            select(ComplaintDB)
            .where(ComplaintDB.assignee_id == staff_id)
            .where(ComplaintDB.status == status)
            .order_by(ComplaintDB.created_at.asc(), ComplaintDB.id.asc())
        )
        return list(self.db.scalars(stmt))

    def list_for_client(self, client_id: str, status: Optional[ComplaintStatus] = None) -> List[ComplaintDB]:
        """Complaints submitted by a client, newest first."""
        stmt = select(ComplaintDB).where(ComplaintDB.client_id == client_id)
        if status is not None:
            stmt = stmt.where(ComplaintDB.status == status)
        stmt = stmt.order_by(ComplaintDB.created_at.desc())
        return list(self.db.scalars(stmt))

    def list_assigned_to(self, staff_id: str, status: Optional[ComplaintStatus] = None) -> List[ComplaintDB]:
        """Complaints assigned to a staff member, newest first."""
        stmt = select(ComplaintDB).where(ComplaintDB.assignee_id == staff_id)
        if status is not None:
            stmt = stmt.where(ComplaintDB.status == status)
        stmt = stmt.order_by(ComplaintDB.created_at.desc())
        return list(self.db.scalars(stmt))

    def list_filtered(
        self,
        status: Optional[ComplaintStatus] = None,
        category=None,
        priority=None,
        project_id: Optional[str] = None,
        client_id: Optional[str] = None,
        assignee_id: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[ComplaintDB], int]:
        """
        Filtered page of all complaints, newest first, plus the total match count.

        `assignee_id="unassigned"` matches complaints with no assignee.
        `search` is a case-insensitive match on title or description.
        """
        stmt = select(ComplaintDB)
        if status is not None:
            stmt = stmt.where(ComplaintDB.status == status)
        if category is not None:
            stmt = stmt.where(ComplaintDB.category == category)
        if priority is not None:
            stmt = stmt.where(ComplaintDB.priority == priority)
        if project_id:
            stmt = stmt.where(ComplaintDB.project_id == project_id)
        if client_id:
            stmt = stmt.where(ComplaintDB.client_id == client_id)
        if assignee_id == UNASSIGNED:
            stmt = stmt.where(ComplaintDB.assignee_id.is_(None))
        elif assignee_id:
            stmt = stmt.where(ComplaintDB.assignee_id == assignee_id)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(
                ComplaintDB.title.ilike(pattern),
                ComplaintDB.description.ilike(pattern),
            ))

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery()))
        page = stmt.order_by(ComplaintDB.created_at.desc(), ComplaintDB.id.desc()).offset(offset).limit(limit)
        return list(self.db.scalars(page)), total or 0

    def delete(self, complaint_id: str, expected_version: int) -> None:
        """
        Remove a complaint and its history, guarded on the observed version.

        Raises:
            NotFoundError: complaint does not exist
            ConflictError: complaint changed since the caller read it
        """
        current = self.get(complaint_id)
        self.db.execute(
            delete(ComplaintHistoryDB)
            .where(ComplaintHistoryDB.complaint_id == complaint_id)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(
            delete(ComplaintDB)
            .where(ComplaintDB.id == complaint_id)
            .where(ComplaintDB.version == expected_version)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(complaint_id, current.status)
        self.db.expunge(current)
