"""
History Ledger

Append-only log of every accepted complaint transition.

Core Principles:
1. One entry per accepted transition - never more, never fewer.
2. Entries are never updated or deleted. There is no API for either.
3. Order is created_at ascending, ties broken by insertion sequence.
"""
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ...models.db_models import (
    ComplaintHistoryDB,
    ComplaintStatus,
    ComplaintEvent,
    ActorRole,
    utcnow,
)


class HistoryLedger:
    """Writes and reads the complaint_history table."""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        complaint_id: str,
        from_status: Optional[ComplaintStatus],
        to_status: ComplaintStatus,
        event: ComplaintEvent,
        actor_id: str,
        actor_role: ActorRole,
        message: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> ComplaintHistoryDB:
        """
        Append one entry for an accepted transition.

        The entry is flushed immediately so a failed write surfaces
        inside the caller's transaction, before anything is committed.

        Args:
            complaint_id: Owning complaint
            from_status: Status before the transition (None on creation)
            to_status: Status after the transition
            event: Lifecycle event that was applied
            actor_id: Who performed it
            actor_role: Role they acted in
            message: Human-readable note
            created_at: Timestamp (default: now)

        Returns:
            The created history entry
        """
        entry = ComplaintHistoryDB(
            id=str(uuid4()),
            complaint_id=complaint_id,
            sequence=self._next_sequence(complaint_id),
            from_status=from_status,
            to_status=to_status,
            event=event,
            actor_id=actor_id,
            actor_role=actor_role,
            message=message,
            created_at=created_at or utcnow(),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_for(self, complaint_id: str) -> List[ComplaintHistoryDB]:
        """Timeline of a complaint, oldest first."""
        stmt = (
            select(ComplaintHistoryDB)
            .where(ComplaintHistoryDB.complaint_id == complaint_id)
            .order_by(ComplaintHistoryDB.created_at.asc(), ComplaintHistoryDB.sequence.asc())
        )
        return list(self.db.scalars(stmt))

    def count_for(self, complaint_id: str) -> int:
        stmt = select(func.count(ComplaintHistoryDB.id)).where(
            ComplaintHistoryDB.complaint_id == complaint_id
        )
        return self.db.scalar(stmt) or 0

    def _next_sequence(self, complaint_id: str) -> int:
        stmt = select(func.max(ComplaintHistoryDB.sequence)).where(
            ComplaintHistoryDB.complaint_id == complaint_id
        )
        current = self.db.scalar(stmt)
        return (current or 0) + 1
