"""
Staff Directory

Read-only view over users and project-team membership. Owned by
user/team management; the complaint core only asks two questions:
is this staff member eligible for a project, and who is eligible.
"""
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from ...models.db_models import ActorRole, ProjectDB, ProjectMemberDB, UserDB

# Roles that may be assigned complaints
STAFF_ROLES = (ActorRole.SUPPORT, ActorRole.ADMIN)


class StaffDirectory(Protocol):
    """Interface the core needs from user/team management."""

    def get_staff(self, staff_id: str) -> Optional[UserDB]: ...

    def get_project(self, project_id: str) -> Optional[ProjectDB]: ...

    def is_eligible(self, staff_id: str, project_id: str) -> bool: ...

    def list_eligible_staff(self, project_id: str) -> List[str]: ...

    def list_staff(self) -> List[str]: ...


class SqlStaffDirectory:
    """StaffDirectory backed by the users and project_members tables."""

    def __init__(self, db: Session):
        self.db = db

    def get_staff(self, staff_id: str) -> Optional[UserDB]:
        return self.db.get(UserDB, staff_id)

    def get_project(self, project_id: str) -> Optional[ProjectDB]:
        return self.db.get(ProjectDB, project_id)

    def is_eligible(self, staff_id: str, project_id: str) -> bool:
        """Active SUPPORT/ADMIN user who is on the project's team."""
        stmt = (
            select(ProjectMemberDB.id)
            .join(UserDB, UserDB.id == ProjectMemberDB.user_id)
            .where(ProjectMemberDB.project_id == project_id)
            .where(ProjectMemberDB.user_id == staff_id)
            .where(UserDB.is_active.is_(True))
            .where(UserDB.role.in_(STAFF_ROLES))
        )
        return self.db.scalar(stmt) is not None

    def list_eligible_staff(self, project_id: str) -> List[str]:
        """IDs of eligible staff for a project, sorted."""
        stmt = (
            select(UserDB.id)
            .join(ProjectMemberDB, ProjectMemberDB.user_id == UserDB.id)
            .where(ProjectMemberDB.project_id == project_id)
            .where(UserDB.is_active.is_(True))
            .where(UserDB.role.in_(STAFF_ROLES))
        )
        return sorted(set(self.db.scalars(stmt)))

    def list_staff(self) -> List[str]:
        """IDs of every active SUPPORT/ADMIN user, sorted."""
        stmt = (
            select(UserDB.id)
            .where(UserDB.is_active.is_(True))
            .where(UserDB.role.in_(STAFF_ROLES))
        )
        return sorted(self.db.scalars(stmt))
