"""
Shared fixtures: a throwaway SQLite database per test, a small staff
directory, and a ComplaintService wired to a recording emitter.
"""
import pytest
import sys
import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base
from app.models.db_models import (
    ActorRole, ComplaintDB, ComplaintStatus, ProjectDB, ProjectMemberDB, UserDB,
)
from app.models.domain import Actor
from app.services.complaints import ComplaintService, EventEmitter


BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'complaints.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# STAFF DIRECTORY
# =============================================================================

@pytest.fixture
def make_user(db):
    """Create a user, optionally on one or more project teams."""
    def _make(user_id, role, projects=(), is_active=True):
        user = UserDB(
            id=user_id,
            email=f"{user_id}@acme.io",
            name=user_id.replace("-", " ").title(),
            password_hash="not-a-real-hash",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        for project in projects:
            db.add(ProjectMemberDB(id=str(uuid4()), project_id=project.id, user_id=user_id))
        db.commit()
        return Actor(id=user_id, role=role)
    return _make


@pytest.fixture
def world(db, make_user):
    """
    One project with two support agents, a second project with nobody,
    two clients and an admin who is on no team.

    staff-b is created before staff-a so tie-breaks cannot depend on
    insertion order.
    """
    project = ProjectDB(id="project-1", name="Billing Portal")
    empty_project = ProjectDB(id="project-2", name="Legacy CRM")
    db.add_all([project, empty_project])
    db.commit()

    staff_b = make_user("staff-b", ActorRole.SUPPORT, projects=[project])
    staff_a = make_user("staff-a", ActorRole.SUPPORT, projects=[project])

    return SimpleNamespace(
        project=project,
        empty_project=empty_project,
        staff_a=staff_a,
        staff_b=staff_b,
        admin=make_user("admin-1", ActorRole.ADMIN),
        client=make_user("client-1", ActorRole.CLIENT),
        other_client=make_user("client-2", ActorRole.CLIENT),
    )


@pytest.fixture
def add_complaint(db, world):
    """Insert a complaint directly in any status, bypassing the state machine."""
    counter = {"n": 0}

    def _add(status=ComplaintStatus.PENDING, assignee_id=None, project_id="project-1",
             client_id="client-1", created_at=None, resolution_comment=None):
        counter["n"] += 1
        complaint = ComplaintDB(
            id=f"c-{counter['n']:03d}",
            project_id=project_id,
            client_id=client_id,
            assignee_id=assignee_id,
            title=f"Complaint {counter['n']}",
            description="",
            status=status,
            version=1,
            resolution_comment=resolution_comment,
            created_at=created_at or BASE_TIME + timedelta(minutes=counter["n"]),
            updated_at=created_at or BASE_TIME + timedelta(minutes=counter["n"]),
        )
        db.add(complaint)
        db.commit()
        return complaint.id
    return _add


# =============================================================================
# SERVICE
# =============================================================================

@pytest.fixture
def events():
    return []


@pytest.fixture
def emitter(events):
    return EventEmitter(handlers=[events.append])


@pytest.fixture
def service(db, emitter, world):
    return ComplaintService(db, emitter=emitter)
