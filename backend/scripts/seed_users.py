#!/usr/bin/env python3
"""
Staff Directory Seed Script
Creates a user and optionally adds them to a project team.

Usage:
    python -m scripts.seed_users <email> <name> <password> <role> [project_name]

Example:
    python -m scripts.seed_users agent@example.com "Sam Agent" securepassword123 SUPPORT "Billing Portal"
"""
import sys
import os
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import ActorRole, ProjectDB, ProjectMemberDB, UserDB
from app.auth import hash_password


def get_or_create_project(db: Session, name: str) -> ProjectDB:
    project = db.query(ProjectDB).filter(ProjectDB.name == name).first()
    if project is None:
        project = ProjectDB(id=str(uuid4()), name=name)
        db.add(project)
        db.flush()
        print(f"Created project '{name}' ({project.id})")
    return project


def create_user(email: str, name: str, password: str, role: ActorRole, project_name: str = None) -> bool:
    """Create a user, and a project membership when a project is named."""
    init_db()

    db: Session = SessionLocal()
    try:
        user = db.query(UserDB).filter(UserDB.email == email).first()
        if user is not None:
            print(f"User '{email}' already exists ({user.role.value}).")
        else:
            user = UserDB(
                id=str(uuid4()),
                email=email,
                name=name,
                password_hash=hash_password(password),
                role=role,
            )
            db.add(user)
            db.flush()
            print(f"User created: {email} ({role.value}, {user.id})")

        if project_name:
            project = get_or_create_project(db, project_name)
            member = db.query(ProjectMemberDB).filter(
                ProjectMemberDB.project_id == project.id,
                ProjectMemberDB.user_id == user.id,
            ).first()
            if member is None:
                db.add(ProjectMemberDB(id=str(uuid4()), project_id=project.id, user_id=user.id))
                print(f"Added {email} to project '{project_name}'")

        db.commit()
        return True

    except Exception as e:
        print(f"Error creating user: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) not in (5, 6):
        print(__doc__)
        sys.exit(1)

    email, name, password, role_name = sys.argv[1:5]
    project_name = sys.argv[5] if len(sys.argv) == 6 else None

    # Basic validation
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    if "@" not in email:
        print("Error: Invalid email format.")
        sys.exit(1)

    try:
        role = ActorRole(role_name.upper())
    except ValueError:
        print(f"Error: role must be one of {', '.join(r.value for r in ActorRole)}.")
        sys.exit(1)

    success = create_user(email, name, password, role, project_name)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
