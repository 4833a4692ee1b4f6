"""
Migration: Create complaint lifecycle tables.

Creates 5 tables:
1. users - staff directory and clients
2. projects - what complaints are filed against
3. project_members - project-team membership (assignment eligibility)
4. complaints - aggregate root, guarded by status + version on update
5. complaint_history - append-only transition ledger

Core principle: history rows are inserted, never updated or deleted.
"""
from sqlalchemy import create_engine, inspect, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite:///./complaint_desk.db"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    return inspect(conn).has_table(table_name)


def run_migration():
    """Create all complaint tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        # =================================================================
        # TABLE 1: users
        # =================================================================
        if table_exists(conn, "users"):
            print("users table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE users (
                    id VARCHAR(36) PRIMARY KEY,
                    email VARCHAR(255) NOT NULL UNIQUE,
                    name VARCHAR(255) NOT NULL,
                    password_hash VARCHAR(255) NOT NULL,
                    role VARCHAR(7) NOT NULL DEFAULT 'CLIENT',
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created users table")

        # =================================================================
        # TABLE 2: projects
        # =================================================================
        if table_exists(conn, "projects"):
            print("projects table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE projects (
                    id VARCHAR(36) PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created projects table")

        # =================================================================
        # TABLE 3: project_members
        # =================================================================
        if table_exists(conn, "project_members"):
            print("project_members table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE project_members (
                    id VARCHAR(36) PRIMARY KEY,
                    project_id VARCHAR(36) NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                    user_id VARCHAR(36) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_project_member UNIQUE (project_id, user_id)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_member_user ON project_members(user_id)
            """))
            print("Created project_members table")

        # =================================================================
        # TABLE 4: complaints
        # =================================================================
        if table_exists(conn, "complaints"):
            print("complaints table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE complaints (
                    id VARCHAR(36) PRIMARY KEY,
                    project_id VARCHAR(36) NOT NULL REFERENCES projects(id),
                    client_id VARCHAR(36) NOT NULL REFERENCES users(id),
                    assignee_id VARCHAR(36) REFERENCES users(id),
                    title VARCHAR(255) NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    category VARCHAR(13) NOT NULL DEFAULT 'OTHER',
                    priority VARCHAR(8) NOT NULL DEFAULT 'MEDIUM',
                    status VARCHAR(11) NOT NULL DEFAULT 'PENDING',
                    version INTEGER NOT NULL DEFAULT 1,
                    resolution_comment TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX ix_complaints_assignee_status ON complaints(assignee_id, status)
            """))
            conn.execute(text("""
                CREATE INDEX idx_complaint_client ON complaints(client_id)
            """))
            print("Created complaints table")

        # =================================================================
        # TABLE 5: complaint_history
        # =================================================================
        if table_exists(conn, "complaint_history"):
            print("complaint_history table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE complaint_history (
                    id VARCHAR(36) PRIMARY KEY,
                    complaint_id VARCHAR(36) NOT NULL REFERENCES complaints(id) ON DELETE CASCADE,
                    sequence INTEGER NOT NULL,
                    from_status VARCHAR(11),
                    to_status VARCHAR(11) NOT NULL,
                    event VARCHAR(13) NOT NULL,
                    actor_id VARCHAR(36) NOT NULL,
                    actor_role VARCHAR(7) NOT NULL,
                    message TEXT,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT uq_history_sequence UNIQUE (complaint_id, sequence)
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_history_complaint ON complaint_history(complaint_id)
            """))
            print("Created complaint_history table")

        conn.commit()
        print("\nComplaint tables migration completed successfully!")


if __name__ == "__main__":
    run_migration()
