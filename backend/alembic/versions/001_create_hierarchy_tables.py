"""Create hierarchy and users tables

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  organizations, teams, projects, tasks and users.
How:   UUID primary keys, TIMESTAMP WITH TIME ZONE created_at.

Parent reference columns (teams.organization_id, projects.team_id,
tasks.project_id) are indexed but carry no foreign key constraint: a child
may reference a parent id that does not exist.

Rollback: downgrade() drops all five tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _created_at_column() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
        comment="When this record was created (UTC)",
    )


def upgrade() -> None:
    op.create_table(
        "organizations",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "teams",
        _id_column(),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Parent organization id (not enforced)",
        ),
        sa.Column("name", sa.String(255), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "projects",
        _id_column(),
        sa.Column(
            "team_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Parent team id (not enforced)",
        ),
        sa.Column("name", sa.String(255), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "tasks",
        _id_column(),
        sa.Column(
            "project_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Parent project id (not enforced)",
        ),
        sa.Column("details", sa.Text(), nullable=False),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "users",
        _id_column(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False, comment="bcrypt hash"),
        _created_at_column(),
        sa.PrimaryKeyConstraint("id"),
    )

    # List endpoints order by created_at DESC and filter children by parent
    for table in ("organizations", "teams", "projects", "tasks"):
        op.create_index(f"ix_{table}_created_at", table, [sa.text("created_at DESC")])
    op.create_index("ix_teams_organization_id", "teams", ["organization_id"])
    op.create_index("ix_projects_team_id", "projects", ["team_id"])
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_tasks_project_id", table_name="tasks")
    op.drop_index("ix_projects_team_id", table_name="projects")
    op.drop_index("ix_teams_organization_id", table_name="teams")
    for table in ("organizations", "teams", "projects", "tasks"):
        op.drop_index(f"ix_{table}_created_at", table_name=table)

    op.drop_table("users")
    op.drop_table("tasks")
    op.drop_table("projects")
    op.drop_table("teams")
    op.drop_table("organizations")
