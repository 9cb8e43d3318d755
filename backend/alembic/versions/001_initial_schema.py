"""Initial schema: users, projects, tasks, sprints, teams, notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kwargs)


def upgrade() -> None:
    # Create users table
    op.create_table(
        "users",
        _uuid("id", nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("avatar", sa.String(500), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("reset_password_token", sa.String(64), nullable=True),
        sa.Column("reset_password_expire", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refresh_token", sa.String(1000), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_reset_password_token", "users", ["reset_password_token"])

    # Create projects table
    op.create_table(
        "projects",
        _uuid("id", nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("key", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="planned"),
        _uuid("owner_id", nullable=False),
        sa.Column("task_sequence", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_key", "projects", ["key"], unique=True)
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

    op.create_table(
        "project_members",
        _uuid("id", nullable=False),
        _uuid("project_id", nullable=False),
        _uuid("user_id", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )
    op.create_index("ix_project_members_project_id", "project_members", ["project_id"])
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    op.create_table(
        "labels",
        _uuid("id", nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("color", sa.String(7), nullable=False, server_default="#6c757d"),
        _uuid("project_id", nullable=False),
        _uuid("created_by_id", nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "name", name="uq_label_project_name"),
    )
    op.create_index("ix_labels_project_id", "labels", ["project_id"])

    # Create sprints table
    op.create_table(
        "sprints",
        _uuid("id", nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("goal", sa.String(500), nullable=True),
        _uuid("project_id", nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="planned"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("velocity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_points", sa.Integer(), nullable=False, server_default="0"),
        _uuid("created_by_id", nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sprints_project_id", "sprints", ["project_id"])
    op.create_index(
        "uq_sprints_one_active_per_project",
        "sprints",
        ["project_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    # Create tasks table
    op.create_table(
        "tasks",
        _uuid("id", nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(20), nullable=False, server_default="task"),
        sa.Column("status", sa.String(20), nullable=False, server_default="todo"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("story_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("original_estimate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("time_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remaining_estimate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("due_date", sa.Date(), nullable=True),
        _uuid("project_id", nullable=False),
        _uuid("assignee_id", nullable=True),
        _uuid("reporter_id", nullable=False),
        _uuid("parent_id", nullable=True),
        _uuid("sprint_id", nullable=True),
        sa.Column("task_key", sa.String(32), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assignee_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reporter_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["parent_id"], ["tasks.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["sprint_id"], ["sprints.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "task_key", name="uq_task_project_key"),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"])
    op.create_index("ix_tasks_parent_id", "tasks", ["parent_id"])
    op.create_index("ix_tasks_sprint_id", "tasks", ["sprint_id"])
    op.create_index("ix_tasks_task_key", "tasks", ["task_key"])

    op.create_table(
        "task_labels",
        _uuid("task_id", nullable=False),
        _uuid("label_id", nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["label_id"], ["labels.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("task_id", "label_id"),
    )
    op.create_table(
        "task_watchers",
        _uuid("task_id", nullable=False),
        _uuid("user_id", nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("task_id", "user_id"),
    )

    # Comments and mentions
    op.create_table(
        "comments",
        _uuid("id", nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _uuid("task_id", nullable=False),
        _uuid("author_id", nullable=False),
        sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_comments_task_id", "comments", ["task_id"])

    op.create_table(
        "comment_mentions",
        _uuid("id", nullable=False),
        _uuid("comment_id", nullable=False),
        _uuid("user_id", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["comment_id"], ["comments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("comment_id", "user_id", name="uq_comment_mention"),
    )
    op.create_index("ix_comment_mentions_comment_id", "comment_mentions", ["comment_id"])

    # Time logs
    op.create_table(
        "time_logs",
        _uuid("id", nullable=False),
        _uuid("task_id", nullable=False),
        _uuid("user_id", nullable=False),
        sa.Column("time_spent", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column(
            "logged_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("time_spent >= 1", name="ck_time_log_minimum"),
    )
    op.create_index("ix_time_logs_task_id", "time_logs", ["task_id"])

    # Issue links
    op.create_table(
        "issue_links",
        _uuid("id", nullable=False),
        sa.Column("link_type", sa.String(30), nullable=False),
        _uuid("source_task_id", nullable=False),
        _uuid("target_task_id", nullable=False),
        _uuid("created_by_id", nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["source_task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "source_task_id", "target_task_id", "link_type", name="uq_issue_link"
        ),
        sa.CheckConstraint("source_task_id <> target_task_id", name="ck_issue_link_not_self"),
    )
    op.create_index("ix_issue_links_source_task_id", "issue_links", ["source_task_id"])
    op.create_index("ix_issue_links_target_task_id", "issue_links", ["target_task_id"])

    # Attachments
    op.create_table(
        "attachments",
        _uuid("id", nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("mimetype", sa.String(255), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("path", sa.String(1000), nullable=False),
        _uuid("task_id", nullable=False),
        _uuid("uploaded_by_id", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_attachments_task_id", "attachments", ["task_id"])

    # Create teams table
    op.create_table(
        "teams",
        _uuid("id", nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        _uuid("project_id", nullable=False),
        sa.Column("color", sa.String(7), nullable=False, server_default="#6366f1"),
        _uuid("lead_id", nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        _uuid("created_by_id", nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["lead_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "name", name="uq_team_project_name"),
    )
    op.create_index("ix_teams_project_id", "teams", ["project_id"])

    op.create_table(
        "team_members",
        _uuid("id", nullable=False),
        _uuid("team_id", nullable=False),
        _uuid("user_id", nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_member"),
    )
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"])
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"])

    # Activity log and notifications
    op.create_table(
        "activities",
        _uuid("id", nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        _uuid("user_id", nullable=True),
        sa.Column("target_type", sa.String(20), nullable=False),
        _uuid("target_id", nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activities_user_id", "activities", ["user_id"])
    op.create_index("ix_activities_target_type", "activities", ["target_type"])
    op.create_index("ix_activities_target_id", "activities", ["target_id"])

    op.create_table(
        "notifications",
        _uuid("id", nullable=False),
        _uuid("user_id", nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(1000), nullable=True),
        _uuid("related_task_id", nullable=True),
        _uuid("related_project_id", nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["related_task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["related_project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("activities")
    op.drop_table("team_members")
    op.drop_table("teams")
    op.drop_table("attachments")
    op.drop_table("issue_links")
    op.drop_table("time_logs")
    op.drop_table("comment_mentions")
    op.drop_table("comments")
    op.drop_table("task_watchers")
    op.drop_table("task_labels")
    op.drop_table("tasks")
    op.drop_table("sprints")
    op.drop_table("labels")
    op.drop_table("project_members")
    op.drop_table("projects")
    op.drop_table("users")
