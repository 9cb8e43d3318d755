"""Deletion of projects and tasks together with everything hanging off them.

Deletes run as bulk statements inside the request transaction, children
first, so the same code works whether or not the database enforces the
foreign-key cascades. Attachment files are returned to the caller and only
removed from disk once the transaction has committed.
"""

from collections.abc import Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.models.activity import Notification
from flowops.models.project import Label, Project, ProjectMember
from flowops.models.sprint import Sprint
from flowops.models.task import (
    Attachment,
    Comment,
    CommentMention,
    IssueLink,
    Task,
    TimeLog,
    task_labels,
    task_watchers,
)
from flowops.models.team import Team, TeamMember

logger = structlog.get_logger()

_NO_SYNC = {"synchronize_session": False}


async def _delete_task_children(db: AsyncSession, task_ids: Sequence[UUID]) -> list[str]:
    """Remove every row that references the given tasks; return attachment paths."""
    result = await db.execute(select(Attachment.path).where(Attachment.task_id.in_(task_ids)))
    paths = list(result.scalars().all())

    comment_ids = select(Comment.id).where(Comment.task_id.in_(task_ids))
    statements = [
        delete(CommentMention).where(CommentMention.comment_id.in_(comment_ids)),
        delete(Comment).where(Comment.task_id.in_(task_ids)),
        delete(TimeLog).where(TimeLog.task_id.in_(task_ids)),
        delete(Attachment).where(Attachment.task_id.in_(task_ids)),
        delete(IssueLink).where(
            or_(IssueLink.source_task_id.in_(task_ids), IssueLink.target_task_id.in_(task_ids))
        ),
        delete(Notification).where(Notification.related_task_id.in_(task_ids)),
    ]
    for statement in statements:
        await db.execute(statement.execution_options(**_NO_SYNC))

    await db.execute(task_labels.delete().where(task_labels.c.task_id.in_(task_ids)))
    await db.execute(task_watchers.delete().where(task_watchers.c.task_id.in_(task_ids)))
    return paths


async def delete_task(db: AsyncSession, task: Task) -> list[str]:
    """Delete a task and its children; subtasks are detached, not deleted.

    Returns:
        Paths of attachment files to remove after commit
    """
    paths = await _delete_task_children(db, [task.id])
    await db.execute(
        update(Task)
        .where(Task.parent_id == task.id)
        .values(parent_id=None)
        .execution_options(**_NO_SYNC)
    )
    await db.execute(delete(Task).where(Task.id == task.id).execution_options(**_NO_SYNC))
    db.expunge(task)

    logger.info("Task deleted", task_id=str(task.id), attachments=len(paths))
    return paths


async def delete_project(db: AsyncSession, project: Project) -> list[str]:
    """Delete a project with its tasks, sprints, teams, labels and memberships.

    Returns:
        Paths of attachment files to remove after commit
    """
    result = await db.execute(select(Task.id).where(Task.project_id == project.id))
    task_ids = list(result.scalars().all())

    paths: list[str] = []
    if task_ids:
        paths = await _delete_task_children(db, task_ids)

    team_ids = select(Team.id).where(Team.project_id == project.id)
    statements = [
        delete(Notification).where(Notification.related_project_id == project.id),
        update(Task).where(Task.project_id == project.id).values(parent_id=None),
        delete(Task).where(Task.project_id == project.id),
        delete(Sprint).where(Sprint.project_id == project.id),
        delete(TeamMember).where(TeamMember.team_id.in_(team_ids)),
        delete(Team).where(Team.project_id == project.id),
        delete(Label).where(Label.project_id == project.id),
        delete(ProjectMember).where(ProjectMember.project_id == project.id),
        delete(Project).where(Project.id == project.id),
    ]
    for statement in statements:
        await db.execute(statement.execution_options(**_NO_SYNC))
    db.expunge(project)

    logger.info(
        "Project deleted",
        project_id=str(project.id),
        tasks=len(task_ids),
        attachments=len(paths),
    )
    return paths
