"""Comment endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, Effects, UserSummary, dump, ok
from flowops.db.session import get_db_session
from flowops.models.task import Task
from flowops.models.user import User
from flowops.services import comments as comment_service
from flowops.services.access_control import (
    AccessTarget,
    check_task_access,
    get_task_or_404,
    require,
)

router = APIRouter()
task_router = APIRouter()
logger = structlog.get_logger()


class CommentIn(APISchema):
    content: str = Field(..., min_length=1, max_length=2000)


class CommentOut(APISchema):
    id: UUID
    content: str
    task_id: UUID
    author: UserSummary
    mentions: list[UserSummary]
    is_edited: bool
    created_at: datetime
    updated_at: datetime

    @field_validator("mentions", mode="before")
    @classmethod
    def _mentioned_users(cls, value):
        return [getattr(m, "user", m) for m in value]


async def _notify_mentioned(
    effects: Effects, users: list[User], task: Task, author: User
) -> None:
    await effects.notifications.notify_many(
        [u.id for u in users],
        "task_mentioned",
        f"You were mentioned in {task.task_key}",
        f"{author.name} mentioned you in a comment on '{task.title}'",
        link=f"/tasks/{task.id}",
        related_task_id=task.id,
        related_project_id=task.project_id,
        sender_id=author.id,
    )


@task_router.get("/{task_id}/comments")
async def list_comments(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    task, _ = await check_task_access(db, task_id, current_user)
    comments = await comment_service.list_comments(db, task)
    data = [CommentOut.model_validate(c) for c in comments]
    return ok(data, count=len(data))


@task_router.post("/{task_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    task_id: UUID,
    body: CommentIn,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Comment on a task, notifying mentioned users and the people following it."""
    task, project = await check_task_access(db, task_id, current_user)
    comment = await comment_service.create_comment(db, task, current_user, body.content)
    await db.commit()

    data = CommentOut.model_validate(comment)
    await effects.to_project(project.id, "comment:created", dump(data))

    mentioned = [m.user for m in comment.mentions]
    await _notify_mentioned(effects, mentioned, task, current_user)
    mentioned_ids = {u.id for u in mentioned}
    await effects.notifications.notify_many(
        [
            uid
            for uid in (task.assignee_id, task.reporter_id, *task.watcher_ids)
            if uid not in mentioned_ids
        ],
        "task_commented",
        f"New comment on {task.task_key}",
        f"{current_user.name} commented on '{task.title}'",
        link=f"/tasks/{task.id}",
        related_task_id=task.id,
        related_project_id=project.id,
        sender_id=current_user.id,
    )
    await effects.record(
        current_user.id,
        "comment.created",
        "comment",
        comment.id,
        {"taskId": str(task.id), "taskKey": task.task_key},
    )
    return ok(data)


@router.put("/{comment_id}")
async def update_comment(
    comment_id: UUID,
    body: CommentIn,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Edit a comment (author or admin); marks it as edited."""
    comment = await comment_service.get_comment_or_404(db, comment_id)
    require(current_user, "comment.edit", AccessTarget(author_id=comment.author_id))
    task = await get_task_or_404(db, comment.task_id)

    newly_mentioned = await comment_service.update_comment(db, comment, body.content)
    await db.commit()

    data = CommentOut.model_validate(comment)
    await effects.to_project(task.project_id, "comment:updated", dump(data))
    await _notify_mentioned(effects, newly_mentioned, task, current_user)
    await effects.record(
        current_user.id, "comment.updated", "comment", comment.id, {"taskId": str(task.id)}
    )
    return ok(data)


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    comment = await comment_service.get_comment_or_404(db, comment_id)
    require(current_user, "comment.delete", AccessTarget(author_id=comment.author_id))
    task_id = comment.task_id
    task = await db.get(Task, task_id)

    await comment_service.delete_comment(db, comment)
    await db.commit()

    await effects.to_project(
        task.project_id, "comment:deleted", {"id": str(comment_id), "taskId": str(task_id)}
    )
    await effects.record(
        current_user.id, "comment.deleted", "comment", comment_id, {"taskId": str(task_id)}
    )
    return ok({})
