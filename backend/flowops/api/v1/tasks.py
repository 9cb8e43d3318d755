"""Task endpoints."""

from datetime import date
from typing import Annotated, Literal
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import AfterValidator, Field
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, Effects, TaskOut, dump, ok
from flowops.db.session import get_db_session
from flowops.models.task import STORY_POINTS, Task
from flowops.services import cascade
from flowops.services import tasks as task_service
from flowops.services.access_control import check_project_access, check_task_access
from flowops.services.storage import remove_file

router = APIRouter()
project_router = APIRouter()
logger = structlog.get_logger()

TaskType = Literal["task", "bug", "story", "epic", "subtask"]
TaskStatus = Literal["todo", "doing", "review", "done"]
TaskPriority = Literal["lowest", "low", "medium", "high", "highest"]


def _check_story_points(value: int | None) -> int | None:
    if value is not None and value not in STORY_POINTS:
        raise ValueError(f"Story points must be one of {', '.join(map(str, STORY_POINTS))}")
    return value


StoryPoints = Annotated[int, AfterValidator(_check_story_points)]


class TaskCreate(APISchema):
    """Create a new task."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    type: TaskType = "task"
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    story_points: StoryPoints = 0
    original_estimate: int = Field(0, ge=0)
    due_date: date | None = None
    assignee: UUID | None = None
    labels: list[UUID] = Field(default_factory=list)
    parent: UUID | None = None
    sprint: UUID | None = None


class TaskUpdate(APISchema):
    """Update a task. Omitted fields are left alone; null clears a reference."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    type: TaskType | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    story_points: StoryPoints | None = None
    original_estimate: int | None = Field(None, ge=0)
    due_date: date | None = None
    assignee: UUID | None = None
    labels: list[UUID] | None = None
    parent: UUID | None = None
    sprint: UUID | None = None


# Request field -> Task attribute, for the references
_REFERENCE_FIELDS = {
    "assignee": "assignee_id",
    "labels": "label_ids",
    "parent": "parent_id",
    "sprint": "sprint_id",
}
# Clearing these to null is meaningful; the rest ignore null
_NULLABLE_FIELDS = {"description", "due_date", "assignee", "parent", "sprint"}


async def _reload(db: AsyncSession, task_id: UUID) -> Task:
    return await db.get(Task, task_id, populate_existing=True)


@project_router.get("/{project_id}/tasks")
async def list_tasks(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    status_filter: TaskStatus | None = Query(None, alias="status"),
    assignee: UUID | None = None,
    sprint: UUID | None = None,
    task_type: TaskType | None = Query(None, alias="type"),
) -> dict:
    """List tasks with filtering, newest first."""
    project = await check_project_access(db, project_id, current_user)
    tasks = await task_service.list_tasks(
        db,
        project,
        status=status_filter,
        assignee_id=assignee,
        sprint_id=sprint,
        task_type=task_type,
    )
    data = [TaskOut.model_validate(t) for t in tasks]
    return ok(data, count=len(data))


@project_router.post("/{project_id}/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(
    project_id: UUID,
    body: TaskCreate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Create a new task."""
    project = await check_project_access(db, project_id, current_user, "task.create")

    task = await task_service.create_task(
        db,
        project,
        current_user,
        title=body.title.strip(),
        description=body.description,
        type=body.type,
        status=body.status,
        priority=body.priority,
        story_points=body.story_points,
        original_estimate=body.original_estimate,
        due_date=body.due_date,
        assignee_id=body.assignee,
        label_ids=body.labels,
        parent_id=body.parent,
        sprint_id=body.sprint,
    )
    await db.commit()

    task = await _reload(db, task.id)
    data = TaskOut.model_validate(task)

    await effects.to_project(project.id, "task:created", dump(data))
    if task.assignee_id:
        await effects.notifications.notify(
            task.assignee_id,
            "task_assigned",
            f"You were assigned to {task.task_key}",
            f"{current_user.name} assigned you to '{task.title}'",
            link=f"/tasks/{task.id}",
            related_task_id=task.id,
            related_project_id=project.id,
            sender_id=current_user.id,
        )
    await effects.record(
        current_user.id,
        "task.created",
        "task",
        task.id,
        {"taskKey": task.task_key, "title": task.title, "projectId": str(project.id)},
    )
    return ok(data)


@router.get("/{task_id}")
async def get_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    task, _ = await check_task_access(db, task_id, current_user)
    return ok(TaskOut.model_validate(task))


@router.put("/{task_id}")
async def update_task(
    task_id: UUID,
    body: TaskUpdate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Update a task (project owner, assignee, reporter or admin)."""
    task, project = await check_task_access(db, task_id, current_user, "task.update")

    changes = {
        _REFERENCE_FIELDS.get(name, name): value
        for name, value in body.model_dump(exclude_unset=True).items()
        if value is not None or name in _NULLABLE_FIELDS
    }
    if "title" in changes:
        changes["title"] = changes["title"].strip()

    result = await task_service.update_task(db, task, project, changes)
    await db.commit()

    task = await _reload(db, task.id)
    data = TaskOut.model_validate(task)

    await effects.to_project(project.id, "task:updated", dump(data))
    if result.new_assignee_id:
        await effects.notifications.notify(
            result.new_assignee_id,
            "task_assigned",
            f"You were assigned to {task.task_key}",
            f"{current_user.name} assigned you to '{task.title}'",
            link=f"/tasks/{task.id}",
            related_task_id=task.id,
            related_project_id=project.id,
            sender_id=current_user.id,
        )
    if result.status_changed:
        await effects.notifications.notify_many(
            [*task.watcher_ids, task.assignee_id],
            "task_status_changed",
            f"{task.task_key} moved to {task.status}",
            f"'{task.title}' moved from {result.old_status} to {task.status}",
            link=f"/tasks/{task.id}",
            related_task_id=task.id,
            related_project_id=project.id,
            sender_id=current_user.id,
        )
    await effects.record(
        current_user.id,
        "task.updated",
        "task",
        task.id,
        {"taskKey": task.task_key, "fields": result.fields},
    )
    return ok(data)


@router.delete("/{task_id}")
async def delete_task(
    task_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Delete a task with its comments, time logs, attachments and links."""
    task, project = await check_task_access(db, task_id, current_user, "task.delete")
    task_key = task.task_key

    paths = await cascade.delete_task(db, task)
    await db.commit()

    for path in paths:
        remove_file(path)
    await effects.to_project(project.id, "task:deleted", {"id": str(task_id), "taskKey": task_key})
    await effects.record(
        current_user.id, "task.deleted", "task", task_id, {"taskKey": task_key}
    )
    return ok({})


@router.post("/{task_id}/watch")
async def watch_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    task, _ = await check_task_access(db, task_id, current_user)
    await task_service.watch(db, task, current_user)
    await db.commit()
    return ok(TaskOut.model_validate(task))


@router.delete("/{task_id}/watch")
async def unwatch_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    task, _ = await check_task_access(db, task_id, current_user)
    await task_service.unwatch(db, task, current_user)
    await db.commit()
    return ok(TaskOut.model_validate(task))
