"""Task creation and updates.

References a task carries (assignee, labels, parent, sprint) must belong to
the task's project. The task key is reserved from the project counter in
the same transaction that inserts the task.
"""

from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.exceptions import Conflict, NotFound, ValidationFailed
from flowops.models.project import Label, Project
from flowops.models.sprint import Sprint
from flowops.models.task import Task
from flowops.models.user import User
from flowops.services.keys import next_task_key
from flowops.services.time_tracking import remaining_estimate

logger = structlog.get_logger()


@dataclass
class TaskChanges:
    """What an update changed, for notifications and activity."""

    fields: list[str] = field(default_factory=list)
    old_status: str | None = None
    new_assignee_id: UUID | None = None

    @property
    def status_changed(self) -> bool:
        return self.old_status is not None


async def _project_user(db: AsyncSession, project: Project, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("Assignee not found")
    if user.id != project.owner_id and not project.has_member(user.id):
        raise ValidationFailed("Assignee must be a member of the project")
    return user


async def _project_labels(db: AsyncSession, project: Project, label_ids: list[UUID]) -> list[Label]:
    ids = list(dict.fromkeys(label_ids))
    if not ids:
        return []
    result = await db.execute(
        select(Label).where(Label.id.in_(ids), Label.project_id == project.id)
    )
    labels = list(result.scalars().all())
    if len(labels) != len(ids):
        raise ValidationFailed("Labels must belong to the task's project")
    return labels


async def _project_parent(
    db: AsyncSession, project: Project, parent_id: UUID, task: Task | None = None
) -> Task:
    if task is not None and parent_id == task.id:
        raise ValidationFailed("A task cannot be its own parent")
    parent = await db.get(Task, parent_id)
    if parent is None:
        raise NotFound("Parent task not found")
    if parent.project_id != project.id:
        raise ValidationFailed("Parent task must belong to the same project")
    if task is not None:
        await _ensure_not_descendant(db, parent, task)
    return parent


async def _ensure_not_descendant(db: AsyncSession, parent: Task, task: Task) -> None:
    """Reject ``parent`` when it sits anywhere below ``task`` in the hierarchy."""
    seen = {parent.id}
    ancestor_id = parent.parent_id
    while ancestor_id is not None and ancestor_id not in seen:
        if ancestor_id == task.id:
            raise ValidationFailed("A task cannot be moved under one of its subtasks")
        seen.add(ancestor_id)
        ancestor_id = await db.scalar(select(Task.parent_id).where(Task.id == ancestor_id))


async def _project_sprint(db: AsyncSession, project: Project, sprint_id: UUID) -> Sprint:
    sprint = await db.get(Sprint, sprint_id)
    if sprint is None:
        raise NotFound("Sprint not found")
    if sprint.project_id != project.id:
        raise ValidationFailed("Sprint must belong to the same project")
    return sprint


async def create_task(
    db: AsyncSession,
    project: Project,
    reporter: User,
    *,
    title: str,
    description: str | None = None,
    type: str = "task",
    status: str = "todo",
    priority: str = "medium",
    story_points: int = 0,
    original_estimate: int = 0,
    due_date: date | None = None,
    assignee_id: UUID | None = None,
    label_ids: list[UUID] | None = None,
    parent_id: UUID | None = None,
    sprint_id: UUID | None = None,
) -> Task:
    task = Task(
        title=title,
        description=description,
        type=type,
        status=status,
        priority=priority,
        story_points=story_points,
        original_estimate=original_estimate,
        time_spent=0,
        remaining_estimate=remaining_estimate(original_estimate, 0),
        due_date=due_date,
        project_id=project.id,
        reporter_id=reporter.id,
    )
    if assignee_id is not None:
        task.assignee_id = (await _project_user(db, project, assignee_id)).id
    if parent_id is not None:
        task.parent_id = (await _project_parent(db, project, parent_id)).id
    if sprint_id is not None:
        task.sprint_id = (await _project_sprint(db, project, sprint_id)).id
    task.labels = await _project_labels(db, project, label_ids or [])
    task.watchers = []

    task.task_key = await next_task_key(db, project)
    db.add(task)
    try:
        await db.flush()
    except IntegrityError:
        raise Conflict("Task key already exists in this project") from None

    logger.info(
        "Task created",
        task_id=str(task.id),
        task_key=task.task_key,
        project_id=str(project.id),
    )
    return task


async def update_task(db: AsyncSession, task: Task, project: Project, changes: dict) -> TaskChanges:
    """Apply a partial update; ``changes`` holds only the fields sent."""
    result = TaskChanges(fields=sorted(changes))

    if "assignee_id" in changes:
        assignee_id = changes.pop("assignee_id")
        if assignee_id is not None:
            assignee_id = (await _project_user(db, project, assignee_id)).id
        if assignee_id != task.assignee_id:
            result.new_assignee_id = assignee_id
        task.assignee_id = assignee_id

    if "label_ids" in changes:
        task.labels = await _project_labels(db, project, changes.pop("label_ids") or [])

    if "parent_id" in changes:
        parent_id = changes.pop("parent_id")
        task.parent_id = (
            (await _project_parent(db, project, parent_id, task)).id if parent_id else None
        )

    if "sprint_id" in changes:
        sprint_id = changes.pop("sprint_id")
        task.sprint_id = (await _project_sprint(db, project, sprint_id)).id if sprint_id else None

    if "status" in changes and changes["status"] != task.status:
        result.old_status = task.status

    for name, value in changes.items():
        setattr(task, name, value)

    if "original_estimate" in changes:
        task.remaining_estimate = remaining_estimate(task.original_estimate, task.time_spent)

    await db.flush()
    logger.info("Task updated", task_id=str(task.id), fields=result.fields)
    return result


async def watch(db: AsyncSession, task: Task, user: User) -> bool:
    """Add ``user`` to the watchers; returns whether it changed."""
    if user.id in task.watcher_ids:
        return False
    task.watchers.append(user)
    await db.flush()
    return True


async def unwatch(db: AsyncSession, task: Task, user: User) -> bool:
    """Remove ``user`` from the watchers; returns whether it changed."""
    watcher = next((w for w in task.watchers if w.id == user.id), None)
    if watcher is None:
        return False
    task.watchers.remove(watcher)
    await db.flush()
    return True


async def list_tasks(
    db: AsyncSession,
    project: Project,
    status: str | None = None,
    assignee_id: UUID | None = None,
    sprint_id: UUID | None = None,
    task_type: str | None = None,
) -> list[Task]:
    query = select(Task).where(Task.project_id == project.id)
    if status:
        query = query.where(Task.status == status)
    if assignee_id:
        query = query.where(Task.assignee_id == assignee_id)
    if sprint_id:
        query = query.where(Task.sprint_id == sprint_id)
    if task_type:
        query = query.where(Task.type == task_type)

    result = await db.execute(query.order_by(Task.created_at.desc()))
    return list(result.scalars().unique())
