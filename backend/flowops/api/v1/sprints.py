"""Sprint endpoints: planning, the sprint state machine, backlog and velocity."""

from datetime import date, datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, Effects, TaskOut, UserSummary, dump, ok
from flowops.db.session import get_db_session
from flowops.models.project import Project
from flowops.models.sprint import Sprint
from flowops.services.access_control import check_project_access
from flowops.services.sprints import DEFAULT_VELOCITY_WINDOW, SprintService

router = APIRouter()
project_router = APIRouter()
logger = structlog.get_logger()


class SprintCreate(APISchema):
    name: str = Field(..., min_length=1, max_length=100)
    goal: str | None = Field(None, max_length=500)
    start_date: date
    end_date: date


class SprintUpdate(APISchema):
    name: str | None = Field(None, min_length=1, max_length=100)
    goal: str | None = Field(None, max_length=500)
    start_date: date | None = None
    end_date: date | None = None


class SprintComplete(APISchema):
    move_to_backlog: bool = False


class TaskBatch(APISchema):
    task_ids: list[UUID]

    @model_validator(mode="before")
    @classmethod
    def _require_ids(cls, values):
        if not isinstance(values, dict) or not isinstance(
            values.get("taskIds", values.get("task_ids")), list
        ):
            raise ValueError("taskIds array is required")
        return values


class SprintOut(APISchema):
    id: UUID
    name: str
    goal: str | None
    project_id: UUID
    status: str
    start_date: date
    end_date: date
    velocity: int
    completed_points: int
    created_by: UserSummary | None
    created_at: datetime
    updated_at: datetime


class SprintDetail(SprintOut):
    tasks: list[TaskOut]
    total_points: int
    task_count: int
    completed_count: int


class VelocityPoint(APISchema):
    name: str
    velocity: int
    start_date: date
    end_date: date


async def _sprint_with_project(
    db: AsyncSession, sprint_id: UUID, current_user, operation: str
) -> tuple[SprintService, Sprint, Project]:
    service = SprintService(db)
    sprint = await service.get(sprint_id)
    project = await check_project_access(db, sprint.project_id, current_user, operation)
    return service, sprint, project


@project_router.get("/{project_id}/sprints")
async def list_sprints(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user, "sprint.read")
    sprints = await SprintService(db).list_for_project(project)
    data = [SprintOut.model_validate(s) for s in sprints]
    return ok(data, count=len(data))


@project_router.post("/{project_id}/sprints", status_code=status.HTTP_201_CREATED)
async def create_sprint(
    project_id: UUID,
    body: SprintCreate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user, "sprint.manage")
    sprint = await SprintService(db).create(
        project,
        current_user,
        name=body.name.strip(),
        start_date=body.start_date,
        end_date=body.end_date,
        goal=body.goal,
    )
    await db.commit()

    sprint = await db.get(Sprint, sprint.id, populate_existing=True)
    data = SprintOut.model_validate(sprint)
    await effects.to_project(project.id, "sprint:created", dump(data))
    await effects.record(
        current_user.id, "sprint.created", "sprint", sprint.id, {"name": sprint.name}
    )
    return ok(data)


@project_router.get("/{project_id}/backlog")
async def get_backlog(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Tasks of the project that are in no sprint."""
    project = await check_project_access(db, project_id, current_user, "sprint.read")
    tasks, total_points = await SprintService(db).backlog(project)
    data = [TaskOut.model_validate(t) for t in tasks]
    return ok(data, count=len(data), totalPoints=total_points)


@project_router.get("/{project_id}/velocity")
async def get_velocity(
    project_id: UUID,
    current_user: CurrentUser,
    limit: int = Query(DEFAULT_VELOCITY_WINDOW, ge=1, le=50),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Velocity of the last ``limit`` completed sprints, oldest first."""
    project = await check_project_access(db, project_id, current_user, "sprint.read")
    report = await SprintService(db).velocity(project, limit)
    data = [VelocityPoint.model_validate(s) for s in report.sprints]
    return ok(data, avgVelocity=report.avg_velocity)


@router.get("/{sprint_id}")
async def get_sprint(
    sprint_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Sprint with its tasks and point totals."""
    service, sprint, _ = await _sprint_with_project(db, sprint_id, current_user, "sprint.read")
    stats = await service.get_with_stats(sprint)

    data = SprintDetail(
        **SprintOut.model_validate(sprint).model_dump(),
        tasks=[TaskOut.model_validate(t) for t in stats.tasks],
        total_points=stats.total_points,
        task_count=stats.task_count,
        completed_count=stats.completed_count,
    )
    # Live figure for an active sprint; the stored value is fixed at completion
    if sprint.status != "completed":
        data.completed_points = stats.completed_points
    return ok(data)


@router.put("/{sprint_id}")
async def update_sprint(
    sprint_id: UUID,
    body: SprintUpdate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    service, sprint, project = await _sprint_with_project(
        db, sprint_id, current_user, "sprint.manage"
    )
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name") is not None:
        changes["name"] = changes["name"].strip()
    changes = {k: v for k, v in changes.items() if v is not None or k == "goal"}

    await service.update(sprint, changes)
    await db.commit()

    data = SprintOut.model_validate(sprint)
    await effects.to_project(project.id, "sprint:updated", dump(data))
    await effects.record(
        current_user.id, "sprint.updated", "sprint", sprint.id, {"fields": sorted(changes)}
    )
    return ok(data)


@router.delete("/{sprint_id}")
async def delete_sprint(
    sprint_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Delete a sprint; its tasks go back to the backlog."""
    service, sprint, project = await _sprint_with_project(
        db, sprint_id, current_user, "sprint.manage"
    )
    name = sprint.name
    await service.delete(sprint)
    await db.commit()

    await effects.to_project(project.id, "sprint:deleted", {"id": str(sprint_id)})
    await effects.record(current_user.id, "sprint.deleted", "sprint", sprint_id, {"name": name})
    return ok({})


@router.put("/{sprint_id}/start")
async def start_sprint(
    sprint_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    service, sprint, project = await _sprint_with_project(
        db, sprint_id, current_user, "sprint.manage"
    )
    await service.start(sprint)
    await db.commit()

    data = SprintOut.model_validate(sprint)
    await effects.to_project(project.id, "sprint:started", dump(data))
    await effects.notifications.notify_many(
        [project.owner_id, *project.member_ids],
        "sprint_started",
        f"Sprint started: {sprint.name}",
        f"{current_user.name} started '{sprint.name}' in {project.name}",
        link=f"/projects/{project.id}/sprints/{sprint.id}",
        related_project_id=project.id,
        sender_id=current_user.id,
    )
    await effects.record(current_user.id, "sprint.started", "sprint", sprint.id, {"name": sprint.name})
    return ok(data)


@router.put("/{sprint_id}/complete")
async def complete_sprint(
    sprint_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    body: SprintComplete | None = None,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Close an active sprint and fix its velocity."""
    service, sprint, project = await _sprint_with_project(
        db, sprint_id, current_user, "sprint.manage"
    )
    move_to_backlog = body.move_to_backlog if body else False
    await service.complete(sprint, move_to_backlog=move_to_backlog)
    await db.commit()

    data = SprintOut.model_validate(sprint)
    await effects.to_project(project.id, "sprint:completed", dump(data))
    await effects.notifications.notify_many(
        [project.owner_id, *project.member_ids],
        "sprint_completed",
        f"Sprint completed: {sprint.name}",
        f"'{sprint.name}' was completed with a velocity of {sprint.velocity}",
        link=f"/projects/{project.id}/sprints/{sprint.id}",
        related_project_id=project.id,
        sender_id=current_user.id,
    )
    await effects.record(
        current_user.id,
        "sprint.completed",
        "sprint",
        sprint.id,
        {"name": sprint.name, "velocity": sprint.velocity, "moveToBacklog": move_to_backlog},
    )
    return ok(data)


@router.post("/{sprint_id}/tasks")
async def add_tasks_to_sprint(
    sprint_id: UUID,
    body: TaskBatch,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    service, sprint, project = await _sprint_with_project(
        db, sprint_id, current_user, "sprint.manage"
    )
    moved = await service.add_tasks(sprint, body.task_ids)
    await db.commit()

    await effects.to_project(
        project.id,
        "sprint:tasks_moved",
        {"sprintId": str(sprint.id), "taskIds": [str(t) for t in body.task_ids]},
    )
    return ok(message=f"{moved} tasks moved to sprint", count=moved)


@router.delete("/{sprint_id}/tasks")
async def remove_tasks_from_sprint(
    sprint_id: UUID,
    body: TaskBatch,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    service, sprint, project = await _sprint_with_project(
        db, sprint_id, current_user, "sprint.manage"
    )
    moved = await service.remove_tasks(sprint, body.task_ids)
    await db.commit()

    await effects.to_project(
        project.id,
        "sprint:tasks_moved",
        {"sprintId": None, "taskIds": [str(t) for t in body.task_ids]},
    )
    return ok(message=f"{moved} tasks moved to backlog", count=moved)
