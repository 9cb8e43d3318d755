"""Time log endpoints.

Every write recomputes the task's ``timeSpent`` and ``remainingEstimate``
in the same transaction, and the task totals are pushed to the project.
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, Effects, UserSummary, ok
from flowops.db.session import get_db_session
from flowops.exceptions import NotFound
from flowops.models.task import Task, TimeLog
from flowops.services import time_tracking
from flowops.services.access_control import (
    AccessTarget,
    check_task_access,
    get_task_or_404,
    require,
)

router = APIRouter()
task_router = APIRouter()
logger = structlog.get_logger()


class TimeLogCreate(APISchema):
    # Minutes; the lower bound is enforced by the service so the message matches
    time_spent: int
    description: str | None = Field(None, max_length=500)
    logged_at: datetime | None = None


class TimeLogUpdate(APISchema):
    time_spent: int | None = None
    description: str | None = Field(None, max_length=500)
    logged_at: datetime | None = None


class TimeLogOut(APISchema):
    id: UUID
    task_id: UUID
    user: UserSummary
    time_spent: int
    description: str | None
    logged_at: datetime
    created_at: datetime


def _task_totals(task: Task) -> dict:
    return {
        "id": str(task.id),
        "timeSpent": task.time_spent,
        "remainingEstimate": task.remaining_estimate,
        "originalEstimate": task.original_estimate,
    }


async def _get_log_or_404(db: AsyncSession, log_id: UUID) -> TimeLog:
    time_log = await db.get(TimeLog, log_id)
    if time_log is None:
        raise NotFound("Time log not found")
    return time_log


@task_router.get("/{task_id}/timelogs")
async def list_time_logs(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    task, _ = await check_task_access(db, task_id, current_user)
    logs, total = await time_tracking.list_time_logs(db, task)
    data = [TimeLogOut.model_validate(log) for log in logs]
    return ok(data, count=len(data), totalTime=total)


@task_router.post("/{task_id}/timelogs", status_code=status.HTTP_201_CREATED)
async def log_time(
    task_id: UUID,
    body: TimeLogCreate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    task, project = await check_task_access(db, task_id, current_user)
    time_log = await time_tracking.create_time_log(
        db,
        task,
        current_user,
        body.time_spent,
        description=body.description,
        logged_at=body.logged_at,
    )
    await db.commit()

    time_log = await db.get(TimeLog, time_log.id, populate_existing=True)
    await effects.to_project(project.id, "task:updated", _task_totals(task))
    return ok(TimeLogOut.model_validate(time_log), task=_task_totals(task))


@router.put("/{log_id}")
async def update_time_log(
    log_id: UUID,
    body: TimeLogUpdate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Edit a time log (its author or an admin)."""
    time_log = await _get_log_or_404(db, log_id)
    require(current_user, "timelog.edit", AccessTarget(user_id=time_log.user_id))
    task = await get_task_or_404(db, time_log.task_id)

    await time_tracking.update_time_log(
        db,
        time_log,
        task,
        minutes=body.time_spent,
        description=body.description,
        logged_at=body.logged_at,
    )
    await db.commit()

    await effects.to_project(task.project_id, "task:updated", _task_totals(task))
    return ok(TimeLogOut.model_validate(time_log), task=_task_totals(task))


@router.delete("/{log_id}")
async def delete_time_log(
    log_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    time_log = await _get_log_or_404(db, log_id)
    require(current_user, "timelog.delete", AccessTarget(user_id=time_log.user_id))
    task = await get_task_or_404(db, time_log.task_id)

    await time_tracking.delete_time_log(db, time_log, task)
    await db.commit()

    await effects.to_project(task.project_id, "task:updated", _task_totals(task))
    return ok({}, task=_task_totals(task))
