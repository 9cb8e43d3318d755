"""Time-log writes and task time aggregation.

A task's ``time_spent`` is always recomputed from the full set of its time
logs, in the same transaction as the log write, and ``remaining_estimate``
follows as ``max(0, original_estimate - time_spent)``.
"""

from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.exceptions import ValidationFailed
from flowops.models.task import Task, TimeLog
from flowops.models.user import User

logger = structlog.get_logger()

MIN_LOGGED_MINUTES = 1


def remaining_estimate(original_estimate: int | None, time_spent: int | None) -> int:
    return max(0, (original_estimate or 0) - (time_spent or 0))


def validate_minutes(minutes: int | None) -> int:
    if minutes is None or minutes < MIN_LOGGED_MINUTES:
        raise ValidationFailed("Time spent must be at least 1 minute")
    return minutes


async def recompute_task_time(db: AsyncSession, task: Task) -> Task:
    """Set the task's time totals from the sum of its time logs."""
    await db.flush()
    result = await db.execute(
        select(func.coalesce(func.sum(TimeLog.time_spent), 0)).where(TimeLog.task_id == task.id)
    )
    task.time_spent = int(result.scalar_one())
    task.remaining_estimate = remaining_estimate(task.original_estimate, task.time_spent)
    await db.flush()

    logger.debug(
        "task_time_recomputed",
        task_id=str(task.id),
        time_spent=task.time_spent,
        remaining_estimate=task.remaining_estimate,
    )
    return task


async def create_time_log(
    db: AsyncSession,
    task: Task,
    user: User,
    minutes: int,
    description: str | None = None,
    logged_at: datetime | None = None,
) -> TimeLog:
    time_log = TimeLog(
        task_id=task.id,
        user_id=user.id,
        time_spent=validate_minutes(minutes),
        description=description,
    )
    if logged_at is not None:
        time_log.logged_at = logged_at
    db.add(time_log)
    await recompute_task_time(db, task)
    return time_log


async def update_time_log(
    db: AsyncSession,
    time_log: TimeLog,
    task: Task,
    minutes: int | None = None,
    description: str | None = None,
    logged_at: datetime | None = None,
) -> TimeLog:
    if minutes is not None:
        time_log.time_spent = validate_minutes(minutes)
    if description is not None:
        time_log.description = description
    if logged_at is not None:
        time_log.logged_at = logged_at
    await recompute_task_time(db, task)
    return time_log


async def delete_time_log(db: AsyncSession, time_log: TimeLog, task: Task) -> None:
    await db.delete(time_log)
    await recompute_task_time(db, task)


async def list_time_logs(db: AsyncSession, task: Task) -> tuple[list[TimeLog], int]:
    """Logs newest first, with their total in minutes."""
    result = await db.execute(
        select(TimeLog).where(TimeLog.task_id == task.id).order_by(TimeLog.logged_at.desc())
    )
    logs = list(result.scalars().all())
    return logs, sum(log.time_spent for log in logs)
