"""Sprint lifecycle service.

Sprints move ``planned -> active -> completed``. Completing a sprint fixes
its velocity from the story points of its done tasks; deleting one sends
all of its tasks back to the backlog.
"""

import math
from dataclasses import dataclass
from datetime import date
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.exceptions import Conflict, NotFound, ValidationFailed
from flowops.models.project import Project
from flowops.models.sprint import Sprint
from flowops.models.task import Task
from flowops.models.user import User

logger = structlog.get_logger()

DEFAULT_VELOCITY_WINDOW = 5


@dataclass
class SprintStats:
    tasks: list[Task]
    total_points: int
    completed_points: int
    task_count: int
    completed_count: int


@dataclass
class VelocityReport:
    sprints: list[Sprint]
    avg_velocity: int


def _validate_dates(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationFailed("End date must be after start date")


def _points(tasks: list[Task]) -> int:
    return sum(task.story_points or 0 for task in tasks)


class SprintService:
    """Service for sprint planning and the sprint state machine."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, sprint_id: UUID) -> Sprint:
        sprint = await self.db.get(Sprint, sprint_id)
        if sprint is None:
            raise NotFound("Sprint not found")
        return sprint

    async def list_for_project(self, project: Project) -> list[Sprint]:
        result = await self.db.execute(
            select(Sprint)
            .where(Sprint.project_id == project.id)
            .order_by(Sprint.start_date.desc(), Sprint.created_at.desc())
        )
        return list(result.scalars().all())

    async def _tasks_in(self, sprint: Sprint) -> list[Task]:
        result = await self.db.execute(
            select(Task).where(Task.sprint_id == sprint.id).order_by(Task.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_with_stats(self, sprint: Sprint) -> SprintStats:
        tasks = await self._tasks_in(sprint)
        done = [t for t in tasks if t.status == "done"]
        return SprintStats(
            tasks=tasks,
            total_points=_points(tasks),
            completed_points=_points(done),
            task_count=len(tasks),
            completed_count=len(done),
        )

    async def create(
        self,
        project: Project,
        creator: User,
        name: str,
        start_date: date,
        end_date: date,
        goal: str | None = None,
    ) -> Sprint:
        _validate_dates(start_date, end_date)
        sprint = Sprint(
            name=name,
            goal=goal,
            project_id=project.id,
            start_date=start_date,
            end_date=end_date,
            status="planned",
            created_by_id=creator.id,
        )
        self.db.add(sprint)
        await self.db.flush()

        logger.info("Sprint created", sprint_id=str(sprint.id), project_id=str(project.id))
        return sprint

    async def update(self, sprint: Sprint, changes: dict) -> Sprint:
        """Apply name/goal/date changes; status only moves through start/complete."""
        allowed = {k: v for k, v in changes.items() if k in ("name", "goal", "start_date", "end_date")}
        _validate_dates(
            allowed.get("start_date", sprint.start_date),
            allowed.get("end_date", sprint.end_date),
        )
        for field, value in allowed.items():
            setattr(sprint, field, value)
        await self.db.flush()
        return sprint

    async def start(self, sprint: Sprint) -> Sprint:
        if sprint.status != "planned":
            raise Conflict("Sprint is not in planned status")

        result = await self.db.execute(
            select(Sprint.id).where(
                Sprint.project_id == sprint.project_id,
                Sprint.status == "active",
                Sprint.id != sprint.id,
            )
        )
        if result.first() is not None:
            raise Conflict("Project already has an active sprint")

        sprint.status = "active"
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost a race against another start in the same project
            raise Conflict("Project already has an active sprint") from None

        logger.info("Sprint started", sprint_id=str(sprint.id), project_id=str(sprint.project_id))
        return sprint

    async def complete(self, sprint: Sprint, move_to_backlog: bool = False) -> Sprint:
        if sprint.status != "active":
            raise Conflict("Sprint is not active")

        tasks = await self._tasks_in(sprint)
        completed_points = _points([t for t in tasks if t.status == "done"])

        sprint.status = "completed"
        sprint.completed_points = completed_points
        sprint.velocity = completed_points

        moved = 0
        if move_to_backlog:
            for task in tasks:
                if task.status != "done":
                    task.sprint_id = None
                    moved += 1

        await self.db.flush()
        logger.info(
            "Sprint completed",
            sprint_id=str(sprint.id),
            velocity=sprint.velocity,
            moved_to_backlog=moved,
        )
        return sprint

    async def delete(self, sprint: Sprint) -> None:
        for task in await self._tasks_in(sprint):
            task.sprint_id = None
        await self.db.flush()
        await self.db.delete(sprint)
        await self.db.flush()
        logger.info("Sprint deleted", sprint_id=str(sprint.id))

    async def add_tasks(self, sprint: Sprint, task_ids: list[UUID]) -> int:
        """Move tasks of the sprint's project into the sprint."""
        if not task_ids:
            return 0
        result = await self.db.execute(
            select(Task).where(Task.id.in_(task_ids), Task.project_id == sprint.project_id)
        )
        tasks = list(result.scalars().all())
        for task in tasks:
            task.sprint_id = sprint.id
        await self.db.flush()
        return len(tasks)

    async def remove_tasks(self, sprint: Sprint, task_ids: list[UUID]) -> int:
        """Send tasks currently in the sprint back to the backlog."""
        if not task_ids:
            return 0
        result = await self.db.execute(
            select(Task).where(Task.id.in_(task_ids), Task.sprint_id == sprint.id)
        )
        tasks = list(result.scalars().all())
        for task in tasks:
            task.sprint_id = None
        await self.db.flush()
        return len(tasks)

    async def backlog(self, project: Project) -> tuple[list[Task], int]:
        result = await self.db.execute(
            select(Task)
            .where(Task.project_id == project.id, Task.sprint_id.is_(None))
            .order_by(Task.created_at.desc())
        )
        tasks = list(result.scalars().all())
        return tasks, _points(tasks)

    async def velocity(self, project: Project, limit: int = DEFAULT_VELOCITY_WINDOW) -> VelocityReport:
        """Last ``limit`` completed sprints, oldest first, with their mean velocity."""
        result = await self.db.execute(
            select(Sprint)
            .where(Sprint.project_id == project.id, Sprint.status == "completed")
            .order_by(Sprint.end_date.desc())
            .limit(limit)
        )
        sprints = list(result.scalars().all())
        # half-up rounding
        avg = math.floor(sum(s.velocity for s in sprints) / len(sprints) + 0.5) if sprints else 0
        sprints.reverse()
        return VelocityReport(sprints=sprints, avg_velocity=avg)
