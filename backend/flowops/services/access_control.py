"""Authorization policy.

Every permission decision goes through ``authorize(actor, operation, target)``.
The rules live in one table: each operation maps to the relationships that
grant it, and an admin is allowed everything before the table is consulted.

    target = AccessTarget.for_task(task, project)
    require(current_user, "task.update", target)
"""

from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.exceptions import NotFound, Unauthorized
from flowops.models.project import Project
from flowops.models.task import Task
from flowops.models.team import Team
from flowops.models.user import User

logger = structlog.get_logger()


@dataclass(frozen=True)
class AccessTarget:
    """The relationships of a target entity that the rules look at."""

    owner_id: UUID | None = None
    member_ids: frozenset[UUID] = frozenset()
    assignee_id: UUID | None = None
    reporter_id: UUID | None = None
    lead_id: UUID | None = None
    author_id: UUID | None = None
    user_id: UUID | None = None
    uploader_id: UUID | None = None

    @classmethod
    def for_project(cls, project: Project) -> "AccessTarget":
        return cls(owner_id=project.owner_id, member_ids=project.member_ids)

    @classmethod
    def for_task(cls, task: Task, project: Project) -> "AccessTarget":
        return cls(
            owner_id=project.owner_id,
            member_ids=project.member_ids,
            assignee_id=task.assignee_id,
            reporter_id=task.reporter_id,
        )

    @classmethod
    def for_team(cls, team: Team, project: Project) -> "AccessTarget":
        return cls(
            owner_id=project.owner_id,
            member_ids=project.member_ids,
            lead_id=team.lead_id,
        )


Rule = Callable[[User, AccessTarget], bool]


def is_owner(actor: User, target: AccessTarget) -> bool:
    return target.owner_id is not None and actor.id == target.owner_id


def is_member(actor: User, target: AccessTarget) -> bool:
    return actor.id in target.member_ids


def is_assignee(actor: User, target: AccessTarget) -> bool:
    return target.assignee_id is not None and actor.id == target.assignee_id


def is_reporter(actor: User, target: AccessTarget) -> bool:
    return target.reporter_id is not None and actor.id == target.reporter_id


def is_team_lead(actor: User, target: AccessTarget) -> bool:
    return target.lead_id is not None and actor.id == target.lead_id


def is_author(actor: User, target: AccessTarget) -> bool:
    return target.author_id is not None and actor.id == target.author_id


def is_log_owner(actor: User, target: AccessTarget) -> bool:
    return target.user_id is not None and actor.id == target.user_id


def is_uploader(actor: User, target: AccessTarget) -> bool:
    return target.uploader_id is not None and actor.id == target.uploader_id


def is_managing_member(actor: User, target: AccessTarget) -> bool:
    """A project manager by global role who also belongs to the project."""
    return actor.role == "project_manager" and is_member(actor, target)


# operation -> rules, any of which grants access (admins bypass the table)
POLICY: dict[str, tuple[Rule, ...]] = {
    "project.read": (is_owner, is_member),
    "project.update": (is_owner,),
    "project.delete": (is_owner,),
    "project.manage_members": (is_owner,),
    "task.create": (is_owner, is_member),
    "task.read": (is_owner, is_member),
    "task.update": (is_owner, is_assignee, is_reporter),
    "task.delete": (is_owner,),
    "team.create": (is_owner,),
    "team.update": (is_owner, is_team_lead),
    "team.delete": (is_owner,),
    "team.manage_members": (is_owner, is_team_lead),
    "comment.edit": (is_author,),
    "comment.delete": (is_author,),
    "timelog.edit": (is_log_owner,),
    "timelog.delete": (is_log_owner,),
    "attachment.delete": (is_uploader,),
    "sprint.read": (is_owner, is_member),
    "sprint.manage": (is_owner, is_managing_member),
    "label.manage": (is_owner, is_member),
    "link.manage": (is_owner, is_member),
}

DENIAL_MESSAGES: dict[str, str] = {
    "project.read": "Not authorized to access this project",
    "project.update": "Not authorized to update this project",
    "project.delete": "Not authorized to delete this project",
    "project.manage_members": "Not authorized to manage project members",
    "task.create": "Not authorized to create tasks in this project",
    "task.read": "Not authorized to access this task",
    "task.update": "Not authorized to update this task",
    "task.delete": "Not authorized to delete this task",
    "team.create": "Not authorized to create teams in this project",
    "team.update": "Not authorized to update this team",
    "team.delete": "Not authorized to delete this team",
    "team.manage_members": "Not authorized to manage team members",
    "comment.edit": "Not authorized to update this comment",
    "comment.delete": "Not authorized to delete this comment",
    "timelog.edit": "Not authorized to update this time log",
    "timelog.delete": "Not authorized to delete this time log",
    "attachment.delete": "Not authorized to delete this attachment",
    "sprint.read": "Not authorized to access this project",
    "sprint.manage": "Not authorized to manage sprints in this project",
    "label.manage": "Not authorized to manage labels in this project",
    "link.manage": "Not authorized to manage links in this project",
}


def authorize(actor: User, operation: str, target: AccessTarget) -> bool:
    """Return whether ``actor`` may perform ``operation`` on ``target``."""
    try:
        rules = POLICY[operation]
    except KeyError:
        raise ValueError(f"Unknown operation: {operation}") from None

    if actor.is_admin:
        return True
    return any(rule(actor, target) for rule in rules)


def require(actor: User, operation: str, target: AccessTarget) -> None:
    """Raise ``Unauthorized`` unless ``actor`` may perform ``operation``."""
    if not authorize(actor, operation, target):
        logger.info(
            "access_denied",
            user_id=str(actor.id),
            operation=operation,
        )
        raise Unauthorized(DENIAL_MESSAGES.get(operation))


async def get_project_or_404(db: AsyncSession, project_id: UUID) -> Project:
    project = await db.get(Project, project_id)
    if project is None:
        raise NotFound("Project not found")
    return project


async def get_task_or_404(db: AsyncSession, task_id: UUID) -> Task:
    task = await db.get(Task, task_id)
    if task is None:
        raise NotFound("Task not found")
    return task


async def check_project_access(
    db: AsyncSession,
    project_id: UUID,
    actor: User,
    operation: str = "project.read",
) -> Project:
    """Load a project and check ``operation`` against it.

    Raises:
        NotFound: the project does not exist
        Unauthorized: the actor lacks the relationship the operation needs
    """
    project = await get_project_or_404(db, project_id)
    require(actor, operation, AccessTarget.for_project(project))
    return project


async def check_task_access(
    db: AsyncSession,
    task_id: UUID,
    actor: User,
    operation: str = "task.read",
) -> tuple[Task, Project]:
    """Load a task with its project and check ``operation`` against them."""
    task = await get_task_or_404(db, task_id)
    project = await get_project_or_404(db, task.project_id)
    require(actor, operation, AccessTarget.for_task(task, project))
    return task, project
