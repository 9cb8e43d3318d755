"""Global search across tasks, projects and users.

Matching is a case-insensitive substring match. Tasks and projects are
limited to the projects the actor can read; admins search everything.
"""

from dataclasses import dataclass, field

import structlog
from sqlalchemy import Select, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from flowops.config import get_settings
from flowops.exceptions import ValidationFailed
from flowops.models.project import Project, ProjectMember
from flowops.models.task import Task
from flowops.models.user import User

logger = structlog.get_logger()

SEARCH_TYPES = ("tasks", "projects", "users")


@dataclass
class SearchResults:
    tasks: list[Task] = field(default_factory=list)
    projects: list[Project] = field(default_factory=list)
    users: list[User] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.tasks) + len(self.projects) + len(self.users)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def readable_project_ids(actor: User) -> Select:
    """Ids of the projects ``actor`` owns or belongs to."""
    member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == actor.id)
    return select(Project.id).where(or_(Project.owner_id == actor.id, Project.id.in_(member_of)))


async def search(
    db: AsyncSession,
    actor: User,
    query_text: str | None,
    search_type: str | None = None,
    limit: int | None = None,
) -> SearchResults:
    settings = get_settings()
    query_text = (query_text or "").strip()
    if len(query_text) < settings.search_min_query_length:
        raise ValidationFailed(
            f"Search query must be at least {settings.search_min_query_length} characters"
        )
    if search_type is not None and search_type not in SEARCH_TYPES:
        raise ValidationFailed(f"Search type must be one of {', '.join(SEARCH_TYPES)}")

    limit = limit or settings.search_default_limit
    pattern = _like_pattern(query_text)
    types = [search_type] if search_type else list(SEARCH_TYPES)
    results = SearchResults()

    if "tasks" in types:
        task_query = select(Task).options(selectinload(Task.project)).where(
            or_(
                Task.title.ilike(pattern, escape="\\"),
                Task.description.ilike(pattern, escape="\\"),
                Task.task_key.ilike(pattern, escape="\\"),
            )
        )
        if not actor.is_admin:
            task_query = task_query.where(Task.project_id.in_(readable_project_ids(actor)))
        task_result = await db.execute(task_query.order_by(Task.created_at.desc()).limit(limit))
        results.tasks = list(task_result.scalars().unique())

    if "projects" in types:
        project_query = select(Project).where(
            or_(
                Project.name.ilike(pattern, escape="\\"),
                Project.description.ilike(pattern, escape="\\"),
                Project.key.ilike(pattern, escape="\\"),
            )
        )
        if not actor.is_admin:
            project_query = project_query.where(Project.id.in_(readable_project_ids(actor)))
        project_result = await db.execute(project_query.order_by(Project.name).limit(limit))
        results.projects = list(project_result.scalars().unique())

    if "users" in types:
        user_result = await db.execute(
            select(User)
            .where(
                User.is_active.is_(True),
                or_(
                    User.name.ilike(pattern, escape="\\"),
                    User.email.ilike(pattern, escape="\\"),
                ),
            )
            .order_by(User.name)
            .limit(limit)
        )
        results.users = list(user_result.scalars().all())

    logger.debug("search_completed", query=query_text, types=types, total=results.total)
    return results
