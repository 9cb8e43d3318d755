"""Global search endpoint."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, ok
from flowops.db.session import get_db_session
from flowops.services.search import search as run_search

router = APIRouter()


class ProjectRef(APISchema):
    id: UUID
    name: str
    key: str


class TaskHit(APISchema):
    id: UUID
    title: str
    task_key: str
    status: str
    priority: str
    type: str
    project: ProjectRef


class ProjectHit(ProjectRef):
    description: str
    status: str


class UserHit(APISchema):
    id: UUID
    name: str
    email: str
    role: str


class SearchOut(APISchema):
    tasks: list[TaskHit]
    projects: list[ProjectHit]
    users: list[UserHit]


@router.get("")
async def search(
    current_user: CurrentUser,
    q: str | None = None,
    search_type: str | None = Query(None, alias="type"),
    limit: int | None = Query(None, ge=1, le=50),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Search tasks, projects and users by substring."""
    results = await run_search(db, current_user, q, search_type, limit)
    return ok(SearchOut.model_validate(results), count=results.total)
