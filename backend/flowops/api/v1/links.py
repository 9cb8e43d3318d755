"""Issue link endpoints."""

from datetime import datetime
from typing import Literal
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, Effects, TaskSummary, UserSummary, ok
from flowops.db.session import get_db_session
from flowops.services import issue_links
from flowops.services.access_control import check_task_access

router = APIRouter()
task_router = APIRouter()
logger = structlog.get_logger()

LinkType = Literal[
    "blocks",
    "is_blocked_by",
    "relates_to",
    "duplicates",
    "is_duplicated_by",
    "clones",
    "is_cloned_by",
]


class LinkCreate(APISchema):
    target_task_id: UUID
    link_type: LinkType


class LinkOut(APISchema):
    id: UUID
    link_type: str
    linked_task: TaskSummary
    created_by: UserSummary | None
    created_at: datetime
    direction: str


@task_router.get("/{task_id}/links")
async def list_links(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Links of a task, each read from this task's side."""
    task, _ = await check_task_access(db, task_id, current_user)
    views = await issue_links.list_links(db, task)
    data = [LinkOut.model_validate(v) for v in views]
    return ok(data, count=len(data))


@task_router.post("/{task_id}/links", status_code=status.HTTP_201_CREATED)
async def create_link(
    task_id: UUID,
    body: LinkCreate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    task, project = await check_task_access(db, task_id, current_user, "link.manage")
    link = await issue_links.create_link(db, task, body.target_task_id, body.link_type, current_user)
    await db.commit()

    data = LinkOut.model_validate(issue_links.outgoing_view(link))
    await effects.to_project(
        project.id,
        "task:links_changed",
        {"taskIds": [str(link.source_task_id), str(link.target_task_id)]},
    )
    return ok(data)


@router.delete("/{link_id}")
async def delete_link(
    link_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    link = await issue_links.get_link_or_404(db, link_id)
    _, project = await check_task_access(db, link.source_task_id, current_user, "link.manage")
    task_ids = [str(link.source_task_id), str(link.target_task_id)]

    await issue_links.delete_link(db, link)
    await db.commit()

    await effects.to_project(project.id, "task:links_changed", {"taskIds": task_ids})
    return ok({})
