"""Label endpoints. Labels are scoped to a project and unique by name there."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, Effects, UserSummary, dump, ok
from flowops.db.session import get_db_session
from flowops.exceptions import Conflict, NotFound
from flowops.models.project import Label
from flowops.models.task import task_labels
from flowops.services.access_control import check_project_access

router = APIRouter()
project_router = APIRouter()
logger = structlog.get_logger()

DUPLICATE_LABEL = "Label with this name already exists in project"


class LabelCreate(APISchema):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field("#6c757d", pattern=r"^#[0-9A-Fa-f]{6}$")


class LabelUpdate(APISchema):
    name: str | None = Field(None, min_length=1, max_length=50)
    color: str | None = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")


class LabelDetail(APISchema):
    id: UUID
    name: str
    color: str
    project_id: UUID
    created_by: UserSummary | None
    created_at: datetime


async def _get_label_or_404(db: AsyncSession, label_id: UUID) -> Label:
    label = await db.get(Label, label_id)
    if label is None:
        raise NotFound("Label not found")
    return label


async def _flush_unique(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError:
        raise Conflict(DUPLICATE_LABEL) from None


@project_router.get("/{project_id}/labels")
async def list_labels(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user)
    result = await db.execute(
        select(Label).where(Label.project_id == project.id).order_by(Label.name)
    )
    data = [LabelDetail.model_validate(label) for label in result.scalars().unique()]
    return ok(data, count=len(data))


@project_router.post("/{project_id}/labels", status_code=status.HTTP_201_CREATED)
async def create_label(
    project_id: UUID,
    body: LabelCreate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user, "label.manage")
    name = body.name.strip()

    existing = await db.execute(
        select(Label.id).where(Label.project_id == project.id, Label.name == name)
    )
    if existing.first() is not None:
        raise Conflict(DUPLICATE_LABEL)

    label = Label(
        name=name,
        color=body.color,
        project_id=project.id,
        created_by_id=current_user.id,
        created_by=current_user,
    )
    db.add(label)
    await _flush_unique(db)
    await db.commit()

    data = LabelDetail.model_validate(label)
    await effects.to_project(project.id, "label:created", dump(data))
    return ok(data)


@router.put("/{label_id}")
async def update_label(
    label_id: UUID,
    body: LabelUpdate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    label = await _get_label_or_404(db, label_id)
    await check_project_access(db, label.project_id, current_user, "label.manage")

    if body.name is not None:
        label.name = body.name.strip()
    if body.color is not None:
        label.color = body.color
    await _flush_unique(db)
    await db.commit()

    data = LabelDetail.model_validate(label)
    await effects.to_project(label.project_id, "label:updated", dump(data))
    return ok(data)


@router.delete("/{label_id}")
async def delete_label(
    label_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Delete a label and take it off every task."""
    label = await _get_label_or_404(db, label_id)
    project = await check_project_access(db, label.project_id, current_user, "label.manage")

    await db.execute(task_labels.delete().where(task_labels.c.label_id == label.id))
    await db.delete(label)
    await db.commit()

    logger.info("Label deleted", label_id=str(label_id), project_id=str(project.id))
    await effects.to_project(project.id, "label:deleted", {"id": str(label_id)})
    return ok({})
