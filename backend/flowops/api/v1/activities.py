"""Activity feed endpoints."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, UserSummary, ok
from flowops.db.session import get_db_session
from flowops.models.activity import Activity

router = APIRouter()

TargetType = Literal["project", "task", "user", "sprint", "team", "comment"]


class ActivityOut(APISchema):
    id: UUID
    action: str
    user: UserSummary | None
    target_type: str
    target_id: UUID
    details: dict[str, Any] | None
    created_at: datetime


def _page(result) -> dict:
    data = [ActivityOut.model_validate(a) for a in result.scalars().unique()]
    return ok(data, count=len(data))


@router.get("")
async def recent_activity(
    current_user: CurrentUser,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    result = await db.execute(
        select(Activity).order_by(Activity.created_at.desc()).limit(limit)
    )
    return _page(result)


@router.get("/user/{user_id}")
async def activity_by_user(
    user_id: UUID,
    current_user: CurrentUser,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    result = await db.execute(
        select(Activity)
        .where(Activity.user_id == user_id)
        .order_by(Activity.created_at.desc())
        .limit(limit)
    )
    return _page(result)


@router.get("/target/{target_type}/{target_id}")
async def activity_by_target(
    target_type: TargetType,
    target_id: UUID,
    current_user: CurrentUser,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """History of one entity, newest first."""
    result = await db.execute(
        select(Activity)
        .where(Activity.target_type == target_type, Activity.target_id == target_id)
        .order_by(Activity.created_at.desc())
        .limit(limit)
    )
    return _page(result)
