"""Notification endpoints for the current user."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, ok
from flowops.db.session import get_db_session
from flowops.exceptions import NotFound
from flowops.models.activity import Notification
from flowops.models.user import User

router = APIRouter()
logger = structlog.get_logger()


class RelatedTask(APISchema):
    id: UUID
    title: str
    task_key: str


class RelatedProject(APISchema):
    id: UUID
    name: str


class NotificationOut(APISchema):
    id: UUID
    type: str
    title: str
    message: str
    link: str | None
    related_task: RelatedTask | None
    related_project: RelatedProject | None
    is_read: bool
    created_at: datetime


async def _get_own_notification(db: AsyncSession, notification_id: UUID, user: User) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user.id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFound("Notification not found")
    return notification


@router.get("")
async def list_notifications(
    current_user: CurrentUser,
    limit: int = Query(20, ge=1, le=100),
    unread: bool = False,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Newest notifications first, with the user's unread count."""
    query = select(Notification).where(Notification.user_id == current_user.id)
    if unread:
        query = query.where(Notification.is_read.is_(False))
    result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
    data = [NotificationOut.model_validate(n) for n in result.scalars().all()]

    unread_count = await db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == current_user.id, Notification.is_read.is_(False))
    )
    return ok(data, count=len(data), unreadCount=unread_count or 0)


@router.put("/read-all")
async def mark_all_read(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    await db.execute(
        update(Notification)
        .where(Notification.user_id == current_user.id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return ok(message="All notifications marked as read")


@router.delete("/clear")
async def clear_read(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Delete the user's read notifications."""
    result = await db.execute(
        delete(Notification)
        .where(Notification.user_id == current_user.id, Notification.is_read.is_(True))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info("Notifications cleared", user_id=str(current_user.id), count=result.rowcount)
    return ok(message="Read notifications cleared")


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    notification = await _get_own_notification(db, notification_id, current_user)
    notification.is_read = True
    await db.commit()
    return ok(NotificationOut.model_validate(notification))


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    notification = await _get_own_notification(db, notification_id, current_user)
    await db.delete(notification)
    await db.commit()
    return ok({})
