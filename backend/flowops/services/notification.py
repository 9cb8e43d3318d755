"""Notification service for creating in-app notifications.

Notifications are bookkeeping on top of a committed operation: they are
written in their own session, and a failure is logged and dropped.
"""

from collections.abc import Iterable
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flowops.models.activity import Notification
from flowops.services.events import EventPublisher, emit_user_event

logger = structlog.get_logger()


def notification_payload(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "link": notification.link,
        "relatedTask": str(notification.related_task_id) if notification.related_task_id else None,
        "relatedProject": (
            str(notification.related_project_id) if notification.related_project_id else None
        ),
        "isRead": notification.is_read,
        "createdAt": notification.created_at.isoformat(),
    }


class NotificationService:
    """Service for creating user notifications and pushing them live."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: EventPublisher | None = None,
    ):
        self.session_factory = session_factory
        self.publisher = publisher

    async def notify(
        self,
        user_id: UUID | None,
        notification_type: str,
        title: str,
        message: str,
        link: str | None = None,
        related_task_id: UUID | None = None,
        related_project_id: UUID | None = None,
        sender_id: UUID | None = None,
    ) -> Notification | None:
        """
        Create a notification for one user.

        Returns:
            Created Notification, or None when skipped (self-notification,
            no recipient) or when writing it failed
        """
        created = await self.notify_many(
            [user_id] if user_id else [],
            notification_type,
            title,
            message,
            link=link,
            related_task_id=related_task_id,
            related_project_id=related_project_id,
            sender_id=sender_id,
        )
        return created[0] if created else None

    async def notify_many(
        self,
        user_ids: Iterable[UUID | None],
        notification_type: str,
        title: str,
        message: str,
        link: str | None = None,
        related_task_id: UUID | None = None,
        related_project_id: UUID | None = None,
        sender_id: UUID | None = None,
    ) -> list[Notification]:
        """
        Create the same notification for several users.

        Recipients are de-duplicated and the sender never notifies themself.
        """
        recipients = list(
            dict.fromkeys(uid for uid in user_ids if uid is not None and uid != sender_id)
        )
        if not recipients:
            return []

        notifications = [
            Notification(
                user_id=uid,
                type=notification_type,
                title=title,
                message=message,
                link=link,
                related_task_id=related_task_id,
                related_project_id=related_project_id,
                is_read=False,
            )
            for uid in recipients
        ]
        try:
            async with self.session_factory() as session:
                session.add_all(notifications)
                await session.commit()
        except Exception as e:
            logger.warning(
                "notification_create_failed",
                notification_type=notification_type,
                recipients=len(recipients),
                error=str(e),
            )
            return []

        logger.info(
            "notifications_created",
            notification_type=notification_type,
            count=len(notifications),
        )

        if self.publisher is not None:
            for notification in notifications:
                await emit_user_event(
                    self.publisher,
                    notification.user_id,
                    "notification:new",
                    notification_payload(notification),
                )
        return notifications
