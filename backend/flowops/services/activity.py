"""Activity recording for the feeds."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flowops.models.activity import Activity

logger = structlog.get_logger()


class ActivityRecorder:
    """Appends activity rows in a session of their own; never raises."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        user_id: UUID | None,
        action: str,
        target_type: str,
        target_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> None:
        try:
            async with self.session_factory() as session:
                session.add(
                    Activity(
                        action=action,
                        user_id=user_id,
                        target_type=target_type,
                        target_id=target_id,
                        details=details or {},
                    )
                )
                await session.commit()
        except Exception as e:
            logger.warning(
                "activity_log_failed",
                action=action,
                target_type=target_type,
                target_id=str(target_id),
                error=str(e),
            )
