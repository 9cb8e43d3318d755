"""Shared API schemas and dependencies.

Responses use the ``{"success": true, "data": ...}`` envelope. Field names
go out in camelCase; requests may use either camelCase or snake_case.
"""

from datetime import date, datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.requests import HTTPConnection

from flowops.db.session import get_session_factory
from flowops.services.activity import ActivityRecorder
from flowops.services.events import (
    EventPublisher,
    NullPublisher,
    emit_project_event,
    emit_user_event,
)
from flowops.services.notification import NotificationService


class APISchema(BaseModel):
    """Base schema: camelCase on the wire, built from ORM objects."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserSummary(APISchema):
    id: UUID
    name: str
    email: str


class UserInfo(UserSummary):
    role: str
    avatar: str | None = None
    is_active: bool
    created_at: datetime


class LabelOut(APISchema):
    id: UUID
    name: str
    color: str
    project_id: UUID


class TaskSummary(APISchema):
    id: UUID
    task_key: str
    title: str
    status: str
    type: str


class TaskOut(APISchema):
    id: UUID
    task_key: str
    title: str
    description: str | None
    type: str
    status: str
    priority: str
    story_points: int
    original_estimate: int
    time_spent: int
    remaining_estimate: int
    due_date: date | None
    project_id: UUID
    sprint_id: UUID | None
    assignee: UserSummary | None
    reporter: UserSummary
    parent: TaskSummary | None
    labels: list[LabelOut]
    watchers: list[UserSummary]
    created_at: datetime
    updated_at: datetime


def ok(data: Any = None, message: str | None = None, **extra: Any) -> dict[str, Any]:
    """Build a success envelope; ``extra`` carries counts and aggregates."""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    body.update(extra)
    return body


def dump(value: APISchema) -> dict[str, Any]:
    """JSON-ready camelCase dict for event payloads."""
    return value.model_dump(mode="json", by_alias=True)


class SideEffects:
    """Post-commit side channel: live events, notifications and activity.

    Nothing here raises into the request; each piece logs its own failures.
    """

    def __init__(self, connection: HTTPConnection):
        self.publisher: EventPublisher = getattr(
            connection.app.state, "event_publisher", None
        ) or NullPublisher()
        session_factory = get_session_factory(connection)
        self.notifications = NotificationService(session_factory, self.publisher)
        self.activity = ActivityRecorder(session_factory)

    async def to_project(self, project_id: UUID, event: str, payload: Any) -> None:
        await emit_project_event(self.publisher, project_id, event, payload)

    async def to_user(self, user_id: UUID, event: str, payload: Any) -> None:
        await emit_user_event(self.publisher, user_id, event, payload)

    async def record(
        self,
        user_id: UUID | None,
        action: str,
        target_type: str,
        target_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> None:
        await self.activity.record(user_id, action, target_type, target_id, details)


Effects = Annotated[SideEffects, Depends(SideEffects)]
