"""Issue links between tasks.

A link is stored once as a directed ``source -> target`` edge. Listing the
links of a task returns the outgoing edges as stored and the incoming ones
relabelled with the reverse type, so ``A blocks B`` reads as
``B is_blocked_by A`` from B.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.exceptions import Conflict, NotFound, ValidationFailed
from flowops.models.task import IssueLink, Task
from flowops.models.user import User

logger = structlog.get_logger()

REVERSE_LINK_TYPES: dict[str, str] = {
    "blocks": "is_blocked_by",
    "is_blocked_by": "blocks",
    "relates_to": "relates_to",
    "duplicates": "is_duplicated_by",
    "is_duplicated_by": "duplicates",
    "clones": "is_cloned_by",
    "is_cloned_by": "clones",
}


def reverse_link_type(link_type: str) -> str:
    return REVERSE_LINK_TYPES.get(link_type, link_type)


@dataclass
class LinkView:
    """A link as seen from one of its two tasks."""

    id: UUID
    link_type: str
    linked_task: Task
    created_by: User | None
    created_at: datetime
    direction: str  # outgoing, incoming


def outgoing_view(link: IssueLink) -> LinkView:
    return LinkView(
        id=link.id,
        link_type=link.link_type,
        linked_task=link.target_task,
        created_by=link.created_by,
        created_at=link.created_at,
        direction="outgoing",
    )


def incoming_view(link: IssueLink) -> LinkView:
    return LinkView(
        id=link.id,
        link_type=reverse_link_type(link.link_type),
        linked_task=link.source_task,
        created_by=link.created_by,
        created_at=link.created_at,
        direction="incoming",
    )


async def list_links(db: AsyncSession, task: Task) -> list[LinkView]:
    """Outgoing links first, then incoming ones, each oldest first."""
    outgoing = await db.execute(
        select(IssueLink)
        .where(IssueLink.source_task_id == task.id)
        .order_by(IssueLink.created_at)
    )
    incoming = await db.execute(
        select(IssueLink)
        .where(IssueLink.target_task_id == task.id)
        .order_by(IssueLink.created_at)
    )
    return [outgoing_view(link) for link in outgoing.scalars().unique()] + [
        incoming_view(link) for link in incoming.scalars().unique()
    ]


async def create_link(
    db: AsyncSession,
    source: Task,
    target_task_id: UUID,
    link_type: str,
    creator: User,
) -> IssueLink:
    if target_task_id == source.id:
        raise ValidationFailed("Cannot link a task to itself")

    target = await db.get(Task, target_task_id)
    if target is None:
        raise NotFound("Target task not found")

    link = IssueLink(
        link_type=link_type,
        source_task_id=source.id,
        target_task_id=target.id,
        created_by_id=creator.id,
        source_task=source,
        target_task=target,
        created_by=creator,
    )
    db.add(link)
    try:
        await db.flush()
    except IntegrityError:
        raise Conflict("This link already exists") from None

    logger.info(
        "Issue link created",
        link_id=str(link.id),
        source_task_id=str(source.id),
        target_task_id=str(target.id),
        link_type=link_type,
    )
    return link


async def get_link_or_404(db: AsyncSession, link_id: UUID) -> IssueLink:
    link = await db.get(IssueLink, link_id)
    if link is None:
        raise NotFound("Link not found")
    return link


async def delete_link(db: AsyncSession, link: IssueLink) -> None:
    await db.delete(link)
    await db.flush()
    logger.info("Issue link deleted", link_id=str(link.id))
