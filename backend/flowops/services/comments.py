"""Task comments and @mentions.

Mentions are written inline as ``@[Display Name](user-id)``. Only ids of
existing users are kept; anything else in the markup is left as plain text.
"""

import re
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.exceptions import NotFound, ValidationFailed
from flowops.models.task import Comment, CommentMention, Task
from flowops.models.user import User

logger = structlog.get_logger()

MENTION_PATTERN = re.compile(r"@\[([^\]]+)\]\(([^)]+)\)")


def parse_mention_ids(content: str) -> list[UUID]:
    """User ids referenced by mention markup, in order of first appearance."""
    ids: list[UUID] = []
    for match in MENTION_PATTERN.finditer(content or ""):
        try:
            user_id = UUID(match.group(2).strip())
        except ValueError:
            continue
        if user_id not in ids:
            ids.append(user_id)
    return ids


async def resolve_mentions(db: AsyncSession, content: str) -> list[User]:
    ids = parse_mention_ids(content)
    if not ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(ids)))
    found = {u.id: u for u in result.scalars().all()}
    return [found[uid] for uid in ids if uid in found]


def _clean(content: str) -> str:
    content = (content or "").strip()
    if not content:
        raise ValidationFailed("Please add comment content")
    return content


async def get_comment_or_404(db: AsyncSession, comment_id: UUID) -> Comment:
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise NotFound("Comment not found")
    return comment


async def list_comments(db: AsyncSession, task: Task) -> list[Comment]:
    result = await db.execute(
        select(Comment).where(Comment.task_id == task.id).order_by(Comment.created_at.desc())
    )
    return list(result.scalars().unique())


async def create_comment(db: AsyncSession, task: Task, author: User, content: str) -> Comment:
    content = _clean(content)
    comment = Comment(content=content, task_id=task.id, author_id=author.id, author=author)
    comment.mentions = [
        CommentMention(user_id=user.id, user=user) for user in await resolve_mentions(db, content)
    ]
    db.add(comment)
    await db.flush()

    logger.info(
        "Comment created",
        comment_id=str(comment.id),
        task_id=str(task.id),
        mentions=len(comment.mentions),
    )
    return comment


async def update_comment(db: AsyncSession, comment: Comment, content: str) -> list[User]:
    """Replace the content and mentions.

    Returns:
        Users mentioned now who were not mentioned before
    """
    content = _clean(content)
    previous = {m.user_id for m in comment.mentions}
    users = await resolve_mentions(db, content)

    comment.content = content
    comment.is_edited = True
    keep = {u.id for u in users}
    for mention in list(comment.mentions):
        if mention.user_id not in keep:
            comment.mentions.remove(mention)
    for user in users:
        if user.id not in previous:
            comment.mentions.append(CommentMention(user_id=user.id, user=user))
    await db.flush()

    return [u for u in users if u.id not in previous]


async def delete_comment(db: AsyncSession, comment: Comment) -> None:
    await db.delete(comment)
    await db.flush()
    logger.info("Comment deleted", comment_id=str(comment.id))
