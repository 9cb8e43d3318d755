"""Project and task key generation.

Project keys are short uppercase codes (``FLOW``, ``FLOW1``) chosen once at
creation. Task keys are ``{PREFIX}-{n}`` where ``n`` comes from a per-project
counter bumped atomically in the task-creation transaction.
"""

import re

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from flowops.exceptions import Conflict, ValidationFailed
from flowops.models.project import Project

logger = structlog.get_logger()

PROJECT_KEY_PATTERN = re.compile(r"^[A-Z0-9]{1,10}$")
DEFAULT_PROJECT_KEY = "PROJ"
DEFAULT_TASK_PREFIX = "TASK"

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def derive_project_key(name: str) -> str:
    """First four alphanumerics of ``name``, uppercased (``PROJ`` if none)."""
    return _NON_ALNUM.sub("", name or "")[:4].upper() or DEFAULT_PROJECT_KEY


def task_key_prefix(project_name: str) -> str:
    """Task key prefix: first four characters of the project name."""
    return (project_name or "").strip()[:4].upper() or DEFAULT_TASK_PREFIX


async def _key_exists(db: AsyncSession, key: str) -> bool:
    result = await db.execute(select(Project.id).where(Project.key == key).limit(1))
    return result.scalar_one_or_none() is not None


async def generate_project_key(db: AsyncSession, name: str) -> str:
    """Derive a key from ``name`` and append 1, 2, 3... until it is unused."""
    base = derive_project_key(name)
    candidate = base
    suffix = 1
    while await _key_exists(db, candidate):
        candidate = f"{base}{suffix}"
        suffix += 1
    return candidate


async def resolve_project_key(db: AsyncSession, name: str, explicit: str | None) -> str:
    """Validate an explicit key or generate one from the project name."""
    if not explicit:
        return await generate_project_key(db, name)

    if not PROJECT_KEY_PATTERN.match(explicit):
        raise ValidationFailed("Project key must be uppercase alphanumeric (max 10 characters)")
    if await _key_exists(db, explicit):
        raise Conflict("Project key already exists")
    return explicit


async def next_task_key(db: AsyncSession, project: Project) -> str:
    """Reserve the next task number for ``project`` and return its key."""
    result = await db.execute(
        update(Project)
        .where(Project.id == project.id)
        .values(task_sequence=Project.task_sequence + 1)
        .returning(Project.task_sequence)
        .execution_options(synchronize_session=False)
    )
    sequence = result.scalar_one()
    set_committed_value(project, "task_sequence", sequence)
    return f"{task_key_prefix(project.name)}-{sequence}"
