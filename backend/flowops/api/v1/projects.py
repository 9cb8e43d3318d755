"""Project endpoints, including project membership."""

from datetime import datetime
from typing import Literal
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import EmailStr, Field, field_validator
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, Effects, UserSummary, dump, ok
from flowops.db.session import get_db_session
from flowops.exceptions import Conflict, ValidationFailed
from flowops.models.project import Project, ProjectMember
from flowops.services import cascade, membership
from flowops.services.access_control import (
    AccessTarget,
    check_project_access,
    get_project_or_404,
    require,
)
from flowops.services.keys import resolve_project_key
from flowops.services.storage import remove_file

router = APIRouter()
logger = structlog.get_logger()

ProjectStatus = Literal["planned", "in_progress", "completed"]


class ProjectCreate(APISchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=5000)
    status: ProjectStatus = "planned"
    key: str | None = Field(None, max_length=10)
    members: list[UUID] = Field(default_factory=list)


class ProjectUpdate(APISchema):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, min_length=1, max_length=5000)
    status: ProjectStatus | None = None


class MemberAdd(APISchema):
    user_id: UUID | None = None
    email: EmailStr | None = None


class ProjectOut(APISchema):
    id: UUID
    name: str
    description: str
    key: str
    status: str
    owner: UserSummary
    members: list[UserSummary]
    created_at: datetime
    updated_at: datetime

    @field_validator("members", mode="before")
    @classmethod
    def _member_users(cls, value):
        return [getattr(m, "user", m) for m in value]


@router.get("")
async def list_projects(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Projects the user owns or belongs to (every project for admins)."""
    query = select(Project).order_by(Project.created_at.desc())
    if not current_user.is_admin:
        member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == current_user.id)
        query = query.where(
            or_(Project.owner_id == current_user.id, Project.id.in_(member_of))
        )

    result = await db.execute(query)
    projects = [ProjectOut.model_validate(p) for p in result.scalars().unique()]
    return ok(projects, count=len(projects))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    name = body.name.strip()
    if not name:
        raise ValidationFailed("Please add a project name")

    project = Project(
        name=name,
        description=body.description,
        status=body.status,
        key=await resolve_project_key(db, name, body.key),
        owner_id=current_user.id,
        owner=current_user,
        members=[],
    )
    for user in await membership.load_active_users(db, body.members):
        membership.ensure_project_member(project, user)

    db.add(project)
    try:
        await db.flush()
    except IntegrityError:
        raise Conflict("Project key already exists") from None
    await db.commit()

    logger.info("Project created", project_id=str(project.id), key=project.key)
    data = ProjectOut.model_validate(project)
    await effects.record(
        current_user.id, "project.created", "project", project.id, {"name": project.name}
    )
    return ok(data)


@router.get("/{project_id}")
async def get_project(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user)
    return ok(ProjectOut.model_validate(project))


@router.put("/{project_id}")
async def update_project(
    project_id: UUID,
    body: ProjectUpdate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user, "project.update")

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise ValidationFailed("Please add a project name")
    for field, value in changes.items():
        setattr(project, field, value)
    await db.commit()

    data = ProjectOut.model_validate(project)
    await effects.to_project(project.id, "project:updated", dump(data))
    await effects.record(
        current_user.id, "project.updated", "project", project.id, {"fields": sorted(changes)}
    )
    return ok(data)


@router.delete("/{project_id}")
async def delete_project(
    project_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Delete a project with all of its tasks, sprints, teams and labels."""
    project = await check_project_access(db, project_id, current_user, "project.delete")
    name = project.name

    paths = await cascade.delete_project(db, project)
    await db.commit()

    for path in paths:
        remove_file(path)
    await effects.to_project(project_id, "project:deleted", {"id": str(project_id)})
    await effects.record(current_user.id, "project.deleted", "project", project_id, {"name": name})
    return ok({})


@router.get("/{project_id}/members")
async def list_members(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user)
    members = [UserSummary.model_validate(m.user) for m in project.members]
    return ok(members, count=len(members), owner=UserSummary.model_validate(project.owner))


@router.post("/{project_id}/members")
async def add_member(
    project_id: UUID,
    body: MemberAdd,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user, "project.manage_members")
    user = await membership.find_user(db, user_id=body.user_id, email=body.email)

    await membership.add_project_member(db, project, user)
    await db.commit()

    data = ProjectOut.model_validate(project)
    await effects.to_project(project.id, "project:member_added", {"userId": str(user.id)})
    await effects.record(
        current_user.id, "project.member_added", "project", project.id, {"userId": str(user.id)}
    )
    return ok(data, message=f"{user.name} added to project")


@router.delete("/{project_id}/members/{user_id}")
async def remove_member(
    project_id: UUID,
    user_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Remove a member; their memberships in the project's teams go with it."""
    project = await get_project_or_404(db, project_id)
    if user_id == project.owner_id:
        raise ValidationFailed("Cannot remove the project owner")
    require(current_user, "project.manage_members", AccessTarget.for_project(project))

    await membership.remove_project_member(db, project, user_id)
    await db.commit()

    project = await db.get(Project, project_id, populate_existing=True)
    data = ProjectOut.model_validate(project)
    await effects.to_project(project_id, "project:member_removed", {"userId": str(user_id)})
    await effects.record(
        current_user.id, "project.member_removed", "project", project_id, {"userId": str(user_id)}
    )
    return ok(data, message="Member removed from project")


@router.get("/{project_id}/available-users")
async def available_users(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user, "project.manage_members")
    users = await membership.available_project_users(db, project, current_user)
    data = [UserSummary.model_validate(u) for u in users]
    return ok(data, count=len(data))
