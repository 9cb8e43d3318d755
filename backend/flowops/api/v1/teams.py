"""Team endpoints and team membership."""

from datetime import datetime
from typing import Literal
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, Effects, UserSummary, dump, ok
from flowops.db.session import get_db_session
from flowops.exceptions import NotFound
from flowops.models.project import Project
from flowops.models.team import Team
from flowops.services import membership
from flowops.services.access_control import (
    AccessTarget,
    check_project_access,
    get_project_or_404,
    require,
)

router = APIRouter()
project_router = APIRouter()
logger = structlog.get_logger()

TeamRole = Literal["lead", "developer", "designer", "qa", "devops", "member"]
HexColor = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")


class TeamMemberIn(APISchema):
    user: UUID
    role: TeamRole = "member"


class TeamCreate(APISchema):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    color: str | None = HexColor
    lead: UUID | None = None
    members: list[TeamMemberIn] = Field(default_factory=list)
    is_default: bool = False


class TeamUpdate(APISchema):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    color: str | None = HexColor
    lead: UUID | None = None
    is_default: bool | None = None


class TeamMemberAdd(APISchema):
    user_id: UUID | None = None
    email: EmailStr | None = None
    role: TeamRole = "member"


class TeamRoleUpdate(APISchema):
    role: TeamRole


class TeamMemberOut(APISchema):
    user: UserSummary
    role: str
    joined_at: datetime


class TeamOut(APISchema):
    id: UUID
    name: str
    description: str | None
    project_id: UUID
    color: str
    lead: UserSummary | None
    members: list[TeamMemberOut]
    is_default: bool
    created_by: UserSummary | None
    created_at: datetime
    updated_at: datetime


async def _team_with_project(
    db: AsyncSession, team_id: UUID, current_user, operation: str | None = None
) -> tuple[Team, Project]:
    team = await db.get(Team, team_id)
    if team is None:
        raise NotFound("Team not found")
    project = await get_project_or_404(db, team.project_id)
    if operation == "project.read":
        require(current_user, operation, AccessTarget.for_project(project))
    elif operation is not None:
        require(current_user, operation, AccessTarget.for_team(team, project))
    return team, project


async def _reload(db: AsyncSession, team_id: UUID) -> Team:
    return await db.get(Team, team_id, populate_existing=True)


@project_router.get("/{project_id}/teams")
async def list_teams(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    project = await check_project_access(db, project_id, current_user)
    result = await db.execute(
        select(Team).where(Team.project_id == project.id).order_by(Team.name)
    )
    data = [TeamOut.model_validate(t) for t in result.scalars().unique()]
    return ok(data, count=len(data))


@project_router.post("/{project_id}/teams", status_code=status.HTTP_201_CREATED)
async def create_team(
    project_id: UUID,
    body: TeamCreate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Create a team; the lead and initial members join the project as well."""
    project = await check_project_access(db, project_id, current_user, "team.create")
    team = await membership.create_team(
        db,
        project,
        current_user,
        name=body.name.strip(),
        description=body.description,
        color=body.color,
        lead_id=body.lead,
        members=[(m.user, m.role) for m in body.members],
        is_default=body.is_default,
    )
    await db.commit()

    team = await _reload(db, team.id)
    data = TeamOut.model_validate(team)
    await effects.to_project(project.id, "team:created", dump(data))
    await effects.record(current_user.id, "team.created", "team", team.id, {"name": team.name})
    return ok(data)


@router.get("/{team_id}")
async def get_team(
    team_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    team, _ = await _team_with_project(db, team_id, current_user, "project.read")
    return ok(TeamOut.model_validate(team))


@router.put("/{team_id}")
async def update_team(
    team_id: UUID,
    body: TeamUpdate,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    team, project = await _team_with_project(db, team_id, current_user, "team.update")

    changes = body.model_dump(exclude_unset=True)
    if "lead" in changes:
        changes["lead_id"] = changes.pop("lead")
    if changes.get("name") is not None:
        changes["name"] = changes["name"].strip()
    changes = {k: v for k, v in changes.items() if v is not None or k in ("description", "lead_id")}

    await membership.update_team(db, team, project, changes)
    await db.commit()

    team = await _reload(db, team.id)
    data = TeamOut.model_validate(team)
    await effects.to_project(project.id, "team:updated", dump(data))
    await effects.record(
        current_user.id, "team.updated", "team", team.id, {"fields": sorted(changes)}
    )
    return ok(data)


@router.delete("/{team_id}")
async def delete_team(
    team_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    team, project = await _team_with_project(db, team_id, current_user, "team.delete")
    name = team.name

    await membership.delete_team(db, team)
    await db.commit()

    await effects.to_project(project.id, "team:deleted", {"id": str(team_id)})
    await effects.record(current_user.id, "team.deleted", "team", team_id, {"name": name})
    return ok({})


@router.post("/{team_id}/members")
async def add_team_member(
    team_id: UUID,
    body: TeamMemberAdd,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Add a user by id or email; they become a project member too."""
    team, project = await _team_with_project(db, team_id, current_user, "team.manage_members")
    user = await membership.find_user(db, user_id=body.user_id, email=body.email)

    await membership.add_team_member(db, team, project, user, body.role)
    await db.commit()

    team = await _reload(db, team.id)
    data = TeamOut.model_validate(team)
    await effects.to_project(project.id, "team:updated", dump(data))
    await effects.record(
        current_user.id,
        "team.member_added",
        "team",
        team.id,
        {"userId": str(user.id), "role": body.role},
    )
    return ok(data, message=f"{user.name} added to team")


@router.put("/{team_id}/members/{user_id}")
async def update_member_role(
    team_id: UUID,
    user_id: UUID,
    body: TeamRoleUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    team, _ = await _team_with_project(db, team_id, current_user, "team.manage_members")
    await membership.update_team_member_role(db, team, user_id, body.role)
    await db.commit()
    return ok(TeamOut.model_validate(team))


@router.delete("/{team_id}/members/{user_id}")
async def remove_team_member(
    team_id: UUID,
    user_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Remove a user from the team. Their project membership is kept."""
    team, project = await _team_with_project(db, team_id, current_user, "team.manage_members")

    await membership.remove_team_member(db, team, user_id)
    await db.commit()

    data = TeamOut.model_validate(team)
    await effects.to_project(project.id, "team:updated", dump(data))
    await effects.record(
        current_user.id, "team.member_removed", "team", team.id, {"userId": str(user_id)}
    )
    return ok(data, message="Member removed from team")


@router.get("/{team_id}/available-users")
async def available_users(
    team_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Project users who are not in the team yet."""
    team, project = await _team_with_project(db, team_id, current_user, "team.manage_members")
    users = await membership.available_team_users(db, team, project)
    data = [UserSummary.model_validate(u) for u in users]
    return ok(data, count=len(data))
