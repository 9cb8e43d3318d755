"""Project and team membership.

Team membership implies project membership: whoever joins a team (as a
member or as its lead) is unioned into the project's members unless they
own the project. Leaving a team keeps the project membership, since the
user may still belong to other teams. Leaving the project removes the
user's memberships in the project's teams, and is refused while they lead
one of them.
"""

from collections.abc import Iterable
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.exceptions import Conflict, NotFound, ValidationFailed
from flowops.models.project import Project, ProjectMember
from flowops.models.team import Team, TeamMember
from flowops.models.user import User

logger = structlog.get_logger()


async def find_user(
    db: AsyncSession,
    user_id: UUID | None = None,
    email: str | None = None,
) -> User:
    """Look a user up by id or email."""
    user = None
    if user_id is not None:
        user = await db.get(User, user_id)
    elif email:
        result = await db.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()
    else:
        raise ValidationFailed("Please provide a userId or email")

    if user is None:
        raise NotFound("User not found")
    return user


async def load_active_users(db: AsyncSession, user_ids: Iterable[UUID]) -> list[User]:
    ids = list(dict.fromkeys(user_ids))
    if not ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(ids)))
    users = {u.id: u for u in result.scalars().all()}
    missing = [uid for uid in ids if uid not in users]
    if missing:
        raise NotFound("User not found")
    for user in users.values():
        if not user.is_active:
            raise ValidationFailed(f"User {user.email} is not active")
    return [users[uid] for uid in ids]


def ensure_project_member(project: Project, user: User) -> bool:
    """Union ``user`` into the project's members; returns whether it changed."""
    if user.id == project.owner_id or project.has_member(user.id):
        return False
    project.members.append(ProjectMember(project_id=project.id, user_id=user.id, user=user))
    return True


async def add_project_member(db: AsyncSession, project: Project, user: User) -> ProjectMember:
    if not user.is_active:
        raise ValidationFailed("User is not active")
    if user.id == project.owner_id:
        raise Conflict("User is already the project owner")
    if project.has_member(user.id):
        raise Conflict("User is already a member")

    ensure_project_member(project, user)
    await db.flush()

    logger.info("Project member added", project_id=str(project.id), user_id=str(user.id))
    return next(m for m in project.members if m.user_id == user.id)


async def remove_project_member(db: AsyncSession, project: Project, user_id: UUID) -> int:
    """Remove a project member and their memberships in the project's teams.

    Returns:
        Number of team memberships removed alongside
    """
    if user_id == project.owner_id:
        raise ValidationFailed("Cannot remove the project owner")

    membership = next((m for m in project.members if m.user_id == user_id), None)
    if membership is None:
        raise NotFound("User is not a member of this project")

    led = await db.execute(
        select(Team.name).where(Team.project_id == project.id, Team.lead_id == user_id)
    )
    led_teams = list(led.scalars().all())
    if led_teams:
        raise ValidationFailed(
            f"User leads team '{led_teams[0]}'. Assign a new lead first."
        )

    team_ids = select(Team.id).where(Team.project_id == project.id)
    result = await db.execute(
        delete(TeamMember)
        .where(TeamMember.user_id == user_id, TeamMember.team_id.in_(team_ids))
        .execution_options(synchronize_session="fetch")
    )
    project.members.remove(membership)
    await db.flush()

    logger.info(
        "Project member removed",
        project_id=str(project.id),
        user_id=str(user_id),
        team_memberships_removed=result.rowcount,
    )
    return result.rowcount


async def available_project_users(db: AsyncSession, project: Project, actor: User) -> list[User]:
    """Active users who could still be added to the project."""
    excluded = {project.owner_id, actor.id, *project.member_ids}
    result = await db.execute(
        select(User)
        .where(User.is_active.is_(True), User.id.not_in(excluded))
        .order_by(User.name)
    )
    return list(result.scalars().all())


async def create_team(
    db: AsyncSession,
    project: Project,
    creator: User,
    name: str,
    description: str | None = None,
    color: str | None = None,
    lead_id: UUID | None = None,
    members: Iterable[tuple[UUID, str]] = (),
    is_default: bool = False,
) -> Team:
    """Create a team; its lead and initial members join the project too."""
    members = list(members)
    team = Team(
        name=name,
        description=description,
        project_id=project.id,
        color=color or "#6366f1",
        is_default=is_default,
        created_by_id=creator.id,
    )

    if lead_id is not None:
        (lead,) = await load_active_users(db, [lead_id])
        team.lead_id = lead.id
        team.lead = lead
        ensure_project_member(project, lead)

    roles = dict(members)
    for user in await load_active_users(db, roles):
        team.members.append(TeamMember(user_id=user.id, user=user, role=roles[user.id]))
        ensure_project_member(project, user)

    db.add(team)
    try:
        await db.flush()
    except IntegrityError:
        raise Conflict("A team with this name already exists in the project") from None

    logger.info("Team created", team_id=str(team.id), project_id=str(project.id))
    return team


async def update_team(db: AsyncSession, team: Team, project: Project, changes: dict) -> Team:
    """Update name, description, color, lead or default flag."""
    if "lead_id" in changes:
        lead_id = changes.pop("lead_id")
        if lead_id is None:
            team.lead_id = None
            team.lead = None
        else:
            (lead,) = await load_active_users(db, [lead_id])
            team.lead_id = lead.id
            team.lead = lead
            ensure_project_member(project, lead)

    for field in ("name", "description", "color", "is_default"):
        if field in changes:
            setattr(team, field, changes[field])

    try:
        await db.flush()
    except IntegrityError:
        raise Conflict("A team with this name already exists in the project") from None
    return team


async def delete_team(db: AsyncSession, team: Team) -> None:
    if team.is_default:
        raise ValidationFailed("Cannot delete default team")
    await db.delete(team)
    await db.flush()
    logger.info("Team deleted", team_id=str(team.id))


async def add_team_member(
    db: AsyncSession,
    team: Team,
    project: Project,
    user: User,
    role: str = "member",
) -> TeamMember:
    if not user.is_active:
        raise ValidationFailed("User is not active")
    if team.get_member(user.id) is not None:
        raise Conflict("User is already a team member")

    member = TeamMember(user_id=user.id, user=user, role=role)
    team.members.append(member)
    ensure_project_member(project, user)
    await db.flush()

    logger.info("Team member added", team_id=str(team.id), user_id=str(user.id), role=role)
    return member


async def remove_team_member(db: AsyncSession, team: Team, user_id: UUID) -> None:
    """Remove a user from the team; their project membership stays."""
    if team.lead_id is not None and team.lead_id == user_id:
        raise ValidationFailed("Cannot remove team lead. Assign a new lead first.")

    member = team.get_member(user_id)
    if member is None:
        raise NotFound("Member not found in team")

    team.members.remove(member)
    await db.flush()
    logger.info("Team member removed", team_id=str(team.id), user_id=str(user_id))


async def update_team_member_role(
    db: AsyncSession, team: Team, user_id: UUID, role: str
) -> TeamMember:
    member = team.get_member(user_id)
    if member is None:
        raise NotFound("Member not found in team")
    member.role = role
    await db.flush()
    return member


async def available_team_users(db: AsyncSession, team: Team, project: Project) -> list[User]:
    """Active project users (owner or members) not yet in the team."""
    candidates = {project.owner_id, *project.member_ids}
    excluded = set(team.member_ids)
    if team.lead_id is not None:
        excluded.add(team.lead_id)

    eligible = candidates - excluded
    if not eligible:
        return []
    result = await db.execute(
        select(User)
        .where(User.is_active.is_(True), User.id.in_(eligible))
        .order_by(User.name)
    )
    return list(result.scalars().all())
