"""Tests for teams and how team membership relates to project membership."""

from tests._factory import auth_headers


async def _create_team(client, project_id, user, **fields):
    body = {"name": "Platform", **fields}
    resp = await client.post(
        f"/api/projects/{project_id}/teams", json=body, headers=auth_headers(user)
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def _project_member_ids(client, project_id, user) -> list[str]:
    resp = await client.get(f"/api/projects/{project_id}/members", headers=auth_headers(user))
    return [m["id"] for m in resp.json()["data"]]


class TestTeamCreate:
    async def test_defaults(self, client, owner, project):
        team = await _create_team(client, project["id"], owner)
        assert team["color"] == "#6366f1"
        assert team["lead"] is None
        assert team["members"] == []

    async def test_lead_and_members_join_the_project(self, client, owner, outsider, make_user, project):
        designer = await make_user("Dana Designer")
        team = await _create_team(
            client,
            project["id"],
            owner,
            lead=str(outsider.id),
            members=[{"user": str(designer.id), "role": "designer"}],
        )
        assert team["lead"]["id"] == str(outsider.id)
        assert [(m["user"]["id"], m["role"]) for m in team["members"]] == [
            (str(designer.id), "designer")
        ]

        member_ids = await _project_member_ids(client, project["id"], owner)
        assert str(outsider.id) in member_ids
        assert str(designer.id) in member_ids

    async def test_duplicate_name_in_project(self, client, owner, project):
        await _create_team(client, project["id"], owner)
        resp = await client.post(
            f"/api/projects/{project['id']}/teams",
            json={"name": "Platform"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "A team with this name already exists in the project"

    async def test_bad_color(self, client, owner, project):
        resp = await client.post(
            f"/api/projects/{project['id']}/teams",
            json={"name": "Colorful", "color": "red"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 400

    async def test_member_cannot_create(self, client, member, project):
        resp = await client.post(
            f"/api/projects/{project['id']}/teams",
            json={"name": "Rogue"},
            headers=auth_headers(member),
        )
        assert resp.status_code == 403


class TestTeamMembers:
    async def test_adding_outsider_adds_them_to_project(self, client, owner, outsider, project):
        team = await _create_team(client, project["id"], owner)
        resp = await client.post(
            f"/api/teams/{team['id']}/members",
            json={"email": "outsider@example.com", "role": "qa"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Oscar Outsider added to team"
        assert str(outsider.id) in await _project_member_ids(client, project["id"], owner)

    async def test_removing_from_team_keeps_project_membership(
        self, client, owner, member, project
    ):
        team = await _create_team(
            client, project["id"], owner, members=[{"user": str(member.id)}]
        )
        resp = await client.delete(
            f"/api/teams/{team['id']}/members/{member.id}", headers=auth_headers(owner)
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["members"] == []
        assert str(member.id) in await _project_member_ids(client, project["id"], owner)

    async def test_lead_cannot_be_removed(self, client, owner, member, project):
        team = await _create_team(client, project["id"], owner, lead=str(member.id))
        await client.post(
            f"/api/teams/{team['id']}/members",
            json={"userId": str(member.id)},
            headers=auth_headers(owner),
        )
        resp = await client.delete(
            f"/api/teams/{team['id']}/members/{member.id}", headers=auth_headers(owner)
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cannot remove team lead. Assign a new lead first."

    async def test_lead_manages_members(self, client, owner, member, outsider, project):
        team = await _create_team(client, project["id"], owner, lead=str(member.id))
        resp = await client.post(
            f"/api/teams/{team['id']}/members",
            json={"userId": str(outsider.id)},
            headers=auth_headers(member),
        )
        assert resp.status_code == 200

        resp = await client.put(
            f"/api/teams/{team['id']}/members/{outsider.id}",
            json={"role": "devops"},
            headers=auth_headers(member),
        )
        assert resp.json()["data"]["members"][0]["role"] == "devops"

    async def test_removing_from_project_removes_team_memberships(
        self, client, owner, member, project
    ):
        team = await _create_team(
            client, project["id"], owner, members=[{"user": str(member.id)}]
        )
        resp = await client.delete(
            f"/api/projects/{project['id']}/members/{member.id}", headers=auth_headers(owner)
        )
        assert resp.status_code == 200

        resp = await client.get(f"/api/teams/{team['id']}", headers=auth_headers(owner))
        assert resp.json()["data"]["members"] == []

    async def test_team_lead_blocks_project_removal(self, client, owner, member, project):
        await _create_team(client, project["id"], owner, lead=str(member.id))
        resp = await client.delete(
            f"/api/projects/{project['id']}/members/{member.id}", headers=auth_headers(owner)
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "User leads team 'Platform'. Assign a new lead first."

    async def test_available_users(self, client, owner, member, project):
        team = await _create_team(client, project["id"], owner)
        resp = await client.get(
            f"/api/teams/{team['id']}/available-users", headers=auth_headers(owner)
        )
        assert sorted(u["id"] for u in resp.json()["data"]) == sorted(
            [str(owner.id), str(member.id)]
        )


class TestTeamDelete:
    async def test_default_team_cannot_be_deleted(self, client, owner, project):
        team = await _create_team(client, project["id"], owner, isDefault=True)
        resp = await client.delete(f"/api/teams/{team['id']}", headers=auth_headers(owner))
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cannot delete default team"

    async def test_delete(self, client, owner, project):
        team = await _create_team(client, project["id"], owner)
        resp = await client.delete(f"/api/teams/{team['id']}", headers=auth_headers(owner))
        assert resp.status_code == 200

        resp = await client.get(f"/api/teams/{team['id']}", headers=auth_headers(owner))
        assert resp.status_code == 404
