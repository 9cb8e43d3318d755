"""Tests for project labels."""

from tests._factory import auth_headers, create_project, create_task


async def _create_label(client, project_id, user, name="bug", **fields):
    return await client.post(
        f"/api/projects/{project_id}/labels",
        json={"name": name, **fields},
        headers=auth_headers(user),
    )


class TestLabels:
    async def test_member_creates_label(self, client, member, project):
        resp = await _create_label(client, project["id"], member, color="#ff0000")
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["name"] == "bug"
        assert data["color"] == "#ff0000"
        assert data["createdBy"]["id"] == str(member.id)

    async def test_name_is_unique_per_project(self, client, owner, project):
        await _create_label(client, project["id"], owner)
        resp = await _create_label(client, project["id"], owner)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Label with this name already exists in project"

        other = await create_project(client, owner, name="Other")
        assert (await _create_label(client, other["id"], owner)).status_code == 201

    async def test_list_sorted_by_name(self, client, owner, project):
        for name in ("ux", "backend", "infra"):
            await _create_label(client, project["id"], owner, name=name)
        resp = await client.get(
            f"/api/projects/{project['id']}/labels", headers=auth_headers(owner)
        )
        assert [label["name"] for label in resp.json()["data"]] == ["backend", "infra", "ux"]

    async def test_rename_into_existing_name(self, client, owner, project):
        await _create_label(client, project["id"], owner, name="bug")
        feature = (await _create_label(client, project["id"], owner, name="feature")).json()["data"]
        resp = await client.put(
            f"/api/labels/{feature['id']}", json={"name": "bug"}, headers=auth_headers(owner)
        )
        assert resp.status_code == 400

    async def test_tasks_only_take_labels_of_their_project(self, client, owner, project):
        other = await create_project(client, owner, name="Other")
        foreign = (await _create_label(client, other["id"], owner)).json()["data"]
        resp = await client.post(
            f"/api/projects/{project['id']}/tasks",
            json={"title": "Labelled", "labels": [foreign["id"]]},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Labels must belong to the task's project"

    async def test_delete_takes_label_off_tasks(self, client, owner, project):
        label = (await _create_label(client, project["id"], owner)).json()["data"]
        task = await create_task(client, project["id"], owner, labels=[label["id"]])
        assert [lb["id"] for lb in task["labels"]] == [label["id"]]

        resp = await client.delete(f"/api/labels/{label['id']}", headers=auth_headers(owner))
        assert resp.status_code == 200

        resp = await client.get(f"/api/tasks/{task['id']}", headers=auth_headers(owner))
        assert resp.json()["data"]["labels"] == []

    async def test_outsider_cannot_manage(self, client, outsider, project):
        resp = await _create_label(client, project["id"], outsider)
        assert resp.status_code == 403
