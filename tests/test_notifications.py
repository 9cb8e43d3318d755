"""Tests for the notification inbox and the activity feed."""

from tests._factory import auth_headers, create_task


async def _inbox(client, user, **params):
    resp = await client.get("/api/notifications", params=params, headers=auth_headers(user))
    assert resp.status_code == 200
    return resp.json()


async def _assign_twice(client, owner, member, project):
    await create_task(client, project["id"], owner, title="One", assignee=str(member.id))
    await create_task(client, project["id"], owner, title="Two", assignee=str(member.id))


class TestNotifications:
    async def test_inbox_lists_newest_first_with_unread_count(
        self, client, owner, member, project
    ):
        await _assign_twice(client, owner, member, project)

        body = await _inbox(client, member)
        assert body["count"] == 2
        assert body["unreadCount"] == 2
        assert body["data"][0]["relatedTask"]["taskKey"] == "FLOW-2"
        assert body["data"][0]["relatedProject"]["id"] == project["id"]

    async def test_self_assignment_is_silent(self, client, owner, project):
        await create_task(client, project["id"], owner, assignee=str(owner.id))
        assert (await _inbox(client, owner))["count"] == 0

    async def test_mark_read_and_clear(self, client, owner, member, project):
        await _assign_twice(client, owner, member, project)
        first = (await _inbox(client, member))["data"][0]

        resp = await client.put(
            f"/api/notifications/{first['id']}/read", headers=auth_headers(member)
        )
        assert resp.json()["data"]["isRead"] is True
        assert (await _inbox(client, member, unread="true"))["count"] == 1

        await client.delete("/api/notifications/clear", headers=auth_headers(member))
        body = await _inbox(client, member)
        assert body["count"] == 1
        assert body["unreadCount"] == 1

        await client.put("/api/notifications/read-all", headers=auth_headers(member))
        assert (await _inbox(client, member))["unreadCount"] == 0

    async def test_other_users_notifications_are_invisible(
        self, client, owner, member, project
    ):
        await _assign_twice(client, owner, member, project)
        notification = (await _inbox(client, member))["data"][0]

        resp = await client.put(
            f"/api/notifications/{notification['id']}/read", headers=auth_headers(owner)
        )
        assert resp.status_code == 404
        assert resp.json()["message"] == "Notification not found"

        resp = await client.delete(
            f"/api/notifications/{notification['id']}", headers=auth_headers(owner)
        )
        assert resp.status_code == 404

    async def test_delete_one(self, client, owner, member, project):
        await _assign_twice(client, owner, member, project)
        notification = (await _inbox(client, member))["data"][0]
        resp = await client.delete(
            f"/api/notifications/{notification['id']}", headers=auth_headers(member)
        )
        assert resp.status_code == 200
        assert (await _inbox(client, member))["count"] == 1


class TestActivity:
    async def test_task_history(self, client, owner, project):
        task = await create_task(client, project["id"], owner)
        await client.put(
            f"/api/tasks/{task['id']}", json={"status": "doing"}, headers=auth_headers(owner)
        )

        resp = await client.get(
            f"/api/activity/target/task/{task['id']}", headers=auth_headers(owner)
        )
        actions = [a["action"] for a in resp.json()["data"]]
        assert sorted(actions) == ["task.created", "task.updated"]

    async def test_user_feed(self, client, owner, member, project):
        await create_task(client, project["id"], member)
        resp = await client.get(f"/api/activity/user/{member.id}", headers=auth_headers(owner))
        assert [a["action"] for a in resp.json()["data"]] == ["task.created"]
        assert resp.json()["data"][0]["user"]["id"] == str(member.id)

    async def test_recent_feed_respects_limit(self, client, owner, project):
        for _ in range(3):
            await create_task(client, project["id"], owner)
        resp = await client.get("/api/activity", params={"limit": 2}, headers=auth_headers(owner))
        assert resp.json()["count"] == 2
