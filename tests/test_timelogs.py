"""Tests for time logging and task time totals."""

from tests._factory import auth_headers, create_task


async def _log(client, task_id, user, minutes, **fields):
    return await client.post(
        f"/api/tasks/{task_id}/timelogs",
        json={"timeSpent": minutes, **fields},
        headers=auth_headers(user),
    )


class TestTimeTotals:
    async def test_logged_time_is_summed_and_remaining_floors_at_zero(
        self, client, owner, member, project
    ):
        task = await create_task(client, project["id"], owner, originalEstimate=100)

        first = await _log(client, task["id"], owner, 90)
        assert first.status_code == 201
        assert first.json()["task"]["timeSpent"] == 90
        assert first.json()["task"]["remainingEstimate"] == 10

        second = await _log(client, task["id"], member, 30, description="Review")
        assert second.json()["task"] == {
            "id": task["id"],
            "timeSpent": 120,
            "remainingEstimate": 0,
            "originalEstimate": 100,
        }

        resp = await client.get(f"/api/tasks/{task['id']}", headers=auth_headers(owner))
        assert resp.json()["data"]["timeSpent"] == 120
        assert resp.json()["data"]["remainingEstimate"] == 0

    async def test_list_reports_total(self, client, owner, project):
        task = await create_task(client, project["id"], owner)
        await _log(client, task["id"], owner, 15)
        await _log(client, task["id"], owner, 45)

        resp = await client.get(f"/api/tasks/{task['id']}/timelogs", headers=auth_headers(owner))
        body = resp.json()
        assert body["count"] == 2
        assert body["totalTime"] == 60

    async def test_update_and_delete_recompute(self, client, owner, project):
        task = await create_task(client, project["id"], owner, originalEstimate=60)
        log = (await _log(client, task["id"], owner, 20)).json()["data"]

        resp = await client.put(
            f"/api/timelogs/{log['id']}", json={"timeSpent": 50}, headers=auth_headers(owner)
        )
        assert resp.status_code == 200
        assert resp.json()["task"]["timeSpent"] == 50
        assert resp.json()["task"]["remainingEstimate"] == 10

        resp = await client.delete(f"/api/timelogs/{log['id']}", headers=auth_headers(owner))
        assert resp.status_code == 200
        assert resp.json()["task"]["timeSpent"] == 0
        assert resp.json()["task"]["remainingEstimate"] == 60

    async def test_totals_are_pushed_to_project(self, client, owner, project, publisher):
        task = await create_task(client, project["id"], owner)
        await _log(client, task["id"], owner, 10)
        pushed = [p for pid, name, p in publisher.project_events if name == "task:updated"]
        assert pushed[-1]["timeSpent"] == 10


class TestTimeLogRules:
    async def test_minimum_one_minute(self, client, owner, project):
        task = await create_task(client, project["id"], owner)
        resp = await _log(client, task["id"], owner, 0)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Time spent must be at least 1 minute"

    async def test_only_log_owner_edits(self, client, owner, member, project):
        task = await create_task(client, project["id"], owner)
        log = (await _log(client, task["id"], member, 20)).json()["data"]

        resp = await client.put(
            f"/api/timelogs/{log['id']}", json={"timeSpent": 5}, headers=auth_headers(owner)
        )
        assert resp.status_code == 403

    async def test_admin_may_delete_any_log(self, client, owner, admin, project):
        task = await create_task(client, project["id"], owner)
        log = (await _log(client, task["id"], owner, 20)).json()["data"]
        resp = await client.delete(f"/api/timelogs/{log['id']}", headers=auth_headers(admin))
        assert resp.status_code == 200

    async def test_outsider_cannot_log(self, client, owner, outsider, project):
        task = await create_task(client, project["id"], owner)
        resp = await _log(client, task["id"], outsider, 10)
        assert resp.status_code == 403

    async def test_unknown_log(self, client, owner):
        resp = await client.delete(
            "/api/timelogs/00000000-0000-0000-0000-000000000000", headers=auth_headers(owner)
        )
        assert resp.status_code == 404
        assert resp.json()["message"] == "Time log not found"
