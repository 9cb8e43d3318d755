"""Tests for the sprint lifecycle, backlog and velocity."""

from sqlalchemy import select

from flowops.models.activity import Notification
from tests._factory import auth_headers, create_sprint, create_task


async def _start(client, sprint_id, user):
    return await client.put(f"/api/sprints/{sprint_id}/start", headers=auth_headers(user))


async def _complete(client, sprint_id, user, **body):
    return await client.put(
        f"/api/sprints/{sprint_id}/complete", json=body or None, headers=auth_headers(user)
    )


class TestSprintLifecycle:
    async def test_create_is_planned(self, client, owner, project):
        sprint = await create_sprint(client, project["id"], owner, goal="Ship search")
        assert sprint["status"] == "planned"
        assert sprint["velocity"] == 0
        assert sprint["createdBy"]["id"] == str(owner.id)

    async def test_end_before_start_is_rejected(self, client, owner, project):
        resp = await client.post(
            f"/api/projects/{project['id']}/sprints",
            json={"name": "Backwards", "startDate": "2026-02-10", "endDate": "2026-02-01"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "End date must be after start date"

    async def test_plain_member_cannot_manage(self, client, member, project):
        resp = await client.post(
            f"/api/projects/{project['id']}/sprints",
            json={"name": "Mine", "startDate": "2026-02-01", "endDate": "2026-02-10"},
            headers=auth_headers(member),
        )
        assert resp.status_code == 403

    async def test_project_manager_member_can_manage(self, client, owner, make_user, project):
        manager = await make_user("Pat Manager", role="project_manager")
        await client.post(
            f"/api/projects/{project['id']}/members",
            json={"userId": str(manager.id)},
            headers=auth_headers(owner),
        )
        sprint = await create_sprint(client, project["id"], manager)
        resp = await _start(client, sprint["id"], manager)
        assert resp.status_code == 200

    async def test_only_one_active_sprint_per_project(self, client, owner, project):
        first = await create_sprint(client, project["id"], owner)
        second = await create_sprint(client, project["id"], owner, name="Sprint 2")

        assert (await _start(client, first["id"], owner)).status_code == 200
        resp = await _start(client, second["id"], owner)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Project already has an active sprint"

        await _complete(client, first["id"], owner)
        assert (await _start(client, second["id"], owner)).status_code == 200

    async def test_state_machine_rejects_out_of_order_moves(self, client, owner, project):
        sprint = await create_sprint(client, project["id"], owner)
        resp = await _complete(client, sprint["id"], owner)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Sprint is not active"

        await _start(client, sprint["id"], owner)
        resp = await _start(client, sprint["id"], owner)
        assert resp.json()["message"] == "Sprint is not in planned status"

    async def test_start_notifies_project_users(
        self, client, owner, member, project, session_factory, publisher
    ):
        sprint = await create_sprint(client, project["id"], owner)
        await _start(client, sprint["id"], owner)

        async with session_factory() as session:
            result = await session.execute(
                select(Notification.type).where(Notification.user_id == member.id)
            )
            assert list(result.scalars()) == ["sprint_started"]
        assert "sprint:started" in publisher.names()


class TestSprintCompletion:
    async def test_velocity_counts_done_points_and_unfinished_go_to_backlog(
        self, client, owner, project
    ):
        sprint = await create_sprint(client, project["id"], owner)
        done = await create_task(
            client, project["id"], owner, storyPoints=5, status="done", sprint=sprint["id"]
        )
        open_task = await create_task(
            client, project["id"], owner, storyPoints=3, sprint=sprint["id"]
        )
        await _start(client, sprint["id"], owner)

        resp = await _complete(client, sprint["id"], owner, moveToBacklog=True)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "completed"
        assert data["velocity"] == 5
        assert data["completedPoints"] == 5

        done_now = await client.get(f"/api/tasks/{done['id']}", headers=auth_headers(owner))
        open_now = await client.get(f"/api/tasks/{open_task['id']}", headers=auth_headers(owner))
        assert done_now.json()["data"]["sprintId"] == sprint["id"]
        assert open_now.json()["data"]["sprintId"] is None

    async def test_complete_without_move_keeps_tasks(self, client, owner, project):
        sprint = await create_sprint(client, project["id"], owner)
        task = await create_task(client, project["id"], owner, sprint=sprint["id"])
        await _start(client, sprint["id"], owner)
        await _complete(client, sprint["id"], owner)

        resp = await client.get(f"/api/tasks/{task['id']}", headers=auth_headers(owner))
        assert resp.json()["data"]["sprintId"] == sprint["id"]

    async def test_velocity_report(self, client, owner, project):
        for i, points in enumerate((3, 8), start=1):
            sprint = await create_sprint(
                client,
                project["id"],
                owner,
                name=f"Sprint {i}",
                startDate=f"2026-0{i}-01",
                endDate=f"2026-0{i}-14",
            )
            await create_task(
                client,
                project["id"],
                owner,
                storyPoints=points,
                status="done",
                sprint=sprint["id"],
            )
            await _start(client, sprint["id"], owner)
            await _complete(client, sprint["id"], owner)

        resp = await client.get(
            f"/api/projects/{project['id']}/velocity", headers=auth_headers(owner)
        )
        body = resp.json()
        assert [s["name"] for s in body["data"]] == ["Sprint 1", "Sprint 2"]
        assert [s["velocity"] for s in body["data"]] == [3, 8]
        # (3 + 8) / 2 = 5.5 rounds half up
        assert body["avgVelocity"] == 6


class TestSprintTasks:
    async def test_detail_reports_live_points(self, client, owner, project):
        sprint = await create_sprint(client, project["id"], owner)
        await create_task(client, project["id"], owner, storyPoints=2, sprint=sprint["id"])
        await create_task(
            client, project["id"], owner, storyPoints=5, status="done", sprint=sprint["id"]
        )

        resp = await client.get(f"/api/sprints/{sprint['id']}", headers=auth_headers(owner))
        data = resp.json()["data"]
        assert data["taskCount"] == 2
        assert data["completedCount"] == 1
        assert data["totalPoints"] == 7
        assert data["completedPoints"] == 5

    async def test_move_tasks_in_and_out(self, client, owner, project):
        sprint = await create_sprint(client, project["id"], owner)
        task = await create_task(client, project["id"], owner, storyPoints=3)

        resp = await client.post(
            f"/api/sprints/{sprint['id']}/tasks",
            json={"taskIds": [task["id"]]},
            headers=auth_headers(owner),
        )
        assert resp.json()["count"] == 1

        backlog = await client.get(
            f"/api/projects/{project['id']}/backlog", headers=auth_headers(owner)
        )
        assert backlog.json()["count"] == 0

        resp = await client.request(
            "DELETE",
            f"/api/sprints/{sprint['id']}/tasks",
            json={"taskIds": [task["id"]]},
            headers=auth_headers(owner),
        )
        assert resp.json()["message"] == "1 tasks moved to backlog"

        backlog = await client.get(
            f"/api/projects/{project['id']}/backlog", headers=auth_headers(owner)
        )
        assert backlog.json()["totalPoints"] == 3

    async def test_task_ids_are_required(self, client, owner, project):
        sprint = await create_sprint(client, project["id"], owner)
        resp = await client.post(
            f"/api/sprints/{sprint['id']}/tasks", json={}, headers=auth_headers(owner)
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "taskIds array is required"

    async def test_delete_returns_tasks_to_backlog(self, client, owner, project):
        sprint = await create_sprint(client, project["id"], owner)
        task = await create_task(client, project["id"], owner, sprint=sprint["id"])

        resp = await client.delete(f"/api/sprints/{sprint['id']}", headers=auth_headers(owner))
        assert resp.status_code == 200

        resp = await client.get(f"/api/tasks/{task['id']}", headers=auth_headers(owner))
        assert resp.json()["data"]["sprintId"] is None

        resp = await client.get(f"/api/sprints/{sprint['id']}", headers=auth_headers(owner))
        assert resp.status_code == 404
