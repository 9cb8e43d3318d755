"""Tests for comments, mentions and the notifications they trigger."""

from uuid import uuid4

from sqlalchemy import select

from flowops.models.activity import Notification
from flowops.services.comments import parse_mention_ids
from tests._factory import auth_headers, create_task


def _mention(user) -> str:
    return f"@[{user.name}]({user.id})"


async def _comment(client, task_id, user, content):
    return await client.post(
        f"/api/tasks/{task_id}/comments", json={"content": content}, headers=auth_headers(user)
    )


async def _types_for(session_factory, user) -> list[str]:
    async with session_factory() as session:
        result = await session.execute(
            select(Notification.type)
            .where(Notification.user_id == user.id)
            .order_by(Notification.created_at)
        )
        return list(result.scalars())


class TestMentionParsing:
    def test_extracts_ids_in_order_without_duplicates(self):
        a, b = uuid4(), uuid4()
        content = f"@[Ann]({a}) and @[Bob]({b}) and again @[Ann]({a})"
        assert parse_mention_ids(content) == [a, b]

    def test_ignores_malformed_ids(self):
        assert parse_mention_ids("@[Ann](not-a-uuid) plain @Ann") == []


class TestComments:
    async def test_mentioned_user_gets_mention_not_comment_notification(
        self, client, owner, member, project, session_factory
    ):
        task = await create_task(client, project["id"], owner, assignee=str(member.id))
        before = await _types_for(session_factory, member)

        resp = await _comment(client, task["id"], owner, f"Can you look, {_mention(member)}?")
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert [u["id"] for u in data["mentions"]] == [str(member.id)]
        assert data["isEdited"] is False

        after = await _types_for(session_factory, member)
        assert after[len(before):] == ["task_mentioned"]

    async def test_assignee_and_reporter_are_told_about_comments(
        self, client, owner, member, project, session_factory
    ):
        task = await create_task(client, project["id"], member, assignee=str(owner.id))
        await _comment(client, task["id"], member, "Progress update")

        # the reporter wrote the comment, so only the assignee hears about it
        assert (await _types_for(session_factory, owner))[-1] == "task_commented"
        assert "task_commented" not in await _types_for(session_factory, member)

    async def test_blank_content(self, client, owner, project):
        task = await create_task(client, project["id"], owner)
        resp = await _comment(client, task["id"], owner, "   ")
        assert resp.status_code == 400
        assert resp.json()["message"] == "Please add comment content"

    async def test_list_newest_first(self, client, owner, project):
        task = await create_task(client, project["id"], owner)
        await _comment(client, task["id"], owner, "first")
        await _comment(client, task["id"], owner, "second")

        resp = await client.get(f"/api/tasks/{task['id']}/comments", headers=auth_headers(owner))
        assert [c["content"] for c in resp.json()["data"]] == ["second", "first"]


class TestCommentEdits:
    async def test_edit_marks_edited_and_notifies_only_new_mentions(
        self, client, owner, member, outsider, project, session_factory
    ):
        task = await create_task(client, project["id"], owner)
        comment = (
            await _comment(client, task["id"], owner, f"ping {_mention(member)}")
        ).json()["data"]

        resp = await client.put(
            f"/api/comments/{comment['id']}",
            json={"content": f"ping {_mention(member)} and {_mention(outsider)}"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["isEdited"] is True
        assert len(resp.json()["data"]["mentions"]) == 2

        assert await _types_for(session_factory, member) == ["task_mentioned"]
        assert await _types_for(session_factory, outsider) == ["task_mentioned"]

    async def test_only_author_edits(self, client, owner, member, project):
        task = await create_task(client, project["id"], owner)
        comment = (await _comment(client, task["id"], member, "mine")).json()["data"]

        resp = await client.put(
            f"/api/comments/{comment['id']}",
            json={"content": "owner rewrite"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 403

    async def test_author_edits_after_leaving_project(
        self, client, owner, member, project, publisher
    ):
        task = await create_task(client, project["id"], owner)
        comment = (await _comment(client, task["id"], member, "first pass")).json()["data"]
        resp = await client.delete(
            f"/api/projects/{project['id']}/members/{member.id}", headers=auth_headers(owner)
        )
        assert resp.status_code == 200

        resp = await client.put(
            f"/api/comments/{comment['id']}",
            json={"content": "second pass"},
            headers=auth_headers(member),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["isEdited"] is True
        assert "comment:updated" in publisher.names()

    async def test_admin_deletes_any_comment(self, client, owner, admin, project, publisher):
        task = await create_task(client, project["id"], owner)
        comment = (await _comment(client, task["id"], owner, "remove me")).json()["data"]

        resp = await client.delete(f"/api/comments/{comment['id']}", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert "comment:deleted" in publisher.names()

        resp = await client.delete(f"/api/comments/{comment['id']}", headers=auth_headers(admin))
        assert resp.status_code == 404
        assert resp.json()["message"] == "Comment not found"
