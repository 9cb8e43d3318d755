"""Tests for issue links between tasks."""

import pytest

from flowops.services.issue_links import REVERSE_LINK_TYPES, reverse_link_type
from tests._factory import auth_headers, create_task


async def _link(client, source_id, target_id, user, link_type="blocks"):
    return await client.post(
        f"/api/tasks/{source_id}/links",
        json={"targetTaskId": target_id, "linkType": link_type},
        headers=auth_headers(user),
    )


@pytest.mark.parametrize("link_type", sorted(REVERSE_LINK_TYPES))
def test_reverse_is_an_involution(link_type):
    assert reverse_link_type(reverse_link_type(link_type)) == link_type


class TestLinks:
    async def test_link_reads_reversed_from_target(self, client, owner, project):
        a = await create_task(client, project["id"], owner, title="A")
        b = await create_task(client, project["id"], owner, title="B")

        resp = await _link(client, a["id"], b["id"], owner)
        assert resp.status_code == 201
        created = resp.json()["data"]
        assert created["linkType"] == "blocks"
        assert created["direction"] == "outgoing"
        assert created["linkedTask"]["taskKey"] == b["taskKey"]

        resp = await client.get(f"/api/tasks/{b['id']}/links", headers=auth_headers(owner))
        (incoming,) = resp.json()["data"]
        assert incoming["linkType"] == "is_blocked_by"
        assert incoming["direction"] == "incoming"
        assert incoming["linkedTask"]["id"] == a["id"]

    async def test_duplicate_link(self, client, owner, project):
        a = await create_task(client, project["id"], owner, title="A")
        b = await create_task(client, project["id"], owner, title="B")
        await _link(client, a["id"], b["id"], owner, "relates_to")

        resp = await _link(client, a["id"], b["id"], owner, "relates_to")
        assert resp.status_code == 400
        assert resp.json()["message"] == "This link already exists"

    async def test_self_link(self, client, owner, project):
        a = await create_task(client, project["id"], owner)
        resp = await _link(client, a["id"], a["id"], owner)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cannot link a task to itself"

    async def test_unknown_link_type(self, client, owner, project):
        a = await create_task(client, project["id"], owner, title="A")
        b = await create_task(client, project["id"], owner, title="B")
        resp = await _link(client, a["id"], b["id"], owner, "causes")
        assert resp.status_code == 400

    async def test_delete_removes_both_views(self, client, owner, member, project):
        a = await create_task(client, project["id"], owner, title="A")
        b = await create_task(client, project["id"], owner, title="B")
        link = (await _link(client, a["id"], b["id"], member, "duplicates")).json()["data"]

        resp = await client.delete(f"/api/links/{link['id']}", headers=auth_headers(member))
        assert resp.status_code == 200

        for task in (a, b):
            resp = await client.get(f"/api/tasks/{task['id']}/links", headers=auth_headers(owner))
            assert resp.json()["count"] == 0

    async def test_outsider_cannot_link(self, client, owner, outsider, project):
        a = await create_task(client, project["id"], owner, title="A")
        b = await create_task(client, project["id"], owner, title="B")
        resp = await _link(client, a["id"], b["id"], outsider)
        assert resp.status_code == 403
