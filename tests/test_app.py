"""Tests for the application shell: error envelope, health, rate limits and live events."""

from types import SimpleNamespace
from uuid import uuid4

import orjson
import pytest
from starlette.requests import Request

from flowops.api.v1.websocket import connection_manager
from flowops.config import get_settings
from flowops.exceptions import RateLimited
from flowops.middleware import rate_limit
from flowops.middleware.rate_limit import RateLimiter
from flowops.services.events import ConnectionManager, NullPublisher, emit_project_event
from tests._factory import auth_headers


class TestErrorEnvelope:
    async def test_unknown_route(self, client):
        resp = await client.get("/api/nothing-here")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "message": "Not Found"}

    async def test_malformed_id(self, client, owner):
        resp = await client.get("/api/tasks/not-a-uuid", headers=auth_headers(owner))
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["errors"][0]["field"] == "path.task_id"

    async def test_several_errors_are_listed(self, client, owner, project):
        resp = await client.post(
            f"/api/projects/{project['id']}/tasks",
            json={"title": "", "priority": "urgent"},
            headers=auth_headers(owner),
        )
        body = resp.json()
        assert resp.status_code == 400
        assert body["message"] == "Validation failed"
        assert {e["field"] for e in body["errors"]} == {"title", "priority"}

    async def test_request_id_header(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.json()["status"] == "healthy"

    async def test_ready_checks_database(self, client):
        resp = await client.get("/health/ready")
        assert resp.json()["checks"] == {"database": "healthy"}


def _request(host: str) -> Request:
    scope = {"type": "http", "method": "GET", "path": "/", "headers": [], "client": (host, 1234)}
    return Request(scope)


class TestRateLimiter:
    async def test_blocks_after_limit_per_client(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(get_settings(), "rate_limit_enabled", True)
        limiter = RateLimiter("test", limit=lambda s: 2, window=lambda s: 60, message="Slow down")

        await limiter(_request("10.0.0.1"))
        await limiter(_request("10.0.0.1"))
        with pytest.raises(RateLimited) as exc_info:
            await limiter(_request("10.0.0.1"))
        assert exc_info.value.message == "Slow down"
        assert 0 < exc_info.value.retry_after <= 61

        # other clients have their own window
        await limiter(_request("10.0.0.2"))

    async def test_expired_clients_are_forgotten(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(get_settings(), "rate_limit_enabled", True)
        clock = [1000.0]
        monkeypatch.setattr(rate_limit, "time", SimpleNamespace(monotonic=lambda: clock[0]))
        limiter = RateLimiter("test", limit=lambda s: 5, window=lambda s: 60, message="Slow down")

        await limiter(_request("10.0.0.1"))
        clock[0] += 61
        await limiter(_request("10.0.0.2"))

        assert set(limiter._hits) == {"10.0.0.2"}

    async def test_disabled_limiter_never_blocks(self):
        limiter = RateLimiter("test", limit=lambda s: 0, window=lambda s: 60, message="Slow down")
        await limiter(_request("10.0.0.1"))

    async def test_rate_limited_response(self, client, monkeypatch: pytest.MonkeyPatch):
        settings = get_settings()
        monkeypatch.setattr(settings, "rate_limit_enabled", True)
        monkeypatch.setattr(settings, "rate_limit_auth_requests", 1)

        body = {"email": "nobody@example.com", "password": "whatever"}
        await client.post("/api/auth/login", json=body)
        resp = await client.post("/api/auth/login", json=body)
        assert resp.status_code == 429
        assert resp.json()["code"] == "RATE_LIMITED"
        assert int(resp.headers["Retry-After"]) > 0


class FakeSocket:
    def __init__(self, fail: bool = False):
        self.sent: list[str] = []
        self.fail = fail
        self.accepted = False

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, message: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


class TestConnectionManager:
    async def test_project_events_reach_joined_sockets_only(self):
        manager = ConnectionManager()
        project_id, user_id = uuid4(), uuid4()
        joined, idle = FakeSocket(), FakeSocket()
        await manager.connect(joined, user_id)
        await manager.connect(idle, user_id)
        manager.join_project(joined, project_id)

        await manager.emit_to_project(project_id, "task:created", {"id": "t1"})

        assert [orjson.loads(m) for m in joined.sent] == [
            {"event": "task:created", "data": {"id": "t1"}}
        ]
        assert idle.sent == []

    async def test_user_events_reach_every_tab(self):
        manager = ConnectionManager()
        user_id = uuid4()
        tabs = [FakeSocket(), FakeSocket()]
        for tab in tabs:
            await manager.connect(tab, user_id)

        await manager.emit_to_user(user_id, "notification:new", {"id": "n1"})
        assert all(len(tab.sent) == 1 for tab in tabs)

    async def test_dead_socket_is_dropped(self):
        manager = ConnectionManager()
        project_id = uuid4()
        dead = FakeSocket(fail=True)
        manager.join_project(dead, project_id)

        await emit_project_event(manager, project_id, "task:updated", {})
        assert dead not in manager.project_connections.get(str(project_id), set())

    async def test_disconnect_leaves_projects(self):
        manager = ConnectionManager()
        project_id, user_id = uuid4(), uuid4()
        socket = FakeSocket()
        await manager.connect(socket, user_id)
        manager.join_project(socket, project_id)

        manager.disconnect(socket, user_id)
        assert manager.project_connections == {}
        assert manager.user_connections == {}

    async def test_dead_socket_does_not_starve_live_ones(self):
        manager = ConnectionManager()
        project_id = uuid4()
        sockets = [FakeSocket(fail=True), FakeSocket(), FakeSocket(fail=True), FakeSocket()]
        for socket in sockets:
            manager.join_project(socket, project_id)

        await manager.emit_to_project(project_id, "task:updated", {"id": "t1"})

        assert [len(socket.sent) for socket in sockets] == [0, 1, 0, 1]
        assert manager.project_connections[str(project_id)] == {sockets[1], sockets[3]}


def _socket_for(publisher) -> SimpleNamespace:
    return SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(event_publisher=publisher)))


class TestWebSocketPublisher:
    def test_other_publisher_is_left_in_place(self):
        publisher = NullPublisher()
        websocket = _socket_for(publisher)

        assert connection_manager(websocket) is None
        assert websocket.app.state.event_publisher is publisher

    def test_connection_manager_is_used(self):
        manager = ConnectionManager()
        assert connection_manager(_socket_for(manager)) is manager
