"""Real-time event publishing.

Endpoints receive an ``EventPublisher`` through a dependency and emit after
their transaction commits. The WebSocket ``ConnectionManager`` is the
production publisher; ``NullPublisher`` drops everything.
"""

from typing import Any, Protocol
from uuid import UUID

import orjson
import structlog
from fastapi import WebSocket

logger = structlog.get_logger()


class EventPublisher(Protocol):
    """Pushes named events to project or user channels."""

    async def emit_to_project(self, project_id: UUID, event: str, payload: Any) -> None: ...

    async def emit_to_user(self, user_id: UUID, event: str, payload: Any) -> None: ...


class NullPublisher:
    """Publisher that discards every event."""

    async def emit_to_project(self, project_id: UUID, event: str, payload: Any) -> None:
        return None

    async def emit_to_user(self, user_id: UUID, event: str, payload: Any) -> None:
        return None


class ConnectionManager:
    """Manages WebSocket connections for real-time updates."""

    def __init__(self):
        # Map of project_id -> set of websocket connections
        self.project_connections: dict[str, set[WebSocket]] = {}
        # Map of user_id -> websocket connections (one per open tab)
        self.user_connections: dict[str, set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: UUID) -> None:
        """Accept a connection and register it on the user's channel."""
        await websocket.accept()
        self.user_connections.setdefault(str(user_id), set()).add(websocket)
        logger.debug("websocket_connected", user_id=str(user_id))

    def disconnect(self, websocket: WebSocket, user_id: UUID) -> None:
        """Unregister a connection from its user channel and every project."""
        key = str(user_id)
        if key in self.user_connections:
            self.user_connections[key].discard(websocket)
            if not self.user_connections[key]:
                del self.user_connections[key]

        for project_id in list(self.project_connections):
            self.leave_project(websocket, project_id)
        logger.debug("websocket_disconnected", user_id=key)

    def join_project(self, websocket: WebSocket, project_id: UUID | str) -> None:
        self.project_connections.setdefault(str(project_id), set()).add(websocket)

    def leave_project(self, websocket: WebSocket, project_id: UUID | str) -> None:
        key = str(project_id)
        if key in self.project_connections:
            self.project_connections[key].discard(websocket)
            if not self.project_connections[key]:
                del self.project_connections[key]

    async def emit_to_project(self, project_id: UUID, event: str, payload: Any) -> None:
        """Broadcast an event to all sockets that joined the project."""
        await self._send_all(self.project_connections.get(str(project_id), set()), event, payload)

    async def emit_to_user(self, user_id: UUID, event: str, payload: Any) -> None:
        """Send an event to every connection of a user."""
        await self._send_all(self.user_connections.get(str(user_id), set()), event, payload)

    async def _send_all(self, connections: set[WebSocket], event: str, payload: Any) -> None:
        if not connections:
            return
        message = orjson.dumps({"event": event, "data": payload}).decode()
        for connection in list(connections):
            try:
                await connection.send_text(message)
            except Exception as e:
                # Connection might be closed
                logger.debug("websocket_send_failed", event_name=event, error=str(e))
                connections.discard(connection)


async def emit_project_event(
    publisher: EventPublisher, project_id: UUID, event: str, payload: Any
) -> None:
    """Emit to a project channel, logging instead of raising on failure."""
    try:
        await publisher.emit_to_project(project_id, event, payload)
    except Exception as e:
        logger.warning(
            "event_emit_failed",
            channel="project",
            project_id=str(project_id),
            event_name=event,
            error=str(e),
        )


async def emit_user_event(
    publisher: EventPublisher, user_id: UUID, event: str, payload: Any
) -> None:
    """Emit to a user channel, logging instead of raising on failure."""
    try:
        await publisher.emit_to_user(user_id, event, payload)
    except Exception as e:
        logger.warning(
            "event_emit_failed",
            channel="user",
            user_id=str(user_id),
            event_name=event,
            error=str(e),
        )
