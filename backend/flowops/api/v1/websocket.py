"""WebSocket endpoint for real-time updates.

Clients connect with ``/ws?token=<access token>`` and are subscribed to
their own user channel. Project events arrive after sending
``{"type": "join:project", "projectId": "..."}``.
"""

from uuid import UUID

import orjson
import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from flowops.api.v1.auth import authenticate_token
from flowops.db.session import get_session_factory
from flowops.exceptions import FlowOpsError
from flowops.services.access_control import check_project_access
from flowops.services.events import ConnectionManager

router = APIRouter()
logger = structlog.get_logger()


def connection_manager(websocket: WebSocket) -> ConnectionManager | None:
    """The installed publisher when it can hold sockets, else None."""
    publisher = getattr(websocket.app.state, "event_publisher", None)
    if not isinstance(publisher, ConnectionManager):
        logger.warning(
            "websocket_publisher_unsupported",
            publisher=type(publisher).__name__,
        )
        return None
    return publisher


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str | None = Query(None)):
    """Main WebSocket endpoint for real-time updates."""
    session_factory = get_session_factory(websocket)
    try:
        if not token:
            raise FlowOpsError("Authentication error")
        async with session_factory() as db:
            user = await authenticate_token(db, token)
    except FlowOpsError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager = connection_manager(websocket)
    if manager is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    await manager.connect(websocket, user.id)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = orjson.loads(data)
            except orjson.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid message"})
                continue
            if not isinstance(message, dict):
                continue

            message_type = message.get("type")
            if message_type == "join:project":
                try:
                    project_id = UUID(str(message.get("projectId")))
                    async with session_factory() as db:
                        await check_project_access(db, project_id, user)
                except (ValueError, FlowOpsError) as e:
                    message_text = e.message if isinstance(e, FlowOpsError) else "Invalid project id"
                    await websocket.send_json({"type": "error", "message": message_text})
                    continue
                manager.join_project(websocket, project_id)
                await websocket.send_json({"type": "joined", "projectId": str(project_id)})
                logger.debug("websocket_joined_project", user_id=str(user.id), project_id=str(project_id))

            elif message_type == "leave:project":
                manager.leave_project(websocket, str(message.get("projectId")))

            elif message_type == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        manager.disconnect(websocket, user.id)
