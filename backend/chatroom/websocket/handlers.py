import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from chatroom.websocket.manager import ConnectionManager
from chatroom.websocket.router import BroadcastRouter

logger = logging.getLogger(__name__)


async def chat_ws_handler(websocket: WebSocket, manager: ConnectionManager, router: BroadcastRouter) -> None:
    """Full lifecycle handler for a chat WebSocket connection."""
    await websocket.accept()
    connection_id = await manager.connect(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                logger.warning("Dropping non-text frame from connection %s", connection_id)
                continue
            try:
                data: Any = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Dropping non-JSON frame from connection %s", connection_id)
                continue

            try:
                await router.on_event(connection_id, data)
            except Exception as exc:
                event_type = data.get("type") if isinstance(data, dict) else None
                logger.error(
                    "Error handling event %r from connection %s: %s", event_type, connection_id, exc, exc_info=True
                )

    except WebSocketDisconnect:
        pass
    finally:
        # Drop the handle first so user-left only reaches the remaining peers
        manager.disconnect(connection_id)
        await router.on_disconnect(connection_id)
