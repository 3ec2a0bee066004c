"""
Broadcast router: turns one inbound client event into outbound fan-out.

Per-connection state machine:

  Unjoined --join ok-->     Joined   (user-list + welcome to sender, user-joined to others)
  Unjoined --join failed--> Unjoined (error to sender)
  Unjoined --anything else--> Unjoined (error "join required")
  Joined   --message-->     Joined   (message to everyone, sender included)
  Joined   --typing/stop--> Joined   (typing/stop-typing to everyone but the sender)
  *        --disconnect-->  Closed   (user-left to the rest, only if it had joined)

A connection is Joined exactly when the registry holds a participant for
it, so the router keeps no per-connection state of its own.
"""

import asyncio
import logging
from typing import Any, Protocol

from pydantic import ValidationError

from chatroom.core.errors import ChatError, NotJoined
from chatroom.presence.registry import Participant, PresenceRegistry
from chatroom.schemas.events import (
    ChatMessage,
    ErrorEvent,
    JoinRequest,
    MessageRequest,
    StopTypingEvent,
    StopTypingRequest,
    TypingEvent,
    TypingRequest,
    UserJoinedEvent,
    UserLeftEvent,
    UserListEvent,
    client_event_adapter,
)

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(self, connection_id: str, payload: dict) -> bool: ...

    async def broadcast(self, payload: dict, exclude: str | None = None) -> int: ...


class BroadcastRouter:
    def __init__(self, registry: PresenceRegistry, transport: Transport) -> None:
        self.registry = registry
        self.transport = transport
        # Serializes registry mutations together with their fan-out
        self._membership_lock = asyncio.Lock()

    async def on_event(self, connection_id: str, data: Any) -> None:
        try:
            event = client_event_adapter.validate_python(data)
        except ValidationError as exc:
            logger.warning("Dropping malformed event from connection %s: %s", connection_id, exc.errors())
            return

        try:
            if isinstance(event, JoinRequest):
                await self._join(connection_id, event.username)
                return

            participant = await self.registry.get(connection_id)
            if participant is None:
                raise NotJoined()

            if isinstance(event, MessageRequest):
                msg = ChatMessage(username=participant.display_name, message=event.message)
                await self.transport.broadcast(msg.model_dump())
                logger.info("%s: %s", participant.display_name, event.message)
            elif isinstance(event, TypingRequest):
                await self.transport.broadcast(
                    TypingEvent(username=participant.display_name).model_dump(),
                    exclude=connection_id,
                )
            elif isinstance(event, StopTypingRequest):
                await self.transport.broadcast(
                    StopTypingEvent(username=participant.display_name).model_dump(),
                    exclude=connection_id,
                )
        except ChatError as exc:
            await self.transport.send(connection_id, ErrorEvent(message=exc.message).model_dump())

    async def on_disconnect(self, connection_id: str) -> Participant | None:
        async with self._membership_lock:
            participant = await self.registry.leave(connection_id)
            if participant is not None:
                await self.transport.broadcast(
                    UserLeftEvent(username=participant.display_name).model_dump(),
                    exclude=connection_id,
                )
        return participant

    async def _join(self, connection_id: str, username: str) -> None:
        async with self._membership_lock:
            participant = await self.registry.try_join(connection_id, username)
            users = await self.registry.snapshot()
            await self.transport.send(connection_id, UserListEvent(users=users).model_dump())
            welcome = ChatMessage.system(f"Welcome {participant.display_name} to the chat room!")
            await self.transport.send(connection_id, welcome.model_dump())
            await self.transport.broadcast(
                UserJoinedEvent(username=participant.display_name).model_dump(),
                exclude=connection_id,
            )
