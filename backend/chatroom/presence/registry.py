"""
Presence registry: the authoritative table of who is in the room.

State:
  connection_id  →  Participant(connection_id, display_name, joined_at)

Display names are unique across live participants (exact, case-sensitive
match).  A duplicate is rejected at join time, never renamed.  Every
public method runs under one asyncio.Lock, so two concurrent joins can
never both observe the pre-insert table.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from chatroom.core.errors import AlreadyJoined, EmptyName, NameTaken
from chatroom.schemas.events import now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Participant:
    connection_id: str
    display_name: str
    joined_at: int = field(default_factory=now_ms)


class PresenceRegistry:
    def __init__(self) -> None:
        # dicts keep insertion order, so snapshots come out in join order
        self._participants: dict[str, Participant] = {}
        self._lock = asyncio.Lock()

    async def try_join(self, connection_id: str, requested_name: str) -> Participant:
        """Bind ``requested_name`` to ``connection_id``.

        Raises EmptyName for blank names, NameTaken when a live participant
        already holds the exact name, AlreadyJoined when the connection is
        bound already.
        """
        if not requested_name or not requested_name.strip():
            raise EmptyName()
        async with self._lock:
            if connection_id in self._participants:
                raise AlreadyJoined()
            if any(p.display_name == requested_name for p in self._participants.values()):
                raise NameTaken()
            participant = Participant(connection_id=connection_id, display_name=requested_name)
            self._participants[connection_id] = participant
        logger.info("Participant %r joined (connection %s)", requested_name, connection_id)
        return participant

    async def leave(self, connection_id: str) -> Participant | None:
        """Remove and return the participant; None if the connection never joined."""
        async with self._lock:
            participant = self._participants.pop(connection_id, None)
        if participant is not None:
            logger.info("Participant %r left (connection %s)", participant.display_name, connection_id)
        return participant

    async def get(self, connection_id: str) -> Participant | None:
        async with self._lock:
            return self._participants.get(connection_id)

    async def snapshot(self) -> list[str]:
        """Display names of every live participant, in join order."""
        async with self._lock:
            return [p.display_name for p in self._participants.values()]

    async def count(self) -> int:
        return len(await self.snapshot())
