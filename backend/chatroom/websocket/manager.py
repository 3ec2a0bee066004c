import asyncio
import json
import logging
import uuid

from fastapi import WebSocket

from chatroom.core.errors import TransportError

logger = logging.getLogger(__name__)


class ConnectionHandle:
    """One live WebSocket plus its outbound queue.

    ``send`` only enqueues; a writer task drains the queue onto the socket,
    so callers never wait on a slow peer.  Once the socket fails or the
    handle is closed every further ``send`` raises TransportError.
    """

    def __init__(self, connection_id: str, websocket: WebSocket) -> None:
        self.connection_id = connection_id
        self.websocket = websocket
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._writer: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        self._writer = asyncio.create_task(self._drain())

    def send(self, payload: dict) -> None:
        if self._closed:
            raise TransportError()
        self._outbox.put_nowait(json.dumps(payload))

    async def _drain(self) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await self.websocket.send_text(text)
            except Exception as exc:
                logger.warning("Transport error on connection %s: %s", self.connection_id, exc)
                self._closed = True
                return

    def close(self) -> None:
        """Stop delivering; anything still queued is discarded."""
        self._closed = True
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()


class ConnectionManager:
    """Tracks the live connection set and fans events out over it.

    Connections are stored as {connection_id: ConnectionHandle}.  A
    broadcast works on a snapshot of the handles taken when it starts, so
    connections closing mid-fan-out are skipped instead of mutating the
    collection being iterated.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionHandle] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Register an already-accepted WebSocket and return its connection id."""
        connection_id = uuid.uuid4().hex
        handle = ConnectionHandle(connection_id, websocket)
        handle.start()
        self._connections[connection_id] = handle
        logger.info("WebSocket connected (connection %s)", connection_id)
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        handle = self._connections.pop(connection_id, None)
        if handle is None:
            return
        handle.close()
        logger.info("WebSocket disconnected (connection %s)", connection_id)

    def snapshot(self) -> list[ConnectionHandle]:
        """The live handles at this instant; later connects/disconnects do not affect it."""
        return list(self._connections.values())

    async def send(self, connection_id: str, payload: dict) -> bool:
        """Queue a JSON payload for one connection.

        Returns True if queued, False if the connection is gone.
        """
        handle = self._connections.get(connection_id)
        if handle is None:
            return False
        try:
            handle.send(payload)
            return True
        except TransportError:
            return False

    async def broadcast(self, payload: dict, exclude: str | None = None) -> int:
        """Queue a JSON payload for every live connection; returns the recipient count."""
        handles = self.snapshot()
        delivered = 0
        for handle in handles:
            if handle.connection_id == exclude:
                continue
            try:
                handle.send(payload)
                delivered += 1
            except TransportError:
                logger.debug("Skipping closed connection %s", handle.connection_id)
        return delivered
