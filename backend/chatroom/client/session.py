"""
Client session controller.

Owns one WebSocket at a time and the two client timers:

  typing timer     re-armed on every keystroke, sends stop-typing when it fires
  reconnect timer  armed after an unexpected close while in the chat view

Reconnect attempt n (1..max_attempts) waits base_delay_ms * n; a
successful open resets the counter.  On every open the last known
identity is re-announced with a plain join; if the name has been taken
meanwhile the server answers with an error and the session stays unjoined.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Protocol

import websockets
from websockets.exceptions import WebSocketException

from chatroom.client.view import PresenceView
from chatroom.config import settings
from chatroom.core import events

logger = logging.getLogger(__name__)


class Cancelable(Protocol):
    def cancel(self) -> Any: ...


Scheduler = Callable[[int, Callable[[], Awaitable[None]]], Cancelable]


def call_later(delay_ms: int, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
    """Run ``callback`` after ``delay_ms`` on the running loop; cancel the task to disarm."""

    async def _run() -> None:
        await asyncio.sleep(delay_ms / 1000)
        await callback()

    return asyncio.create_task(_run())


class ReconnectPolicy:
    def __init__(
        self,
        base_delay_ms: int = settings.RECONNECT_BASE_DELAY_MS,
        max_attempts: int = settings.RECONNECT_MAX_ATTEMPTS,
    ) -> None:
        self.base_delay_ms = base_delay_ms
        self.max_attempts = max_attempts
        self.attempts = 0

    def next_delay_ms(self) -> int | None:
        """Delay before the next attempt, or None once the attempts are used up."""
        if self.attempts >= self.max_attempts:
            return None
        self.attempts += 1
        return self.base_delay_ms * self.attempts

    def reset(self) -> None:
        self.attempts = 0


class SessionController:
    def __init__(
        self,
        url: str,
        view: PresenceView | None = None,
        *,
        policy: ReconnectPolicy | None = None,
        connector: Callable[[str], Awaitable[Any]] = websockets.connect,
        scheduler: Scheduler = call_later,
        typing_timeout_ms: int = settings.TYPING_TIMEOUT_MS,
    ) -> None:
        self.url = url
        self.view = view if view is not None else PresenceView()
        self.policy = policy if policy is not None else ReconnectPolicy()
        self.identity: str | None = None
        self.gave_up = False
        self._connector = connector
        self._schedule = scheduler
        self._typing_timeout_ms = typing_timeout_ms
        self._ws: Any = None
        self._open = False
        self._reader: asyncio.Task | None = None
        self._reconnect_timer: Cancelable | None = None
        self._typing_timer: Cancelable | None = None
        self._typing = False

    @property
    def is_open(self) -> bool:
        return self._open

    # ------------------------------------------------------------------
    # Channel lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        try:
            ws = await self._connector(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            logger.warning("Connection to %s failed: %s", self.url, exc)
            await self._on_close()
            return False

        self._ws = ws
        self._open = True
        logger.info("Connected to %s", self.url)
        self.policy.reset()
        self.gave_up = False
        if self.identity:
            await self.send({"type": events.JOIN, "username": self.identity})
        self._reader = asyncio.create_task(self._read_loop(ws))
        self._reader.add_done_callback(self._reader_done)
        return True

    async def send(self, event: dict[str, Any]) -> bool:
        """Send one envelope; silently dropped when the channel is not open."""
        if not self._open or self._ws is None:
            return False
        try:
            await self._ws.send(json.dumps(event))
            return True
        except WebSocketException as exc:
            logger.warning("Send failed, dropping %r: %s", event.get("type"), exc)
            return False

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Dropping non-JSON frame from server")
                    continue
                if not isinstance(data, dict):
                    continue
                try:
                    self.view.apply(data)
                except Exception as exc:
                    logger.error("Error applying event %r: %s", data.get("type"), exc, exc_info=True)
        except WebSocketException as exc:
            logger.info("Connection lost: %s", exc)
        finally:
            # A socket we already replaced or closed on purpose is not our concern
            if self._ws is ws:
                await self._on_close()

    def _reader_done(self, task: asyncio.Task) -> None:
        if self._reader is task:
            self._reader = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("Reader task failed", exc_info=task.exception())

    async def _on_close(self) -> None:
        self._open = False
        self._ws = None
        self._typing = False
        self._cancel_typing_timer()

        if not self.identity or not self.view.in_chat:
            logger.info("Connection closed before joining; not reconnecting")
            return

        self.view.add_system_message("Disconnected from server, trying to reconnect...")
        delay_ms = self.policy.next_delay_ms()
        if delay_ms is None:
            self.gave_up = True
            logger.warning("Giving up after %s reconnection attempts", self.policy.max_attempts)
            self.view.add_system_message("Reconnection failed, please refresh and try again")
            return

        logger.info(
            "Reconnecting in %s ms (attempt %s/%s)", delay_ms, self.policy.attempts, self.policy.max_attempts
        )
        self.view.add_system_message(
            f"Reconnecting (attempt {self.policy.attempts}/{self.policy.max_attempts})..."
        )
        self._cancel_reconnect_timer()
        self._reconnect_timer = self._schedule(delay_ms, self._reconnect_due)

    async def _reconnect_due(self) -> None:
        self._reconnect_timer = None
        await self.connect()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def login(self, username: str) -> bool:
        """Claim ``username``.  The outcome arrives later as user-list or error."""
        username = username.strip()
        if not username:
            return False
        self.identity = username
        self.view.own_name = username
        self.view.login_error = None
        if self._open:
            return await self.send({"type": events.JOIN, "username": username})
        # connect() announces the identity as soon as the channel opens
        return await self.connect()

    async def submit(self, text: str) -> bool:
        text = text.strip()
        if not text or not self._open:
            return False
        sent = await self.send({"type": events.MESSAGE, "message": text})
        await self.stop_typing()
        return sent

    async def on_input(self) -> None:
        """Call on every keystroke in the message box."""
        if not self._typing and self._open:
            self._typing = True
            await self.send({"type": events.TYPING})
        self._cancel_typing_timer()
        self._typing_timer = self._schedule(self._typing_timeout_ms, self._typing_due)

    async def stop_typing(self) -> None:
        if self._typing and self._open:
            self._typing = False
            await self.send({"type": events.STOP_TYPING})
        self._cancel_typing_timer()

    async def _typing_due(self) -> None:
        self._typing_timer = None
        await self.stop_typing()

    async def logout(self) -> None:
        self._cancel_reconnect_timer()
        self._cancel_typing_timer()
        self.identity = None
        self._typing = False
        ws, self._ws = self._ws, None
        self._open = False
        if ws is not None:
            await ws.close()
        self.view.reset()

    # ------------------------------------------------------------------

    def _cancel_typing_timer(self) -> None:
        if self._typing_timer is not None:
            self._typing_timer.cancel()
            self._typing_timer = None

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None
