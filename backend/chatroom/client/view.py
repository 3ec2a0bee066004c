"""
Client-side presence view.

A reducer over server-pushed events: the roster, the online count and the
typing indicators are never computed locally.  ``user-joined`` only adds a
notice line; the roster changes on the next authoritative ``user-list``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from chatroom.core import events
from chatroom.schemas.events import now_ms

logger = logging.getLogger(__name__)


@dataclass
class ChatLine:
    username: str
    message: str
    timestamp: int = field(default_factory=now_ms)
    kind: str = events.KIND_USER
    own: bool = False


def _username_of(event: dict[str, Any]) -> str | None:
    value = event.get("username")
    return value if isinstance(value, str) else None


class PresenceView:
    def __init__(self, own_name: str | None = None) -> None:
        self.own_name = own_name
        self.roster: list[str] = []
        self.typing: set[str] = set()
        self.lines: list[ChatLine] = []
        self.login_error: str | None = None
        self.in_chat = False
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            events.USER_LIST: self._on_user_list,
            events.MESSAGE: self._on_message,
            events.USER_JOINED: self._on_user_joined,
            events.USER_LEFT: self._on_user_left,
            events.TYPING: self._on_typing,
            events.STOP_TYPING: self._on_stop_typing,
            events.ERROR: self._on_error,
        }

    @property
    def online_count(self) -> int:
        return len(self.roster)

    def apply(self, event: dict[str, Any]) -> None:
        handler = self._handlers.get(event.get("type"))
        if handler is None:
            logger.debug("Ignoring unknown event %r", event.get("type"))
            return
        handler(event)

    def add_system_message(self, text: str, timestamp: int | None = None) -> None:
        self.lines.append(
            ChatLine(
                username=events.SYSTEM_USERNAME,
                message=text,
                timestamp=timestamp if timestamp is not None else now_ms(),
                kind=events.KIND_SYSTEM,
            )
        )

    def reset(self) -> None:
        """Back to the login view with nothing rendered."""
        self.own_name = None
        self.roster = []
        self.typing.clear()
        self.lines = []
        self.login_error = None
        self.in_chat = False

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_user_list(self, event: dict[str, Any]) -> None:
        self.in_chat = True
        self.login_error = None
        self.roster = list(event.get("users", []))

    def _on_message(self, event: dict[str, Any]) -> None:
        kind = event.get("msg_type", events.KIND_USER)
        username = event.get("username", "")
        self.lines.append(
            ChatLine(
                username=username,
                message=event.get("message", ""),
                timestamp=event.get("timestamp") or now_ms(),
                kind=kind,
                own=kind == events.KIND_USER and username == self.own_name,
            )
        )

    def _on_user_joined(self, event: dict[str, Any]) -> None:
        self.add_system_message(f"{event.get('username')} joined the chat room", event.get("timestamp"))

    def _on_user_left(self, event: dict[str, Any]) -> None:
        name = event.get("username")
        self.add_system_message(f"{name} left the chat room", event.get("timestamp"))
        self.roster = [n for n in self.roster if n != name]
        self.typing.discard(name)

    def _on_typing(self, event: dict[str, Any]) -> None:
        name = _username_of(event)
        if name is None or name == self.own_name:
            return
        self.typing.add(name)

    def _on_stop_typing(self, event: dict[str, Any]) -> None:
        name = _username_of(event)
        if name is not None:
            self.typing.discard(name)

    def _on_error(self, event: dict[str, Any]) -> None:
        if self.in_chat:
            logger.warning("Server error mid-session: %s", event.get("message"))
            return
        self.login_error = event.get("message")
