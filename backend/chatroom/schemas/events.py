import time
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from chatroom.core import events


def now_ms() -> int:
    """Milliseconds since the Unix epoch, the timestamp unit on the wire."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Client -> server
# ---------------------------------------------------------------------------


class JoinRequest(BaseModel):
    type: Literal["join"]
    username: str


class MessageRequest(BaseModel):
    type: Literal["message"]
    message: str


class TypingRequest(BaseModel):
    type: Literal["typing"]


class StopTypingRequest(BaseModel):
    type: Literal["stop-typing"]


ClientEvent = Annotated[
    Union[JoinRequest, MessageRequest, TypingRequest, StopTypingRequest],
    Field(discriminator="type"),
]

client_event_adapter = TypeAdapter(ClientEvent)


# ---------------------------------------------------------------------------
# Server -> client
# ---------------------------------------------------------------------------


class UserListEvent(BaseModel):
    type: Literal["user-list"] = events.USER_LIST
    users: list[str]


class ChatMessage(BaseModel):
    """A broadcast chat line.  Immutable once built; never stored."""

    type: Literal["message"] = events.MESSAGE
    username: str
    message: str
    timestamp: int = Field(default_factory=now_ms)
    msg_type: Literal["user", "system"] = events.KIND_USER

    model_config = {"frozen": True}

    @classmethod
    def system(cls, text: str) -> "ChatMessage":
        return cls(username=events.SYSTEM_USERNAME, message=text, msg_type=events.KIND_SYSTEM)


class UserJoinedEvent(BaseModel):
    type: Literal["user-joined"] = events.USER_JOINED
    username: str
    timestamp: int = Field(default_factory=now_ms)


class UserLeftEvent(BaseModel):
    type: Literal["user-left"] = events.USER_LEFT
    username: str
    timestamp: int = Field(default_factory=now_ms)


class TypingEvent(BaseModel):
    type: Literal["typing"] = events.TYPING
    username: str


class StopTypingEvent(BaseModel):
    type: Literal["stop-typing"] = events.STOP_TYPING
    username: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = events.ERROR
    message: str
