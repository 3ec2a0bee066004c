"""
Protocol error taxonomy.

Every error carries a user-facing ``message``.  None of them terminate a
connection: the router reports rejections back to the sender as an
``error`` event and leaves the connection in the state it was in.
"""


class ChatError(Exception):
    """Base class for recoverable chat protocol errors."""

    message = "Request rejected"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class EmptyName(ChatError):
    message = "Username cannot be empty"


class NameTaken(ChatError):
    message = "Username already taken, please choose another one"


class AlreadyJoined(ChatError):
    message = "already joined"


class NotJoined(ChatError):
    message = "join required"


class TransportError(ChatError):
    """The channel underneath a connection is gone; not a protocol violation."""

    message = "connection closed"
