# WebSocket event type definitions
# Every envelope on the wire is a JSON object {"type": <one of these>, ...}.

# Client -> server
JOIN = "join"
MESSAGE = "message"
TYPING = "typing"
STOP_TYPING = "stop-typing"

# Server -> client (MESSAGE, TYPING and STOP_TYPING are reused)
USER_LIST = "user-list"
USER_JOINED = "user-joined"
USER_LEFT = "user-left"
ERROR = "error"

# Message kinds, carried in the "msg_type" field of a MESSAGE envelope
KIND_USER = "user"
KIND_SYSTEM = "system"

# Display name used for server-authored messages
SYSTEM_USERNAME = "system"
