"""
Pytest fixtures shared across all test modules.

Every test gets a fresh app from create_app(), so presence state never
leaks between tests.  The TestClient is always used as a context manager:
that keeps every WebSocket session on one event loop, which the shared
registry lock and the per-connection outbound queues rely on.
"""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chatroom.main import create_app


@pytest.fixture()
def app() -> FastAPI:
    return create_app()


@pytest.fixture()
def client(app: FastAPI):
    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def join(ws, username: str) -> list[str]:
    """Send join and drain the user-list + welcome sent back; returns the user list."""
    ws.send_json({"type": "join", "username": username})
    user_list = ws.receive_json()
    assert user_list["type"] == "user-list", user_list
    welcome = ws.receive_json()
    assert welcome["type"] == "message" and welcome["msg_type"] == "system", welcome
    return user_list["users"]


async def settle(rounds: int = 10) -> None:
    """Let queued tasks (writers, readers) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class RecordingTransport:
    """In-memory stand-in for the connection manager.

    Keeps an inbox per open connection; broadcasts expand to one delivery
    per open recipient so tests can count exactly who got what.
    """

    def __init__(self, *connection_ids: str) -> None:
        self.open: list[str] = list(connection_ids)
        self.inbox: dict[str, list[dict]] = {cid: [] for cid in connection_ids}

    def add(self, connection_id: str) -> None:
        self.open.append(connection_id)
        self.inbox[connection_id] = []

    def close(self, connection_id: str) -> None:
        self.open.remove(connection_id)

    async def send(self, connection_id: str, payload: dict) -> bool:
        if connection_id not in self.open:
            return False
        self.inbox[connection_id].append(payload)
        return True

    async def broadcast(self, payload: dict, exclude: str | None = None) -> int:
        delivered = 0
        for cid in list(self.open):
            if cid == exclude:
                continue
            self.inbox[cid].append(payload)
            delivered += 1
        return delivered

    def types(self, connection_id: str) -> list[str]:
        return [p["type"] for p in self.inbox[connection_id]]
