"""
chatroom: FastAPI backend entry point.

A single-room chat: one WebSocket endpoint at /ws, plus /health.
Run with ``python -m chatroom.main`` (listens on $PORT, default 3000).
"""

import logging

import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatroom.api import health
from chatroom.config import settings
from chatroom.presence.registry import PresenceRegistry
from chatroom.websocket.handlers import chat_ws_handler
from chatroom.websocket.manager import ConnectionManager
from chatroom.websocket.router import BroadcastRouter

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="chatroom",
        description="Single-room real-time chat",
        version="1.0.0",
        debug=settings.DEBUG,
    )

    # Each app owns its presence state; nothing lives at module level
    app.state.registry = PresenceRegistry()
    app.state.connections = ConnectionManager()
    app.state.router = BroadcastRouter(app.state.registry, app.state.connections)

    # -----------------------------------------------------------------------
    # CORS
    # -----------------------------------------------------------------------
    # allow_origins=["*"] is incompatible with allow_credentials=True in the CORS
    # spec. When the wildcard is present, switch to allow_origin_regex=".*"
    # which achieves the same effect without triggering Starlette's guard.
    cors_origins = [o for o in settings.CORS_ORIGINS if o != "*"]
    cors_regex = ".*" if len(cors_origins) < len(settings.CORS_ORIGINS) else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_origin_regex=cors_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await chat_ws_handler(websocket, app.state.connections, app.state.router)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


app = create_app()


def run() -> None:
    logger.info("Chat server listening on http://%s:%s", settings.HOST, settings.PORT)
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
