from __future__ import annotations

import contextlib
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from duel.messaging.router import MessageRouter
from duel.server.settings import DuelServerSettings
from duel.server.websocket import websocket_endpoint
from duel.session.manager import SessionManager
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

# RoomInfo fields exposed by the public room listing
_LISTED_ROOM_FIELDS = {"code", "players", "started", "created_at"}


def _session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    manager = _session_manager(request)
    return JSONResponse(
        {
            "status": "online",
            "rooms": manager.registry.room_count,
            "players": manager.registry.player_count,
            "uptime": round(manager.uptime_seconds, 3),
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


async def list_rooms(request: Request) -> JSONResponse:
    rooms = _session_manager(request).registry.rooms_info()
    return JSONResponse(
        {"rooms": [info.model_dump(mode="json", by_alias=True, include=_LISTED_ROOM_FIELDS) for info in rooms]},
    )


def create_app(
    settings: DuelServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    """Build the ASGI app. Tests inject their own manager and router."""
    settings = settings or DuelServerSettings()
    manager = session_manager or SessionManager(settings.timing, max_rooms=settings.max_rooms)
    router = message_router or MessageRouter(manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, router)

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        manager.start()
        logger.info("sweeper and heartbeat started")
        try:
            yield
        finally:
            await manager.shutdown()

    app = Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/api/status", status, methods=["GET"]),
            Route("/api/rooms", list_rooms, methods=["GET"]),
            WebSocketRoute("/ws", ws_endpoint),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,  # type: ignore[arg-type]
                allow_origins=settings.cors_origins,
                allow_methods=["GET"],
                allow_headers=["Content-Type"],
            ),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_manager = manager

    logger.info("duel server ready", max_rooms=settings.max_rooms)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (uvicorn --factory)."""
    settings = DuelServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
