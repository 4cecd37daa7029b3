from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute

from game.logic.service import GameSessionService
from game.messaging.router import MessageRouter
from game.server.settings import GameServerSettings, StoreBackend
from game.server.websocket import websocket_endpoint
from game.session.manager import SessionManager
from game.session.sqlite_store import SqliteSessionStore
from game.session.store import InMemorySessionStore, SessionStore
from shared.db import Database
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: GameServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            "active_games": await session_manager.active_game_count(),
            "max_games": settings.max_games,
        },
    )


async def get_game(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    view = await session_manager.get_game_view(request.path_params["code"].upper())
    if view is None:
        return JSONResponse({"error": "Game not found"}, status_code=404)
    return JSONResponse(view.model_dump(by_alias=True, exclude_none=True, mode="json"))


async def delete_game(request: Request) -> Response:
    session_manager: SessionManager = request.app.state.session_manager
    if not await session_manager.delete_game(request.path_params["code"].upper()):
        return JSONResponse({"error": "Game not found"}, status_code=404)
    return Response(status_code=204)


def _build_store(settings: GameServerSettings) -> tuple[SessionStore, Database | None]:
    """Return the configured store and, for SQLite, the database the app must close."""
    if settings.store_backend == StoreBackend.SQLITE:
        db = Database(settings.database_path)
        db.connect()
        return SqliteSessionStore(db), db
    return InMemorySessionStore(), None


def create_app(
    settings: GameServerSettings | None = None,
    game_service: GameSessionService | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = GameServerSettings()

    # When the app builds its own store, it owns the DB lifecycle.
    owned_db: Database | None = None

    if session_manager is None:
        if game_service is None:
            store, owned_db = _build_store(settings)
            game_service = GameSessionService(
                store,
                tiles_per_player=settings.tiles_per_player,
                skip_turn_grace_seconds=settings.skip_turn_grace_seconds,
                max_games=settings.max_games,
            )
        session_manager = SessionManager(game_service)

    if message_router is None:
        message_router = MessageRouter(session_manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/games/{code}", get_game, methods=["GET"]),
        Route("/games/{code}", delete_game, methods=["DELETE"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        yield
        if owned_db is not None:
            owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "DELETE"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager

    logger.info("game server ready", store_backend=settings.store_backend)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = GameServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
