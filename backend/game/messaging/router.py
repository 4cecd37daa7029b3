from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from game.messaging.types import (
    AnnounceWinMessage,
    CreateGameMessage,
    DrawFromNeighborMessage,
    DrawFromPoolMessage,
    DropTileMessage,
    ErrorMessage,
    JoinGameMessage,
    LeaveGameMessage,
    ReconnectGameMessage,
    RequestSkipTurnMessage,
    StartGameMessage,
    parse_client_message,
)

if TYPE_CHECKING:
    from game.messaging.protocol import ConnectionProtocol
    from game.session.manager import SessionManager

logger = logging.getLogger(__name__)


def _validation_summary(error: ValidationError) -> str:
    """First validation problem in a short, user-facing form."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"Invalid message: {location}: {first['msg']}" if location else f"Invalid message: {first['msg']}"


class MessageRouter:
    """
    Routes incoming messages to appropriate handlers.

    This class contains pure business logic and can be tested
    without real WebSocket connections.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except ValidationError as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await connection.send_message(ErrorMessage(message=_validation_summary(e)).model_dump())
            return

        manager = self._session_manager
        if isinstance(message, CreateGameMessage):
            await manager.create_game(connection)
        elif isinstance(message, JoinGameMessage):
            await manager.join_game(connection, message.code, message.player_name)
        elif isinstance(message, StartGameMessage):
            await manager.start_game(connection, message.code)
        elif isinstance(message, DrawFromPoolMessage):
            await manager.draw_from_pool(connection, message.code)
        elif isinstance(message, DrawFromNeighborMessage):
            await manager.draw_from_neighbor(connection, message.code)
        elif isinstance(message, DropTileMessage):
            await manager.drop_tile(connection, message.code, message.tile_id)
        elif isinstance(message, AnnounceWinMessage):
            await manager.announce_win(connection, message.code, message.melds)
        elif isinstance(message, LeaveGameMessage):
            await manager.leave_game(connection, message.code)
        elif isinstance(message, RequestSkipTurnMessage):
            await manager.request_skip_turn(connection, message.code)
        elif isinstance(message, ReconnectGameMessage):
            await manager.reconnect(connection, message.code, message.player_id)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.disconnect(connection)
        self._session_manager.unregister_connection(connection)
