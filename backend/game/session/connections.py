"""Registry of live transport connections."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from game.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()


class ConnectionRegistry:
    """Track open connections by id for targeted delivery."""

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionProtocol] = {}  # connection_id -> connection

    def __len__(self) -> int:
        return len(self._connections)

    def register(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> ConnectionProtocol | None:
        return self._connections.get(connection_id)

    async def send(self, connection_id: str, message: dict[str, Any]) -> bool:
        """Send a message to one connection. Returns False if it is gone or the send failed."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.send_message(message)
        except (ConnectionError, RuntimeError, OSError):
            logger.warning("failed to deliver message", target_connection_id=connection_id, type=message.get("type"))
            return False
        return True
