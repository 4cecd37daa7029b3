from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from game.logic.events import BroadcastTarget, CommandResult, ConnectionTarget, PlayerTarget
from game.logic.exceptions import GameRuleError, StaleSessionError
from game.messaging.event_payload import service_event_payload
from game.messaging.types import ErrorMessage
from game.session.connections import ConnectionRegistry

if TYPE_CHECKING:
    from game.logic.melds import Meld
    from game.logic.service import GameSessionService
    from game.logic.state import GameSession, GameView
    from game.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()


class SessionManager:
    """
    Host for GameSessionService.

    Serializes commands per session code with an asyncio.Lock, turns rule
    violations and storage failures into error messages for the caller, and
    delivers the resulting events to live connections.
    """

    def __init__(
        self,
        game_service: GameSessionService,
        connections: ConnectionRegistry | None = None,
    ) -> None:
        self._game_service = game_service
        self._connections = connections or ConnectionRegistry()
        self._game_locks: dict[str, asyncio.Lock] = {}  # code -> Lock

    @property
    def connections(self) -> ConnectionRegistry:
        return self._connections

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.register(connection)

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.unregister(connection.connection_id)

    async def _has_session(self, code: str) -> bool:
        """Locks are only created for stored sessions, so unknown codes cannot grow the lock table."""
        return code in self._game_locks or await self._game_service.store.get(code) is not None

    def _get_game_lock(self, code: str) -> asyncio.Lock:
        lock = self._game_locks.get(code)
        if lock is None:
            lock = asyncio.Lock()
            self._game_locks[code] = lock
        return lock

    async def active_game_count(self) -> int:
        return len(await self._game_service.store.codes())

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_game(self, connection: ConnectionProtocol) -> None:
        await self._run(
            connection,
            None,
            "create game",
            lambda: self._game_service.create_game(connection.connection_id),
        )

    async def join_game(self, connection: ConnectionProtocol, code: str, player_name: str) -> None:
        await self._run(
            connection,
            code,
            "join game",
            lambda: self._game_service.join_game(connection.connection_id, code, player_name),
        )

    async def start_game(self, connection: ConnectionProtocol, code: str) -> None:
        await self._run(
            connection,
            code,
            "start game",
            lambda: self._game_service.start_game(connection.connection_id, code),
        )

    async def draw_from_pool(self, connection: ConnectionProtocol, code: str) -> None:
        await self._run(
            connection,
            code,
            "draw tile",
            lambda: self._game_service.draw_from_pool(connection.connection_id, code),
        )

    async def draw_from_neighbor(self, connection: ConnectionProtocol, code: str) -> None:
        await self._run(
            connection,
            code,
            "draw tile",
            lambda: self._game_service.draw_from_neighbor(connection.connection_id, code),
        )

    async def drop_tile(self, connection: ConnectionProtocol, code: str, tile_id: str) -> None:
        await self._run(
            connection,
            code,
            "drop tile",
            lambda: self._game_service.drop_tile(connection.connection_id, code, tile_id),
        )

    async def announce_win(self, connection: ConnectionProtocol, code: str, melds: list[Meld]) -> None:
        await self._run(
            connection,
            code,
            "announce win",
            lambda: self._game_service.announce_win(connection.connection_id, code, melds),
        )

    async def leave_game(self, connection: ConnectionProtocol, code: str) -> None:
        await self._run(
            connection,
            code,
            "leave game",
            lambda: self._game_service.leave_game(connection.connection_id, code),
        )

    async def request_skip_turn(self, connection: ConnectionProtocol, code: str) -> None:
        await self._run(
            connection,
            code,
            "skip turn",
            lambda: self._game_service.request_skip_turn(connection.connection_id, code),
        )

    async def reconnect(self, connection: ConnectionProtocol, code: str, player_id: str) -> None:
        await self._run(
            connection,
            code,
            "reconnect",
            lambda: self._game_service.reconnect(connection.connection_id, code, player_id),
        )

    async def disconnect(self, connection: ConnectionProtocol) -> None:
        """Handle a dropped transport. Nothing is sent back to the dropped connection."""
        try:
            code = await self._game_service.resolve_code(connection.connection_id)
        except (OSError, sqlite3.Error):
            logger.exception("failed to resolve session for disconnect")
            return
        if code is None:
            return
        await self._run(
            connection,
            code,
            "disconnect",
            lambda: self._game_service.disconnect(connection.connection_id),
            notify_caller=False,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def delete_game(self, code: str) -> bool:
        async with self._get_game_lock(code):
            deleted = await self._game_service.delete_game(code)
        self._game_locks.pop(code, None)
        return deleted

    async def get_game_view(self, code: str) -> GameView | None:
        return await self._game_service.get_game_view(code)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        connection: ConnectionProtocol,
        code: str | None,
        action: str,
        command: Callable[[], Awaitable[CommandResult]],
        *,
        notify_caller: bool = True,
    ) -> None:
        """Run one command under the session lock and deliver its events.

        Create has no code yet and runs unlocked: it only inserts under a
        fresh code, which the store guards.
        """
        structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
        if code is not None:
            structlog.contextvars.bind_contextvars(code=code)

        try:
            if code is None or not await self._has_session(code):
                # nothing to serialize against: the command can only be rejected or no-op
                result = await command()
            else:
                async with self._get_game_lock(code):
                    result = await command()
        except GameRuleError as e:
            logger.warning("command rejected", action=action, reason=str(e))
            if notify_caller:
                await self._send_error(connection, str(e))
            return
        except (StaleSessionError, OSError, sqlite3.Error):
            logger.exception("session store failure", action=action)
            if notify_caller:
                await self._send_error(connection, f"Failed to {action}")
            return
        except Exception:
            logger.exception("unexpected error while handling command", action=action)
            if notify_caller:
                await self._send_error(connection, f"Failed to {action}")
            return

        if code is not None and result.session is None:
            # the command removed the session (or it never existed)
            self._game_locks.pop(code, None)
        await self._deliver(result)

    async def _send_error(self, connection: ConnectionProtocol, message: str) -> None:
        await self._connections.send(connection.connection_id, ErrorMessage(message=message).model_dump())

    async def _deliver(self, result: CommandResult) -> None:
        """Send each event to the connections its target resolves to."""
        session = result.session
        for event in result.events:
            message = service_event_payload(event)
            for connection_id in self._resolve_target(event.target, session):
                await self._connections.send(connection_id, message)

    @staticmethod
    def _resolve_target(
        target: ConnectionTarget | PlayerTarget | BroadcastTarget,
        session: GameSession | None,
    ) -> list[str]:
        if isinstance(target, ConnectionTarget):
            return [target.connection_id]
        if session is None:
            return []
        if isinstance(target, PlayerTarget):
            player = next((p for p in session.players if p.id == target.player_id), None)
            if player is None or player.connection_id is None:
                return []
            return [player.connection_id]
        return [
            p.connection_id
            for p in session.players
            if p.connection_id is not None and p.id != target.exclude_player_id
        ]
