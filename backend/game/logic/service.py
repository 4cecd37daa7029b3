"""
Game session lifecycle.

GameSessionService applies one command to one session: load from the store,
check preconditions, build the next state with immutable updates, write it
back with a compare-and-swap, and return the events to deliver.

Preconditions are checked before anything is written. A rejected command
raises a GameRuleError subclass whose message is user-facing, and the stored
session is left untouched.
"""

from __future__ import annotations

import math
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from game.logic.codes import generate_game_code
from game.logic.enums import GameStatus
from game.logic.events import (
    BroadcastTarget,
    CommandResult,
    ConnectionTarget,
    GameCreatedEvent,
    GameOverEvent,
    GameStartedEvent,
    InvalidAnnounceEvent,
    NeighborTileTakenEvent,
    PlayerDisconnectedEvent,
    PlayerDrewTileEvent,
    PlayerJoinedEvent,
    PlayerLeftEvent,
    PlayerReconnectedEvent,
    PlayerTarget,
    ReconnectFailedEvent,
    ReconnectSuccessEvent,
    ServiceEvent,
    TileDrawnEvent,
    TileDroppedEvent,
    TurnChangedEvent,
    TurnSkippedEvent,
    service_event,
)
from game.logic.exceptions import (
    AlreadyDrewError,
    AlreadyInGameError,
    GameAlreadyStartedError,
    GameFullError,
    GameNotInProgressError,
    MustDrawFirstError,
    NoTileAvailableError,
    NotEnoughPlayersError,
    NotYourTurnError,
    PlayerNotFoundError,
    ServerAtCapacityError,
    SessionNotFoundError,
    SkipTurnRejectedError,
    StaleSessionError,
    TileNotInRackError,
)
from game.logic.melds import can_announce_win, resolve_claimed_melds
from game.logic.state import (
    MAX_PLAYERS,
    MIN_PLAYERS,
    GameSession,
    GameView,
    Player,
    build_game_view,
    build_own_player_view,
)
from game.logic.state_utils import add_tile_to_rack, advance_turn, remove_player, update_player
from game.logic.tiles import DEFAULT_TILES_PER_PLAYER, deal_tiles, find_tile, generate_pool, remove_tile

if TYPE_CHECKING:
    import random
    from collections.abc import Callable, Sequence

    from game.logic.events import GameEvent
    from game.logic.melds import Meld
    from game.session.store import SessionStore

logger = structlog.get_logger()

DEFAULT_SKIP_TURN_GRACE_SECONDS = 60

GAME_NOT_FOUND = "Game not found"
PLAYER_NOT_FOUND = "Player not found"
NOT_IN_GAME = "You are not in this game"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class GameSessionService:
    """
    Lifecycle controller for game sessions.

    The service performs no locking. Commands for the same session code
    must be serialized by the caller (SessionManager holds one asyncio.Lock
    per code); the store's compare-and-swap turns any missed serialization
    into a StaleSessionError instead of a lost update.

    Every command returns a CommandResult: the events to deliver and the
    stored session they were built from.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        tiles_per_player: int = DEFAULT_TILES_PER_PLAYER,
        skip_turn_grace_seconds: float = DEFAULT_SKIP_TURN_GRACE_SECONDS,
        max_games: int | None = None,
        now: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._tiles_per_player = tiles_per_player
        self._skip_turn_grace_seconds = skip_turn_grace_seconds
        self._max_games = max_games
        self._now = now or _utcnow
        self._rng = rng

    @property
    def store(self) -> SessionStore:
        return self._store

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def create_game(self, connection_id: str) -> CommandResult:
        """Create an empty session under a fresh code. The creator still has to join it."""
        if self._max_games is not None and len(await self._store.codes()) >= self._max_games:
            raise ServerAtCapacityError("Server at capacity")

        while True:
            code = generate_game_code(self._rng)
            if await self._store.get(code) is not None:
                continue
            session = GameSession(id=str(uuid.uuid4()), code=code, created_at=self._now())
            try:
                stored = await self._store.put(session, expected_version=None)
            except StaleSessionError:
                # code taken between the lookup and the write
                continue
            break

        logger.info("game created", code=code)
        return CommandResult(
            events=[service_event(GameCreatedEvent(code=code), ConnectionTarget(connection_id))],
            session=stored,
        )

    async def join_game(self, connection_id: str, code: str, player_name: str) -> CommandResult:
        session = await self._load(code)
        if session.status != GameStatus.WAITING:
            raise GameAlreadyStartedError("Game already started")
        if session.player_count >= MAX_PLAYERS:
            raise GameFullError("Game is full")
        if session.player_by_connection(connection_id) is not None:
            raise AlreadyInGameError("You are already in this game")
        await self._require_unbound(connection_id, code)

        player = Player(id=str(uuid.uuid4()), name=player_name, connection_id=connection_id)
        stored = await self._save(session, session.model_copy(update={"players": (*session.players, player)}))
        await self._store.bind(connection_id, code)

        logger.info("player joined", code=code, player_id=player.id, player_count=stored.player_count)
        events = [
            service_event(
                PlayerJoinedEvent(
                    player=build_own_player_view(player),
                    game_state=build_game_view(stored, player.id),
                ),
                PlayerTarget(player.id),
            ),
        ]
        public = build_game_view(stored).players[-1]
        events.extend(
            self._per_player(
                stored,
                lambda view: PlayerJoinedEvent(player=public, game_state=view),
                exclude_player_id=player.id,
            ),
        )
        return CommandResult(events=events, session=stored)

    async def start_game(self, connection_id: str, code: str) -> CommandResult:
        session = await self._load(code)
        if session.player_count < MIN_PLAYERS:
            raise NotEnoughPlayersError(f"Need at least {MIN_PLAYERS} players to start")
        if session.status != GameStatus.WAITING:
            raise GameAlreadyStartedError("Game already started")
        self._require_player(session, connection_id)

        deal = deal_tiles(generate_pool(), session.player_count, self._tiles_per_player, self._rng)
        players = tuple(
            player.model_copy(update={"rack": rack, "last_dropped_tile": None})
            for player, rack in zip(session.players, deal.racks, strict=True)
        )
        started = session.model_copy(
            update={
                "players": players,
                "pool": deal.pool,
                "status": GameStatus.PLAYING,
                "current_player_index": 0,
                "has_drawn_this_turn": False,
                "winner_id": None,
            },
        )
        stored = await self._save(session, started)

        logger.info("game started", code=code, player_count=stored.player_count, pool_size=len(stored.pool))
        events = self._per_player(stored, lambda view: GameStartedEvent(game_state=view))
        events.append(service_event(TurnChangedEvent(current_player_index=0), BroadcastTarget()))
        return CommandResult(events=events, session=stored)

    # ------------------------------------------------------------------
    # Turn commands
    # ------------------------------------------------------------------

    async def draw_from_pool(self, connection_id: str, code: str) -> CommandResult:
        session = await self._load(code)
        index, player = self._require_turn(session, connection_id)
        if session.has_drawn_this_turn:
            raise AlreadyDrewError("You already drew this turn")

        if not session.pool:
            stored = await self._save(
                session,
                session.model_copy(update={"status": GameStatus.DRAW, "winner_id": None}),
            )
            logger.info("game ended in a draw", code=code)
            return CommandResult(
                events=self._per_player(
                    stored,
                    lambda view: GameOverEvent(winner_id=None, game_state=view, is_draw=True),
                ),
                session=stored,
            )

        tile = session.pool[0]
        updated = add_tile_to_rack(session, index, tile)
        updated = updated.model_copy(update={"pool": session.pool[1:], "has_drawn_this_turn": True})
        stored = await self._save(session, updated)

        logger.debug("tile drawn from pool", code=code, player_id=player.id, pool_size=len(stored.pool))
        return CommandResult(
            events=[
                service_event(
                    TileDrawnEvent(tile=tile, game_state=build_game_view(stored, player.id)),
                    PlayerTarget(player.id),
                ),
                service_event(
                    PlayerDrewTileEvent(player_index=index, pool_size=len(stored.pool)),
                    BroadcastTarget(exclude_player_id=player.id),
                ),
            ],
            session=stored,
        )

    async def draw_from_neighbor(self, connection_id: str, code: str) -> CommandResult:
        session = await self._load(code)
        index, player = self._require_turn(session, connection_id)
        if session.has_drawn_this_turn:
            raise AlreadyDrewError("You already drew this turn")

        neighbor_index = session.left_neighbor_index(index)
        tile = session.players[neighbor_index].last_dropped_tile
        if tile is None or neighbor_index == index:
            raise NoTileAvailableError("No tile available from your neighbor")

        updated = update_player(session, neighbor_index, last_dropped_tile=None)
        updated = add_tile_to_rack(updated, index, tile)
        updated = updated.model_copy(update={"has_drawn_this_turn": True})
        stored = await self._save(session, updated)

        logger.debug("tile taken from neighbor", code=code, player_id=player.id, tile_id=tile.id)
        return CommandResult(
            events=[
                service_event(
                    TileDrawnEvent(tile=tile, game_state=build_game_view(stored, player.id)),
                    PlayerTarget(player.id),
                ),
                service_event(
                    NeighborTileTakenEvent(taker_index=index, neighbor_index=neighbor_index),
                    BroadcastTarget(),
                ),
            ],
            session=stored,
        )

    async def drop_tile(self, connection_id: str, code: str, tile_id: str) -> CommandResult:
        """
        Move a tile from the caller's rack to their last-dropped slot and pass the turn.

        A previous dropped tile the next player did not take goes to the end
        of the pool, so every tile stays accounted for.
        """
        session = await self._load(code)
        index, player = self._require_turn(session, connection_id)
        if not session.has_drawn_this_turn:
            raise MustDrawFirstError("You must draw a tile first")
        tile = find_tile(player.rack, tile_id)
        if tile is None:
            raise TileNotInRackError("Tile not in your rack")

        pool = session.pool
        if player.last_dropped_tile is not None:
            pool = (*pool, player.last_dropped_tile)
        updated = update_player(session, index, rack=remove_tile(player.rack, tile_id), last_dropped_tile=tile)
        updated = advance_turn(updated.model_copy(update={"pool": pool}))
        stored = await self._save(session, updated)

        logger.debug("tile dropped", code=code, player_id=player.id, tile_id=tile_id)
        events = self._per_player(
            stored,
            lambda view: TileDroppedEvent(player_index=index, tile=tile, game_state=view),
        )
        events.append(
            service_event(TurnChangedEvent(current_player_index=stored.current_player_index), BroadcastTarget()),
        )
        return CommandResult(events=events, session=stored)

    async def announce_win(self, connection_id: str, code: str, melds: Sequence[Meld]) -> CommandResult:
        """
        Verify a win claim against the caller's server-side rack.

        A failed claim is not an error: the claimant gets invalid-announce
        with the reason and the session is unchanged.
        """
        session = await self._load(code)
        player = self._require_player(session, connection_id)
        if session.status != GameStatus.PLAYING:
            raise GameNotInProgressError("Game is not in progress")

        claimed = resolve_claimed_melds(player.rack, melds)
        check = can_announce_win(player.rack, claimed)
        if not check.valid:
            logger.warning("win claim rejected", code=code, player_id=player.id, rejection=check.rejection)
            return CommandResult(
                events=[service_event(InvalidAnnounceEvent(reason=check.reason), PlayerTarget(player.id))],
                session=session,
            )

        stored = await self._save(
            session,
            session.model_copy(update={"status": GameStatus.FINISHED, "winner_id": player.id}),
        )
        logger.info("game won", code=code, winner_id=player.id, meld_count=len(claimed))
        return CommandResult(
            events=self._per_player(
                stored,
                lambda view: GameOverEvent(winner_id=player.id, game_state=view, winning_melds=list(claimed)),
            ),
            session=stored,
        )

    # ------------------------------------------------------------------
    # Membership and connectivity
    # ------------------------------------------------------------------

    async def leave_game(self, connection_id: str, code: str) -> CommandResult:
        """
        Remove the caller's seat. A no-op when the session or the seat is unknown.

        The last player out deletes the session.
        """
        session = await self._store.get(code)
        if session is None:
            return CommandResult(events=[])
        player = session.player_by_connection(connection_id)
        if player is None:
            return CommandResult(events=[], session=session)

        index = session.player_index(player.id)
        was_current = index == session.current_player_index
        updated = remove_player(session, index)

        if not updated.players:
            # delete also drops the bindings to this code
            await self._store.delete(code)
            logger.info("last player left, game removed", code=code, player_id=player.id)
            return CommandResult(events=[])

        stored = await self._save(session, updated)
        await self._store.unbind(connection_id)
        logger.info("player left", code=code, player_id=player.id, player_count=stored.player_count)
        events = self._per_player(
            stored,
            lambda view: PlayerLeftEvent(player_id=player.id, player_name=player.name, game_state=view),
        )
        if was_current and stored.status == GameStatus.PLAYING:
            events.append(
                service_event(TurnChangedEvent(current_player_index=stored.current_player_index), BroadcastTarget()),
            )
        return CommandResult(events=events, session=stored)

    async def resolve_code(self, connection_id: str) -> str | None:
        """Return the session code the connection is bound to, if any."""
        return await self._store.lookup(connection_id)

    async def disconnect(self, connection_id: str) -> CommandResult:
        """
        Mark the caller's seat as disconnected and start its skip-turn grace period.

        The seat, rack and turn position are kept for a later reconnect.
        """
        code = await self._store.lookup(connection_id)
        if code is None:
            return CommandResult(events=[])

        session = await self._store.get(code)
        if session is None:
            await self._store.unbind(connection_id)
            return CommandResult(events=[])
        player = session.player_by_connection(connection_id)
        if player is None:
            await self._store.unbind(connection_id)
            return CommandResult(events=[], session=session)

        updated = update_player(
            session,
            session.player_index(player.id),
            connection_id=None,
            connected=False,
            disconnected_at=self._now(),
        )
        stored = await self._save(session, updated)
        await self._store.unbind(connection_id)

        logger.info("player disconnected", code=code, player_id=player.id)
        return CommandResult(
            events=self._per_player(
                stored,
                lambda view: PlayerDisconnectedEvent(player_id=player.id, player_name=player.name, game_state=view),
                exclude_player_id=player.id,
            ),
            session=stored,
        )

    async def reconnect(self, connection_id: str, code: str, player_id: str) -> CommandResult:
        """
        Rebind an existing seat to a new connection.

        Failures are reported as reconnect-failed to the caller rather than
        as errors, so clients can fall back to the lobby.
        """
        session = await self._store.get(code)
        if session is None:
            return self._reconnect_failed(connection_id, GAME_NOT_FOUND)
        index = session.player_index(player_id)
        if index is None:
            return self._reconnect_failed(connection_id, PLAYER_NOT_FOUND, session)

        seated = session.player_by_connection(connection_id)
        if seated is not None and seated.id != player_id:
            raise AlreadyInGameError("You are already in this game")
        await self._require_unbound(connection_id, code)

        previous = session.players[index].connection_id
        updated = update_player(session, index, connection_id=connection_id, connected=True, disconnected_at=None)
        stored = await self._save(session, updated)
        if previous is not None and previous != connection_id:
            await self._store.unbind(previous)
        await self._store.bind(connection_id, code)
        player = stored.players[index]

        logger.info("player reconnected", code=code, player_id=player_id)
        events = [
            service_event(
                ReconnectSuccessEvent(
                    player=build_own_player_view(player),
                    game_state=build_game_view(stored, player_id),
                ),
                ConnectionTarget(connection_id),
            ),
        ]
        events.extend(
            self._per_player(
                stored,
                lambda view: PlayerReconnectedEvent(player_id=player_id, game_state=view),
                exclude_player_id=player_id,
            ),
        )
        return CommandResult(events=events, session=stored)

    async def request_skip_turn(self, connection_id: str, code: str) -> CommandResult:
        """
        Pass the turn of a current player who has been disconnected past the grace period.

        Any seated player may ask. The skipped player keeps their rack.
        """
        session = await self._load(code)
        self._require_player(session, connection_id)
        if session.status != GameStatus.PLAYING:
            raise GameNotInProgressError("Game is not in progress")

        current = session.current_player
        if current.connected or current.disconnected_at is None:
            raise SkipTurnRejectedError("Player is still connected")
        elapsed = (self._now() - current.disconnected_at).total_seconds()
        remaining = self._skip_turn_grace_seconds - elapsed
        if remaining > 0:
            raise SkipTurnRejectedError(f"Wait {math.ceil(remaining)}s before skipping")

        stored = await self._save(session, advance_turn(session))

        logger.info("turn skipped", code=code, skipped_player_id=current.id)
        events = self._per_player(
            stored,
            lambda view: TurnSkippedEvent(
                skipped_player_id=current.id,
                skipped_player_name=current.name,
                game_state=view,
            ),
        )
        events.append(
            service_event(TurnChangedEvent(current_player_index=stored.current_player_index), BroadcastTarget()),
        )
        return CommandResult(events=events, session=stored)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def delete_game(self, code: str) -> bool:
        deleted = await self._store.delete(code)
        if deleted:
            logger.info("game deleted", code=code)
        return deleted

    async def get_game_view(self, code: str) -> GameView | None:
        """Public projection of a session: no rack contents."""
        session = await self._store.get(code)
        if session is None:
            return None
        return build_game_view(session)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, code: str) -> GameSession:
        session = await self._store.get(code)
        if session is None:
            raise SessionNotFoundError(GAME_NOT_FOUND)
        return session

    async def _save(self, loaded: GameSession, updated: GameSession) -> GameSession:
        return await self._store.put(updated, expected_version=loaded.version)

    async def _require_unbound(self, connection_id: str, code: str) -> None:
        """A connection holds a seat in at most one session."""
        bound = await self._store.lookup(connection_id)
        if bound is not None and bound != code:
            raise AlreadyInGameError("You are already in another game")

    @staticmethod
    def _require_player(session: GameSession, connection_id: str) -> Player:
        player = session.player_by_connection(connection_id)
        if player is None:
            raise PlayerNotFoundError(NOT_IN_GAME)
        return player

    def _require_turn(self, session: GameSession, connection_id: str) -> tuple[int, Player]:
        player = self._require_player(session, connection_id)
        if session.status != GameStatus.PLAYING:
            raise GameNotInProgressError("Game is not in progress")
        index = session.player_index(player.id)
        if index != session.current_player_index:
            raise NotYourTurnError("Not your turn")
        return index, player

    @staticmethod
    def _per_player(
        session: GameSession,
        build: Callable[[GameView], GameEvent],
        *,
        exclude_player_id: str | None = None,
    ) -> list[ServiceEvent]:
        """One event per seated player, each carrying that player's own view."""
        return [
            service_event(build(build_game_view(session, player.id)), PlayerTarget(player.id))
            for player in session.players
            if player.id != exclude_player_id
        ]

    @staticmethod
    def _reconnect_failed(connection_id: str, reason: str, session: GameSession | None = None) -> CommandResult:
        logger.warning("reconnect failed", reason=reason)
        return CommandResult(
            events=[service_event(ReconnectFailedEvent(reason=reason), ConnectionTarget(connection_id))],
            session=session,
        )
