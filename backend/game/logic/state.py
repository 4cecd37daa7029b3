"""
Game session state models.

All models are frozen Pydantic models. Transitions build new values with
model_copy (see state_utils) and never mutate a loaded session, so a failed
write leaves nothing half-applied.

Serialized field names are camelCase to match the client wire format.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from game.logic.enums import GameStatus
from game.logic.tiles import Tile

MIN_PLAYERS = 2
MAX_PLAYERS = 4

_STATE_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Player(BaseModel):
    """A seated player. Turn order is the player's index in GameSession.players."""

    model_config = _STATE_CONFIG

    id: str
    name: str
    connection_id: str | None = None  # volatile, rebound on reconnect
    rack: tuple[Tile, ...] = ()
    last_dropped_tile: Tile | None = None
    connected: bool = True
    disconnected_at: datetime | None = None  # UTC, None while connected


class GameSession(BaseModel):
    """Single source of truth for one game."""

    model_config = _STATE_CONFIG

    id: str
    code: str
    players: tuple[Player, ...] = ()
    pool: tuple[Tile, ...] = ()
    current_player_index: int = 0
    status: GameStatus = GameStatus.WAITING
    winner_id: str | None = None
    has_drawn_this_turn: bool = False
    created_at: datetime
    version: int = 0  # optimistic concurrency token, bumped by the store on every write

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def is_terminal(self) -> bool:
        return self.status in (GameStatus.FINISHED, GameStatus.DRAW)

    @property
    def current_player(self) -> Player | None:
        if not self.players:
            return None
        return self.players[self.current_player_index]

    def player_index(self, player_id: str) -> int | None:
        return next((i for i, p in enumerate(self.players) if p.id == player_id), None)

    def player_by_connection(self, connection_id: str) -> Player | None:
        return next((p for p in self.players if p.connection_id == connection_id), None)

    def left_neighbor_index(self, index: int) -> int:
        """Index of the player who acts immediately before index in turn order."""
        return (index - 1) % len(self.players)


# ---------------------------------------------------------------------------
# Client views
# ---------------------------------------------------------------------------


class PlayerView(BaseModel):
    """Public information about a seated player. The rack itself is hidden."""

    model_config = _STATE_CONFIG

    id: str
    name: str
    connected: bool
    rack_size: int
    last_dropped_tile: Tile | None = None
    disconnected_at: datetime | None = None


class OwnPlayerView(BaseModel):
    """A player's own record, including the rack."""

    model_config = _STATE_CONFIG

    id: str
    name: str
    rack: tuple[Tile, ...]
    last_dropped_tile: Tile | None = None
    connected: bool


class GameView(BaseModel):
    """Per-recipient projection of a session.

    my_rack is only present when the view is built for a seated player.
    """

    model_config = _STATE_CONFIG

    id: str
    code: str
    status: GameStatus
    players: list[PlayerView]
    current_player_index: int
    winner_id: str | None = None
    has_drawn_this_turn: bool
    pool_size: int
    my_rack: list[Tile] | None = None


def build_game_view(session: GameSession, viewer_id: str | None = None) -> GameView:
    """Build the view of session seen by viewer_id (None for a spectator/admin view)."""
    viewer = next((p for p in session.players if p.id == viewer_id), None)
    return GameView(
        id=session.id,
        code=session.code,
        status=session.status,
        players=[
            PlayerView(
                id=p.id,
                name=p.name,
                connected=p.connected,
                rack_size=len(p.rack),
                last_dropped_tile=p.last_dropped_tile,
                disconnected_at=p.disconnected_at,
            )
            for p in session.players
        ],
        current_player_index=session.current_player_index,
        winner_id=session.winner_id,
        has_drawn_this_turn=session.has_drawn_this_turn,
        pool_size=len(session.pool),
        my_rack=list(viewer.rack) if viewer is not None else None,
    )


def build_own_player_view(player: Player) -> OwnPlayerView:
    return OwnPlayerView(
        id=player.id,
        name=player.name,
        rack=player.rack,
        last_dropped_tile=player.last_dropped_tile,
        connected=player.connected,
    )
