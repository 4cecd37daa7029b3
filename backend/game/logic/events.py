"""Outbound event models and service event transport container.

Domain event classes are the canonical outbound event types. ServiceEvent is
the transport wrapper that pairs an event with a typed routing target; the
SessionManager resolves targets to live connections and delivers them.

Events that carry a gameState are built once per recipient, because every
view is projected for the player receiving it (see build_game_view).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from game.logic.melds import Meld
from game.logic.state import GameSession, GameView, OwnPlayerView, PlayerView
from game.logic.tiles import Tile

# ---------------------------------------------------------------------------
# Typed routing targets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectionTarget:
    """Event should be sent to one transport connection (e.g. the caller)."""

    connection_id: str


@dataclass(frozen=True)
class PlayerTarget:
    """Event should be sent to one seated player, if connected."""

    player_id: str


@dataclass(frozen=True)
class BroadcastTarget:
    """Event should be sent to every connected player in the session."""

    exclude_player_id: str | None = None


EventTarget = ConnectionTarget | PlayerTarget | BroadcastTarget


# ---------------------------------------------------------------------------
# Event type enum
# ---------------------------------------------------------------------------


class EventType(StrEnum):
    """Outbound event names."""

    GAME_CREATED = "game-created"
    PLAYER_JOINED = "player-joined"
    GAME_STARTED = "game-started"
    TURN_CHANGED = "turn-changed"
    TILE_DRAWN = "tile-drawn"
    PLAYER_DREW_TILE = "player-drew-tile"
    NEIGHBOR_TILE_TAKEN = "neighbor-tile-taken"
    TILE_DROPPED = "tile-dropped"
    GAME_OVER = "game-over"
    INVALID_ANNOUNCE = "invalid-announce"
    PLAYER_LEFT = "player-left"
    TURN_SKIPPED = "turn-skipped"
    RECONNECT_SUCCESS = "reconnect-success"
    PLAYER_RECONNECTED = "player-reconnected"
    RECONNECT_FAILED = "reconnect-failed"
    PLAYER_DISCONNECTED = "player-disconnected"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Domain event models
# ---------------------------------------------------------------------------


class GameEvent(BaseModel):
    """Base class for all outbound events."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: EventType


class GameCreatedEvent(GameEvent):
    type: EventType = EventType.GAME_CREATED
    code: str


class PlayerJoinedEvent(GameEvent):
    """Sent to the joiner (with their own record) and to everyone else (public record)."""

    type: EventType = EventType.PLAYER_JOINED
    player: OwnPlayerView | PlayerView
    game_state: GameView


class GameStartedEvent(GameEvent):
    type: EventType = EventType.GAME_STARTED
    game_state: GameView


class TurnChangedEvent(GameEvent):
    type: EventType = EventType.TURN_CHANGED
    current_player_index: int


class TileDrawnEvent(GameEvent):
    """Sent only to the player who drew."""

    type: EventType = EventType.TILE_DRAWN
    tile: Tile
    game_state: GameView


class PlayerDrewTileEvent(GameEvent):
    """Sent to everyone except the drawer. The drawn tile stays hidden."""

    type: EventType = EventType.PLAYER_DREW_TILE
    player_index: int
    pool_size: int


class NeighborTileTakenEvent(GameEvent):
    type: EventType = EventType.NEIGHBOR_TILE_TAKEN
    taker_index: int
    neighbor_index: int


class TileDroppedEvent(GameEvent):
    type: EventType = EventType.TILE_DROPPED
    player_index: int
    tile: Tile
    game_state: GameView


class GameOverEvent(GameEvent):
    """Broadcast on a verified win (winning_melds set) or an exhausted pool (is_draw)."""

    type: EventType = EventType.GAME_OVER
    winner_id: str | None
    game_state: GameView
    is_draw: bool | None = None
    winning_melds: list[Meld] | None = None


class InvalidAnnounceEvent(GameEvent):
    type: EventType = EventType.INVALID_ANNOUNCE
    reason: str


class PlayerLeftEvent(GameEvent):
    type: EventType = EventType.PLAYER_LEFT
    player_id: str
    player_name: str
    game_state: GameView


class TurnSkippedEvent(GameEvent):
    type: EventType = EventType.TURN_SKIPPED
    skipped_player_id: str
    skipped_player_name: str
    game_state: GameView


class ReconnectSuccessEvent(GameEvent):
    type: EventType = EventType.RECONNECT_SUCCESS
    player: OwnPlayerView
    game_state: GameView


class PlayerReconnectedEvent(GameEvent):
    type: EventType = EventType.PLAYER_RECONNECTED
    player_id: str
    game_state: GameView


class ReconnectFailedEvent(GameEvent):
    type: EventType = EventType.RECONNECT_FAILED
    reason: str


class PlayerDisconnectedEvent(GameEvent):
    type: EventType = EventType.PLAYER_DISCONNECTED
    player_id: str
    player_name: str
    game_state: GameView


class ErrorEvent(GameEvent):
    type: EventType = EventType.ERROR
    message: str


# ---------------------------------------------------------------------------
# Service event transport container
# ---------------------------------------------------------------------------


class ServiceEvent(BaseModel):
    """Event transport container for the game service layer."""

    model_config = {"arbitrary_types_allowed": True}

    event: EventType
    data: GameEvent
    target: EventTarget = BroadcastTarget()

    @model_validator(mode="after")
    def _ensure_event_matches_data(self) -> ServiceEvent:
        if self.event != self.data.type:
            raise ValueError(
                f"ServiceEvent.event '{self.event.value}' does not match data.type '{self.data.type.value}'",
            )
        return self


def service_event(data: GameEvent, target: EventTarget) -> ServiceEvent:
    return ServiceEvent(event=data.type, data=data, target=target)


@dataclass(frozen=True)
class CommandResult:
    """Events produced by a command, plus the session they were routed against.

    session is the state after the transition (None when the command removed
    the session or never loaded one). The SessionManager uses it to resolve
    PlayerTarget and BroadcastTarget to connections.
    """

    events: list[ServiceEvent]
    session: GameSession | None = None
