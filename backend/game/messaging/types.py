from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from game.logic.codes import CODE_LENGTH
from game.logic.melds import Meld

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

MAX_PLAYER_NAME_LENGTH = 50
MAX_MELDS = 40


class ClientMessageType(StrEnum):
    CREATE_GAME = "create-game"
    JOIN_GAME = "join-game"
    START_GAME = "start-game"
    DRAW_FROM_POOL = "draw-from-pool"
    DRAW_FROM_NEIGHBOR = "draw-from-neighbor"
    DROP_TILE = "drop-tile"
    ANNOUNCE_WIN = "announce-win"
    LEAVE_GAME = "leave-game"
    REQUEST_SKIP_TURN = "request-skip-turn"
    RECONNECT_GAME = "reconnect-game"


class ClientMessage(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class CodedMessage(ClientMessage):
    """A command addressed to one session. Codes are case-insensitive."""

    code: str = Field(min_length=CODE_LENGTH, max_length=CODE_LENGTH, pattern=r"^[A-Za-z0-9]+$")

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        return v.upper()


class CreateGameMessage(ClientMessage):
    type: Literal[ClientMessageType.CREATE_GAME] = ClientMessageType.CREATE_GAME


class JoinGameMessage(CodedMessage):
    type: Literal[ClientMessageType.JOIN_GAME] = ClientMessageType.JOIN_GAME
    player_name: str = Field(max_length=MAX_PLAYER_NAME_LENGTH * 2)

    @field_validator("player_name")
    @classmethod
    def _validate_player_name(cls, v: str) -> str:
        name = v.strip()
        if not name:
            raise ValueError("player name must not be empty")
        if len(name) > MAX_PLAYER_NAME_LENGTH:
            raise ValueError(f"player name must be at most {MAX_PLAYER_NAME_LENGTH} characters")
        if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in name):
            raise ValueError("player name must not contain control characters")
        return name


class StartGameMessage(CodedMessage):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class DrawFromPoolMessage(CodedMessage):
    type: Literal[ClientMessageType.DRAW_FROM_POOL] = ClientMessageType.DRAW_FROM_POOL


class DrawFromNeighborMessage(CodedMessage):
    type: Literal[ClientMessageType.DRAW_FROM_NEIGHBOR] = ClientMessageType.DRAW_FROM_NEIGHBOR


class DropTileMessage(CodedMessage):
    type: Literal[ClientMessageType.DROP_TILE] = ClientMessageType.DROP_TILE
    tile_id: str = Field(min_length=1, max_length=32)


class AnnounceWinMessage(CodedMessage):
    type: Literal[ClientMessageType.ANNOUNCE_WIN] = ClientMessageType.ANNOUNCE_WIN
    melds: list[Meld] = Field(max_length=MAX_MELDS)


class LeaveGameMessage(CodedMessage):
    type: Literal[ClientMessageType.LEAVE_GAME] = ClientMessageType.LEAVE_GAME


class RequestSkipTurnMessage(CodedMessage):
    type: Literal[ClientMessageType.REQUEST_SKIP_TURN] = ClientMessageType.REQUEST_SKIP_TURN


class ReconnectGameMessage(CodedMessage):
    type: Literal[ClientMessageType.RECONNECT_GAME] = ClientMessageType.RECONNECT_GAME
    player_id: str = Field(min_length=1, max_length=64)


ClientCommand = Annotated[
    CreateGameMessage
    | JoinGameMessage
    | StartGameMessage
    | DrawFromPoolMessage
    | DrawFromNeighborMessage
    | DropTileMessage
    | AnnounceWinMessage
    | LeaveGameMessage
    | RequestSkipTurnMessage
    | ReconnectGameMessage,
    Field(discriminator="type"),
]

_client_command_adapter: TypeAdapter[ClientCommand] = TypeAdapter(ClientCommand)


def parse_client_message(data: dict) -> ClientCommand:
    return _client_command_adapter.validate_python(data)


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str
