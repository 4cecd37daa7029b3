from __future__ import annotations

import random
from typing import TYPE_CHECKING

import pytest

from game.logic.enums import GameStatus, TileColor
from game.logic.service import GameSessionService
from game.logic.state import GameSession, Player
from game.logic.tiles import Tile, make_joker
from game.messaging.router import MessageRouter
from game.server.app import create_app
from game.server.settings import GameServerSettings
from game.session.manager import SessionManager
from game.session.store import InMemorySessionStore
from game.tests.mocks import FakeClock, MockConnection

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from game.session.store import SessionStore

TEST_SEED = 20250101


# ============================================================================
# Test State Builder Helpers
# ============================================================================


def tile(color: TileColor, number: int, tile_set: int = 0) -> Tile:
    """Numbered tile with the same id format the pool generator uses."""
    return Tile(id=f"{color}-{number}-{tile_set}", color=color, number=number)


def joker(index: int = 0) -> Tile:
    return make_joker(index)


def create_player(
    index: int = 0,
    *,
    rack: Sequence[Tile] = (),
    last_dropped_tile: Tile | None = None,
    connected: bool = True,
    disconnected_at: datetime | None = None,
) -> Player:
    """Player with id player-{index}, bound to conn-{index} while connected."""
    return Player(
        id=f"player-{index}",
        name=f"Player{index}",
        connection_id=f"conn-{index}" if connected else None,
        rack=tuple(rack),
        last_dropped_tile=last_dropped_tile,
        connected=connected,
        disconnected_at=disconnected_at,
    )


def create_session(
    players: Sequence[Player] | None = None,
    *,
    code: str = "ABCD",
    pool: Sequence[Tile] = (),
    status: GameStatus = GameStatus.PLAYING,
    current_player_index: int = 0,
    has_drawn_this_turn: bool = False,
    created_at: datetime | None = None,
) -> GameSession:
    if players is None:
        players = [create_player(i) for i in range(2)]
    return GameSession(
        id=f"session-{code}",
        code=code,
        players=tuple(players),
        pool=tuple(pool),
        status=status,
        current_player_index=current_player_index,
        has_drawn_this_turn=has_drawn_this_turn,
        created_at=created_at or FakeClock().now,
    )


async def store_session(store: SessionStore, session: GameSession) -> GameSession:
    return await store.put(session, expected_version=None)


async def create_seated_game(service: GameSessionService, player_count: int = 2) -> tuple[str, list[str]]:
    """Create a session through the service and seat conn-0..conn-{n-1}. Return (code, connection ids)."""
    created = await service.create_game("creator")
    code = created.events[0].data.code
    connection_ids = [f"conn-{i}" for i in range(player_count)]
    for i, connection_id in enumerate(connection_ids):
        await service.join_game(connection_id, code, f"Player{i}")
    return code, connection_ids


async def create_started_game(service: GameSessionService, player_count: int = 2) -> tuple[str, list[str]]:
    code, connection_ids = await create_seated_game(service, player_count)
    await service.start_game(connection_ids[0], code)
    return code, connection_ids


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def game_service(store, clock):
    return GameSessionService(store, now=clock, rng=random.Random(TEST_SEED))


@pytest.fixture
def session_manager(game_service):
    return SessionManager(game_service)


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection():
    return MockConnection()


@pytest.fixture
def app(game_service, session_manager, message_router):
    return create_app(
        settings=GameServerSettings(),
        game_service=game_service,
        session_manager=session_manager,
        message_router=message_router,
    )
