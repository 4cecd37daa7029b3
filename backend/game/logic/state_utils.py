"""
Immutable state update utilities using Pydantic model_copy.

Provides helper functions for common immutable updates on the frozen
GameSession model. These functions never mutate the input session - they
always return a new session with the requested changes applied.
"""

from game.logic.enums import GameStatus
from game.logic.state import GameSession, Player
from game.logic.tiles import Tile

_PLAYER_FIELDS = set(Player.model_fields)


def update_player(
    session: GameSession,
    index: int,
    **updates: object,
) -> GameSession:
    """
    Return new session with the player at index updated.

    Raises:
        ValueError: If index is out of bounds or update fields are invalid

    """
    if not (0 <= index < len(session.players)):
        raise ValueError(f"Invalid player index {index}, expected 0-{len(session.players) - 1}")
    invalid_fields = set(updates) - _PLAYER_FIELDS
    if invalid_fields:
        raise ValueError(f"Invalid player fields: {invalid_fields}")
    players = list(session.players)
    players[index] = session.players[index].model_copy(update=updates)
    return session.model_copy(update={"players": tuple(players)})


def add_tile_to_rack(session: GameSession, index: int, tile: Tile) -> GameSession:
    """Return new session with tile appended to the rack of the player at index."""
    player = session.players[index]
    return update_player(session, index, rack=(*player.rack, tile))


def advance_turn(session: GameSession) -> GameSession:
    """
    Return new session with the turn passed to the next player in order.

    Clears the has-drawn flag for the incoming player.
    """
    next_index = (session.current_player_index + 1) % len(session.players)
    return session.model_copy(update={"current_player_index": next_index, "has_drawn_this_turn": False})


def remove_player(session: GameSession, index: int) -> GameSession:
    """
    Return new session without the player at index.

    current_player_index is re-normalized so it keeps pointing at the player
    obligated to act next:
    - a player seated before the current one leaves: the index shifts down
      so the same player keeps the turn;
    - the current player leaves: the turn passes to whoever now occupies
      that index (wrapping), and the has-drawn flag is cleared;
    - a player seated after the current one leaves: the index is unchanged.

    In a playing game the leaver's tiles go back to the end of the pool so
    that no tile is lost.
    """
    if not (0 <= index < len(session.players)):
        raise ValueError(f"Invalid player index {index}, expected 0-{len(session.players) - 1}")

    leaver = session.players[index]
    players = session.players[:index] + session.players[index + 1 :]
    current = session.current_player_index
    has_drawn = session.has_drawn_this_turn

    if not players:
        current = 0
        has_drawn = False
    elif index < current:
        current -= 1
    elif index == current:
        current %= len(players)
        has_drawn = False

    pool = session.pool
    if session.status == GameStatus.PLAYING:
        pool += leaver.rack
        if leaver.last_dropped_tile is not None:
            pool += (leaver.last_dropped_tile,)
    return session.model_copy(
        update={
            "players": players,
            "current_player_index": current,
            "has_drawn_this_turn": has_drawn,
            "pool": pool,
        },
    )
