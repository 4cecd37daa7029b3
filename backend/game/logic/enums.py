"""
String enum definitions for tile game concepts.
"""

from enum import StrEnum


class TileColor(StrEnum):
    """Tile colors. Jokers carry a color too, but it is never used in validation."""

    RED = "red"
    BLUE = "blue"
    YELLOW = "yellow"
    BLACK = "black"


class GameStatus(StrEnum):
    """Lifecycle status of a game session.

    WAITING is initial; FINISHED and DRAW are terminal.
    """

    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"
    DRAW = "draw"


class AnnounceRejection(StrEnum):
    """Why a win announcement was rejected.

    TILES_MISMATCH means the claimed melds do not hold exactly the claimant's
    rack (protocol violation). INVALID_MELDS means the tiles are right but
    at least one meld is neither a run nor a group (the player may retry).
    """

    TILES_MISMATCH = "tiles_mismatch"
    INVALID_MELDS = "invalid_melds"
