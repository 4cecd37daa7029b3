"""
Tile representation, pool generation, shuffling and dealing.

A full pool holds 106 tiles: two copies of each number 1-13 in four colors
(104 tiles) plus two jokers. Tile ids are unique within a session:
numbered tiles are "{color}-{number}-{set}", jokers are "joker-{n}".
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from game.logic.enums import TileColor

if TYPE_CHECKING:
    import random
    from collections.abc import Sequence

MIN_NUMBER = 1
MAX_NUMBER = 13
JOKER_NUMBER = 0
NUM_SETS = 2
NUM_JOKERS = 2
TOTAL_TILES = NUM_SETS * len(TileColor) * MAX_NUMBER + NUM_JOKERS  # 106
DEFAULT_TILES_PER_PLAYER = 14

# Jokers have a color but it's not used in validation
_JOKER_COLORS = (TileColor.RED, TileColor.BLUE)

_system_rng = secrets.SystemRandom()


class Tile(BaseModel):
    """Immutable tile value object."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(min_length=1, max_length=32)
    color: TileColor
    number: int = Field(ge=JOKER_NUMBER, le=MAX_NUMBER)
    is_joker: bool = False

    @model_validator(mode="after")
    def _check_number(self) -> Tile:
        if not self.is_joker and self.number < MIN_NUMBER:
            raise ValueError(f"numbered tile must be in [{MIN_NUMBER}, {MAX_NUMBER}], got {self.number}")
        return self


class DealResult(BaseModel):
    """Per-player racks (in seat order) and the undealt remainder of the pool."""

    model_config = ConfigDict(frozen=True)

    racks: tuple[tuple[Tile, ...], ...]
    pool: tuple[Tile, ...]


def make_joker(index: int) -> Tile:
    return Tile(
        id=f"joker-{index}",
        color=_JOKER_COLORS[index % len(_JOKER_COLORS)],
        number=JOKER_NUMBER,
        is_joker=True,
    )


def generate_pool() -> list[Tile]:
    """
    Generate the full 106-tile pool in a fixed (unshuffled) order.
    """
    tiles = [
        Tile(id=f"{color}-{number}-{tile_set}", color=color, number=number)
        for tile_set in range(NUM_SETS)
        for color in TileColor
        for number in range(MIN_NUMBER, MAX_NUMBER + 1)
    ]
    tiles.extend(make_joker(i) for i in range(NUM_JOKERS))
    return tiles


def shuffle_tiles(tiles: Sequence[Tile], rng: random.Random | None = None) -> list[Tile]:
    """
    Return a uniformly random permutation of tiles (Fisher-Yates).

    The input sequence is never mutated. Uses the OS entropy source unless
    an explicit rng is given (tests pass a seeded random.Random).
    """
    rng = rng or _system_rng
    shuffled = list(tiles)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def deal_tiles(
    pool: Sequence[Tile],
    player_count: int,
    tiles_per_player: int = DEFAULT_TILES_PER_PLAYER,
    rng: random.Random | None = None,
) -> DealResult:
    """
    Shuffle the pool and deal tiles round-robin, one at a time.

    Dealing stops once player_count * tiles_per_player tiles are assigned
    or the pool runs out. A short pool is not an error: racks simply
    receive fewer tiles than requested.
    """
    if player_count < 1:
        raise ValueError(f"player_count must be at least 1, got {player_count}")
    if tiles_per_player < 0:
        raise ValueError(f"tiles_per_player must not be negative, got {tiles_per_player}")

    shuffled = shuffle_tiles(pool, rng)
    total = min(player_count * tiles_per_player, len(shuffled))
    racks: list[list[Tile]] = [[] for _ in range(player_count)]
    for position, tile in enumerate(shuffled[:total]):
        racks[position % player_count].append(tile)

    return DealResult(
        racks=tuple(tuple(rack) for rack in racks),
        pool=tuple(shuffled[total:]),
    )


def find_tile(tiles: Sequence[Tile], tile_id: str) -> Tile | None:
    """Return the tile with the given id, or None."""
    return next((tile for tile in tiles if tile.id == tile_id), None)


def remove_tile(tiles: Sequence[Tile], tile_id: str) -> tuple[Tile, ...]:
    """Return tiles without the tile carrying tile_id (ids are unique)."""
    return tuple(tile for tile in tiles if tile.id != tile_id)
