"""
Meld validation: runs, groups and win claims.

A run is three or more tiles of one color with consecutive numbers.
A group is three or four tiles of one number in pairwise-distinct colors.
Jokers substitute for any tile, but a meld always needs at least one
non-joker tile.

All functions here are pure: they never mutate their inputs.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from game.logic.enums import AnnounceRejection, TileColor
from game.logic.tiles import Tile

if TYPE_CHECKING:
    from collections.abc import Sequence

MIN_MELD_SIZE = 3
MAX_GROUP_SIZE = len(TileColor)

TILES_MISMATCH_REASON = "Tiles don't match your rack"
INVALID_MELDS_REASON = "Not all melds are valid"

_REJECTION_REASONS = {
    AnnounceRejection.TILES_MISMATCH: TILES_MISMATCH_REASON,
    AnnounceRejection.INVALID_MELDS: INVALID_MELDS_REASON,
}


class Meld(BaseModel):
    """Transient meld claimed by a player. Never stored as game state."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(min_length=1, max_length=64)
    tiles: tuple[Tile, ...]


class WinCheck(BaseModel):
    """Outcome of a win claim check."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    rejection: AnnounceRejection | None = None

    @property
    def reason(self) -> str | None:
        if self.rejection is None:
            return None
        return _REJECTION_REASONS[self.rejection]


def _split_jokers(tiles: Sequence[Tile]) -> tuple[list[Tile], int]:
    regular = [tile for tile in tiles if not tile.is_joker]
    return regular, len(tiles) - len(regular)


def is_valid_run(tiles: Sequence[Tile]) -> bool:
    """
    Check whether tiles form a run.

    Jokers must fill the gaps between the non-joker numbers exactly:
    a leftover joker (or a remaining gap) makes the run invalid.
    """
    if len(tiles) < MIN_MELD_SIZE:
        return False

    regular, joker_count = _split_jokers(tiles)
    if not regular:
        return False

    if len({tile.color for tile in regular}) != 1:
        return False

    numbers = sorted(tile.number for tile in regular)
    if len(set(numbers)) != len(numbers):
        return False

    span = numbers[-1] - numbers[0] + 1
    return span - len(regular) == joker_count


def is_valid_group(tiles: Sequence[Tile]) -> bool:
    """
    Check whether tiles form a group.

    A joker cannot stand in for a fifth color, so groups are capped at four tiles.
    """
    if not (MIN_MELD_SIZE <= len(tiles) <= MAX_GROUP_SIZE):
        return False

    regular, _ = _split_jokers(tiles)
    if not regular:
        return False

    if len({tile.number for tile in regular}) != 1:
        return False

    return len({tile.color for tile in regular}) == len(regular)


def is_valid_meld(tiles: Sequence[Tile]) -> bool:
    return is_valid_run(tiles) or is_valid_group(tiles)


def are_all_melds_valid(melds: Sequence[Meld]) -> bool:
    return all(is_valid_meld(meld.tiles) for meld in melds)


def verify_tiles_match(rack: Sequence[Tile], melds: Sequence[Meld]) -> bool:
    """
    Check that the melds hold exactly the rack's tiles, compared by id.

    Rejects a tile id repeated across melds, an id not in the rack, and a
    rack tile left out of every meld.
    """
    meld_ids = Counter(tile.id for meld in melds for tile in meld.tiles)
    if any(count > 1 for count in meld_ids.values()):
        return False
    return meld_ids == Counter(tile.id for tile in rack)


def resolve_claimed_melds(rack: Sequence[Tile], melds: Sequence[Meld]) -> tuple[Meld, ...]:
    """
    Replace claimed tiles with the server-side tiles that carry the same id.

    A client may not change a tile's color or number by editing its claim.
    Ids not present in the rack are kept as sent; verify_tiles_match will
    reject them.
    """
    by_id = {tile.id: tile for tile in rack}
    return tuple(
        meld.model_copy(update={"tiles": tuple(by_id.get(tile.id, tile) for tile in meld.tiles)})
        for meld in melds
    )


def can_announce_win(rack: Sequence[Tile], melds: Sequence[Meld]) -> WinCheck:
    """
    Validate a win claim against the claimant's rack.

    The tile match is checked first: a mismatch points at tampering and is
    reported as TILES_MISMATCH; a correct tile set arranged into an illegal
    meld is INVALID_MELDS.
    """
    if not verify_tiles_match(rack, melds):
        return WinCheck(valid=False, rejection=AnnounceRejection.TILES_MISMATCH)
    if not are_all_melds_valid(melds):
        return WinCheck(valid=False, rejection=AnnounceRejection.INVALID_MELDS)
    return WinCheck(valid=True)
