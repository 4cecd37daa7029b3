from game.logic.enums import AnnounceRejection, TileColor
from game.logic.melds import (
    INVALID_MELDS_REASON,
    TILES_MISMATCH_REASON,
    Meld,
    can_announce_win,
    is_valid_group,
    is_valid_meld,
    is_valid_run,
    resolve_claimed_melds,
    verify_tiles_match,
)
from game.tests.conftest import joker, tile

RED, BLUE, BLACK, YELLOW = TileColor.RED, TileColor.BLUE, TileColor.BLACK, TileColor.YELLOW


def meld(*tiles, meld_id="m"):
    return Meld(id=meld_id, tiles=tiles)


class TestRuns:
    def test_consecutive_same_color(self):
        assert is_valid_run([tile(RED, 1), tile(RED, 2), tile(RED, 3)])

    def test_gap_rejected(self):
        assert not is_valid_run([tile(RED, 1), tile(RED, 2), tile(RED, 4)])

    def test_joker_fills_gap(self):
        assert is_valid_run([tile(RED, 1), joker(), tile(RED, 3)])

    def test_duplicate_number_rejected(self):
        assert not is_valid_run([tile(RED, 1), tile(RED, 1, 1), tile(RED, 2)])

    def test_all_jokers_rejected(self):
        assert not is_valid_run([joker(0), joker(1), joker(0)])

    def test_mixed_colors_rejected(self):
        assert not is_valid_run([tile(RED, 1), tile(BLUE, 2), tile(RED, 3)])

    def test_too_short(self):
        assert not is_valid_run([tile(RED, 1), tile(RED, 2)])

    def test_unordered_input_accepted(self):
        assert is_valid_run([tile(RED, 5), tile(RED, 3), tile(RED, 4)])

    def test_leftover_joker_rejected(self):
        # 4-5-6 plus a joker that fills no gap
        assert not is_valid_run([tile(RED, 4), tile(RED, 5), tile(RED, 6), joker()])

    def test_two_jokers_fill_two_gaps(self):
        assert is_valid_run([tile(BLUE, 1), joker(0), joker(1), tile(BLUE, 4)])


class TestGroups:
    def test_three_distinct_colors(self):
        assert is_valid_group([tile(RED, 7), tile(BLUE, 7), tile(BLACK, 7)])

    def test_color_repeat_rejected(self):
        assert not is_valid_group([tile(RED, 7), tile(BLUE, 7), tile(RED, 7, 1)])

    def test_five_tiles_rejected(self):
        group = [tile(RED, 7), tile(BLUE, 7), tile(BLACK, 7), tile(YELLOW, 7), tile(RED, 7, 1)]
        assert not is_valid_group(group)

    def test_joker_as_fourth_color(self):
        assert is_valid_group([tile(RED, 7), tile(BLUE, 7), tile(BLACK, 7), joker()])

    def test_four_tiles_plus_joker_rejected(self):
        assert not is_valid_group([tile(RED, 7), tile(BLUE, 7), tile(BLACK, 7), tile(YELLOW, 7), joker()])

    def test_different_numbers_rejected(self):
        assert not is_valid_group([tile(RED, 7), tile(BLUE, 8), tile(BLACK, 7)])

    def test_all_jokers_rejected(self):
        assert not is_valid_group([joker(0), joker(1), joker(0)])

    def test_meld_is_run_or_group(self):
        assert is_valid_meld([tile(RED, 7), tile(BLUE, 7), joker()])
        assert not is_valid_meld([tile(RED, 7), tile(BLUE, 8), tile(BLACK, 9)])


class TestVerifyTilesMatch:
    def test_exact_cover(self):
        rack = [tile(RED, 1), tile(RED, 2), tile(RED, 3)]
        assert verify_tiles_match(rack, [meld(*rack)])

    def test_extra_rack_tile(self):
        rack = [tile(RED, 1), tile(RED, 2), tile(RED, 3), tile(BLUE, 9)]
        assert not verify_tiles_match(rack, [meld(*rack[:3])])

    def test_tile_not_in_rack(self):
        rack = [tile(RED, 1), tile(RED, 2), tile(RED, 3)]
        assert not verify_tiles_match(rack, [meld(tile(RED, 1), tile(RED, 2), tile(RED, 4))])

    def test_tile_reused_across_melds(self):
        rack = [tile(RED, 1), tile(RED, 2), tile(RED, 3)]
        assert not verify_tiles_match(rack, [meld(*rack), meld(rack[0], meld_id="m2")])

    def test_order_independent(self):
        rack = [tile(RED, 3), tile(RED, 1), tile(RED, 2)]
        assert verify_tiles_match(rack, [meld(tile(RED, 1), tile(RED, 2), tile(RED, 3))])


class TestCanAnnounceWin:
    def test_valid_claim_accepted(self):
        run = [tile(RED, 1), tile(RED, 2), tile(RED, 3)]
        group = [tile(RED, 7), tile(BLUE, 7), tile(BLACK, 7)]
        check = can_announce_win(run + group, [meld(*run), meld(*group, meld_id="m2")])
        assert check.valid
        assert check.rejection is None
        assert check.reason is None

    def test_extra_tile_reports_mismatch(self):
        run = [tile(RED, 1), tile(RED, 2), tile(RED, 3)]
        check = can_announce_win([*run, tile(BLUE, 9)], [meld(*run)])
        assert not check.valid
        assert check.rejection == AnnounceRejection.TILES_MISMATCH
        assert check.reason == TILES_MISMATCH_REASON

    def test_broken_run_reports_invalid_melds(self):
        broken = [tile(RED, 1), tile(RED, 2), tile(RED, 4)]
        check = can_announce_win(broken, [meld(*broken)])
        assert not check.valid
        assert check.rejection == AnnounceRejection.INVALID_MELDS
        assert check.reason == INVALID_MELDS_REASON

    def test_empty_rack_and_no_melds_is_trivially_valid(self):
        assert can_announce_win([], []).valid


class TestResolveClaimedMelds:
    def test_client_cannot_relabel_a_tile(self):
        rack = (tile(RED, 1), tile(RED, 2), tile(RED, 5))
        # claims red-5-0 is a red 3
        forged = tile(RED, 3).model_copy(update={"id": "red-5-0"})
        resolved = resolve_claimed_melds(rack, [meld(tile(RED, 1), tile(RED, 2), forged)])
        assert resolved[0].tiles[2].number == 5
        assert not can_announce_win(rack, resolved).valid

    def test_unknown_ids_kept_as_sent(self):
        stranger = tile(BLUE, 9)
        resolved = resolve_claimed_melds((), [meld(stranger)])
        assert resolved[0].tiles == (stranger,)
