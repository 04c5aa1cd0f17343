"""
Tests for the Phonics rules engine.

Covers:
- Suit matching (phonics must follow suit, action cards always legal)
- Play validation messages
- Turn order with direction, skips and disconnected players
- Two-player Reverse handling
- Starting player selection

Run with: pytest test_rules.py -v
"""

import random
from dataclasses import dataclass

from cards import get_card_by_id
from constants import NO_PLAYER
from game import GameSettings
from rules import (
    can_play,
    determine_starting_player,
    must_draw,
    new_suit_after,
    next_connected_player_index,
    next_player_index,
    playable_cards,
    reverse_acts_as_miss,
    validate_play,
)

CAT = get_card_by_id("phonics-1")       # suit a
BED = get_card_by_id("phonics-10")      # suit e
SIT = get_card_by_id("phonics-18")      # suit i
CHANGE = get_card_by_id("action-change-1")
MISS = get_card_by_id("action-miss-1")
REVERSE = get_card_by_id("action-reverse-1")


@dataclass
class Seat:
    is_connected: bool = True


def seats(*connected: bool) -> list[Seat]:
    return [Seat(c) for c in connected]


# =============================================================================
# Suit Legality Tests
# =============================================================================

class TestCanPlay:
    """A phonics card plays iff the suit matches (or none is set)."""

    def test_matching_suit(self):
        assert can_play(BED, "e", None)

    def test_other_suit(self):
        for suit in ("a", "i", "o", "u"):
            assert not can_play(BED, suit, None)

    def test_no_current_suit(self):
        assert can_play(BED, None, None)

    def test_action_cards_always_playable(self):
        for card in (CHANGE, MISS, REVERSE):
            for suit in (None, "a", "e", "i", "o", "u"):
                assert can_play(card, suit, None)

    def test_top_card_ignored(self):
        assert can_play(CAT, "a", BED)
        assert not can_play(CAT, "e", CAT)

    def test_playable_cards_keeps_hand_order(self):
        hand = [BED, CAT, MISS, SIT]
        assert playable_cards(hand, "a", None) == [CAT, MISS]

    def test_must_draw(self):
        assert must_draw([BED, SIT], "a", None)
        assert not must_draw([BED, CAT], "a", None)
        assert must_draw([], "a", None)


class TestNewSuit:

    def test_phonics_sets_own_suit(self):
        assert new_suit_after(SIT) == "i"

    def test_change_sets_declared_suit(self):
        assert new_suit_after(CHANGE, "o") == "o"

    def test_other_actions_keep_suit(self):
        assert new_suit_after(MISS) is None
        assert new_suit_after(REVERSE) is None


# =============================================================================
# Validation Tests
# =============================================================================

class TestValidatePlay:

    def test_valid_play(self):
        result = validate_play(CAT, [CAT, BED], "a", None)
        assert result.valid
        assert result.error is None

    def test_card_not_in_hand(self):
        result = validate_play(CAT, [BED], "a", None)
        assert not result.valid
        assert result.error == "You don't have this card"

    def test_suit_mismatch(self):
        result = validate_play(BED, [BED], "a", None)
        assert not result.valid
        assert result.error == "This card doesn't match the current suit (a)"

    def test_change_without_suit(self):
        result = validate_play(CHANGE, [CHANGE], "a", None)
        assert not result.valid
        assert result.error == "You must choose a new suit when playing a Change card"

    def test_change_with_unknown_suit(self):
        result = validate_play(CHANGE, [CHANGE], "a", None, declared_suit="y")
        assert not result.valid
        assert result.error == "Unknown suit: y"

    def test_change_with_suit(self):
        assert validate_play(CHANGE, [CHANGE], "a", None, declared_suit="i").valid

    def test_hand_checked_first(self):
        result = validate_play(CHANGE, [CAT], "a", None)
        assert result.error == "You don't have this card"


# =============================================================================
# Turn Order Tests
# =============================================================================

class TestNextPlayerIndex:

    def test_clockwise_cycle(self):
        order = []
        index = 0
        for _ in range(5):
            index = next_player_index(index, 4, 1)
            order.append(index)
        assert order == [1, 2, 3, 0, 1]

    def test_counter_clockwise_cycle(self):
        order = []
        index = 0
        for _ in range(5):
            index = next_player_index(index, 4, -1)
            order.append(index)
        assert order == [3, 2, 1, 0, 3]

    def test_skip_one(self):
        assert next_player_index(0, 4, 1, skip=1) == 2

    def test_skip_wraps(self):
        assert next_player_index(3, 4, 1, skip=1) == 1
        assert next_player_index(0, 4, -1, skip=1) == 2

    def test_two_players_skip_returns_to_self(self):
        assert next_player_index(0, 2, 1, skip=1) == 0


class TestNextConnectedPlayerIndex:

    def test_skips_disconnected(self):
        assert next_connected_player_index(0, seats(True, False, True, True), 1) == 2

    def test_all_connected(self):
        assert next_connected_player_index(0, seats(True, True, True), 1) == 1

    def test_counter_clockwise(self):
        assert next_connected_player_index(0, seats(True, True, True, False), -1) == 2

    def test_all_disconnected(self):
        assert next_connected_player_index(0, seats(False, False, False), 1) == NO_PLAYER

    def test_no_players(self):
        assert next_connected_player_index(0, [], 1) == NO_PLAYER

    def test_only_self_connected(self):
        assert next_connected_player_index(0, seats(True, False, False), 1) == 0

    def test_skip_then_walk_forward(self):
        # Miss-a-turn lands on seat 2, which is gone, so seat 3 plays
        assert next_connected_player_index(0, seats(True, True, False, True), 1, skip=1) == 3


# =============================================================================
# Reverse and Starting Player Tests
# =============================================================================

class TestReverse:

    def test_two_players_default_acts_as_miss(self):
        assert reverse_acts_as_miss(2, GameSettings(enable_reverse_for_2_players=False))

    def test_two_players_enabled(self):
        assert not reverse_acts_as_miss(2, GameSettings(enable_reverse_for_2_players=True))

    def test_three_players_always_reverse(self):
        assert not reverse_acts_as_miss(3, GameSettings(enable_reverse_for_2_players=False))


class TestStartingPlayer:

    def test_random_in_range(self):
        rng = random.Random(3)
        picks = {determine_starting_player(4, "random", rng=rng) for _ in range(100)}
        assert picks <= {0, 1, 2, 3}
        assert len(picks) > 1

    def test_random_is_seedable(self):
        a = determine_starting_player(5, "random", rng=random.Random(42))
        b = determine_starting_player(5, "random", rng=random.Random(42))
        assert a == b

    def test_youngest_is_first_seat(self):
        assert determine_starting_player(4, "youngest") == 0

    def test_manual_uses_index(self):
        assert determine_starting_player(4, "manual", manual_index=2) == 2

    def test_manual_out_of_range(self):
        assert determine_starting_player(4, "manual", manual_index=7) == 0
        assert determine_starting_player(4, "manual", manual_index=None) == 0
