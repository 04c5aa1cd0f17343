"""
Rules engine for the Phonics card game.

Pure functions only: every input is passed explicitly and nothing here
touches game state, storage or randomness beyond the rng handed in. The
same functions back the online server, local pass-and-play games and the
simulator.

Matching rules:
    - Phonics cards must match the active suit (their vowel sound)
    - Action cards can always be played
    - With no active suit (before the first play) anything goes
"""

import random
from dataclasses import dataclass
from typing import Optional, Sequence

from cards import ActionCard, ActionType, Card, PhonicsCard, is_valid_suit
from constants import NO_PLAYER


@dataclass(frozen=True)
class PlayValidation:
    """Outcome of validate_play."""

    valid: bool
    error: Optional[str] = None


# =============================================================================
# Card legality
# =============================================================================


def can_play(card: Card, current_suit: Optional[str], top_card: Optional[Card]) -> bool:
    """
    Check whether a card may be played right now.

    Args:
        card: Card the player wants to play.
        current_suit: Active suit, or None before the first play.
        top_card: Top of the play pile. Accepted so word-matching rules
            can be added later; it does not affect the decision today.

    Returns:
        True if the card is legal.
    """
    if current_suit is None:
        return True
    if isinstance(card, ActionCard):
        return True
    if isinstance(card, PhonicsCard):
        return card.suit == current_suit
    return False


def playable_cards(
    hand: Sequence[Card],
    current_suit: Optional[str],
    top_card: Optional[Card],
) -> list[Card]:
    """Return the cards in hand that can_play accepts, in hand order."""
    return [card for card in hand if can_play(card, current_suit, top_card)]


def must_draw(
    hand: Sequence[Card],
    current_suit: Optional[str],
    top_card: Optional[Card],
) -> bool:
    """A player must draw exactly when nothing in their hand is playable."""
    return not playable_cards(hand, current_suit, top_card)


def new_suit_after(card: Card, declared_suit: Optional[str] = None) -> Optional[str]:
    """
    Suit that becomes active after a card is played.

    Returns:
        The card's own suit for phonics cards, the declared suit for
        Change cards, and None for other action cards (suit unchanged).
    """
    if isinstance(card, PhonicsCard):
        return card.suit
    if card.action == ActionType.CHANGE:
        return declared_suit
    return None


def validate_play(
    card: Card,
    hand: Sequence[Card],
    current_suit: Optional[str],
    top_card: Optional[Card],
    declared_suit: Optional[str] = None,
) -> PlayValidation:
    """
    Validate a play before any state is touched.

    Checks, in order: the card is in hand, it matches the active suit,
    and a Change card comes with a valid declared suit.
    """
    if not any(c.id == card.id for c in hand):
        return PlayValidation(False, "You don't have this card")

    if not can_play(card, current_suit, top_card):
        return PlayValidation(
            False, f"This card doesn't match the current suit ({current_suit})"
        )

    if isinstance(card, ActionCard) and card.action == ActionType.CHANGE:
        if not declared_suit:
            return PlayValidation(
                False, "You must choose a new suit when playing a Change card"
            )
        if not is_valid_suit(declared_suit):
            return PlayValidation(False, f"Unknown suit: {declared_suit}")

    return PlayValidation(True)


# =============================================================================
# Turn order
# =============================================================================


def next_player_index(current: int, total_players: int, direction: int, skip: int = 0) -> int:
    """
    Index of the player (1 + skip) seats away in the given direction.

    Example:
        >>> next_player_index(0, 4, 1, skip=1)
        2
        >>> next_player_index(0, 4, -1)
        3
    """
    return (current + direction * (1 + skip)) % total_players


def next_connected_player_index(
    current: int,
    players: Sequence,
    direction: int,
    skip: int = 0,
) -> int:
    """
    Like next_player_index, but passes over disconnected players.

    Skipped seats are counted before connectivity is considered, so a
    Miss-a-turn always lands on the seat two places on and then walks
    forward from there to the first connected player.

    Args:
        current: Index whose turn is ending.
        players: Anything with an ``is_connected`` attribute, in turn order.
        direction: 1 or -1.
        skip: Seats to skip (1 for Miss-a-turn).

    Returns:
        Index of the next connected player, or NO_PLAYER if nobody is
        connected.
    """
    total = len(players)
    if total == 0:
        return NO_PLAYER

    index = next_player_index(current, total, direction, skip)
    for _ in range(total):
        if players[index].is_connected:
            return index
        index = next_player_index(index, total, direction)
    return NO_PLAYER


def reverse_acts_as_miss(total_players: int, settings) -> bool:
    """
    A Reverse in a two-player game changes nothing, so unless the table
    enables real reverses it skips the opponent instead.
    """
    return total_players == 2 and not settings.enable_reverse_for_2_players


def determine_starting_player(
    total_players: int,
    mode: str,
    manual_index: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Pick who takes the first turn.

    Args:
        total_players: Number of seated players.
        mode: "random", "youngest" or "manual".
        manual_index: Chosen seat when mode is "manual".
        rng: Random source for "random" mode.

    Returns:
        A player index in [0, total_players).

    Note:
        "youngest" has no age data to work with and always returns 0;
        clients that care ask the table and use "manual" instead.
    """
    if mode == "random":
        return (rng or random).randrange(total_players)
    if mode == "manual":
        if manual_index is not None and 0 <= manual_index < total_players:
            return manual_index
        return 0
    return 0
