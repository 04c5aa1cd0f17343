"""
Card catalog for the Phonics card game.

Every card in the game is defined here exactly once. Cards are immutable
value objects: gameplay only moves them between the draw pile, the play
pile and player hands, it never changes them.

Card kinds:
    - PhonicsCard: a three-letter decodable word whose suit is its vowel
    - ActionCard: Change, Miss-a-turn or Reverse

The catalog is built once at import time from the tables in constants.py
and is safe to share across requests and games.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from constants import (
    CARDS_PER_VOWEL,
    CHANGE_CARD_COUNT,
    CVC_WORDS,
    DEFAULT_VOWEL,
    DOUBLE_GRAPHEMES,
    MISS_A_TURN_CARD_COUNT,
    REVERSE_CARD_COUNT,
    SUITS,
)


class ActionType(str, Enum):
    """
    Effects an action card can have when played.

    CHANGE: the player names the suit that must be followed next
    MISS_A_TURN: the next player in turn order loses their turn
    REVERSE: turn order flips (acts as Miss-a-turn in 2-player games
             unless the table opts in to real reverses)
    """

    CHANGE = "change"
    MISS_A_TURN = "miss-a-turn"
    REVERSE = "reverse"


@dataclass(frozen=True)
class PhonicsCard:
    """
    A word card.

    Attributes:
        id: Globally unique card id, e.g. "phonics-1".
        word: Lowercase CVC word.
        suit: The word's vowel ("a", "e", "i", "o" or "u").
        graphemes: The word split into sound units for blending practice.
    """

    id: str
    word: str
    suit: str
    graphemes: tuple[str, ...]

    is_action = False


@dataclass(frozen=True)
class ActionCard:
    """A special card whose effect alters turn order or the active suit."""

    id: str
    action: ActionType

    is_action = True


Card = Union[PhonicsCard, ActionCard]


@dataclass(frozen=True)
class SuitInfo:
    """Display metadata for a vowel suit."""

    id: str
    name: str
    shape: str  # shape marker so suits are distinguishable without colour
    examples: tuple[str, ...]


# =============================================================================
# Word helpers
# =============================================================================


def split_into_graphemes(word: str) -> tuple[str, ...]:
    """
    Split a word into graphemes.

    Doubled consonants (ff, ll, ss, zz) are kept together as one unit,
    every other letter is its own unit.

    Example:
        >>> split_into_graphemes("hiss")
        ('h', 'i', 'ss')
    """
    graphemes = []
    i = 0
    while i < len(word):
        pair = word[i:i + 2]
        if pair in DOUBLE_GRAPHEMES:
            graphemes.append(pair)
            i += 2
            continue
        graphemes.append(word[i])
        i += 1
    return tuple(graphemes)


def vowel_from_word(word: str) -> str:
    """Return the first vowel of a word, defaulting to "a" when it has none."""
    for char in word.lower():
        if char in SUITS:
            return char
    return DEFAULT_VOWEL


# =============================================================================
# Suit metadata
# =============================================================================

VOWEL_SUITS: dict[str, SuitInfo] = {
    "a": SuitInfo("a", "Short A", "●", ("cat", "map", "sat")),
    "e": SuitInfo("e", "Short E", "■", ("bed", "pen", "red")),
    "i": SuitInfo("i", "Short I", "▲", ("sit", "pig", "win")),
    "o": SuitInfo("o", "Short O", "◆", ("hot", "top", "dog")),
    "u": SuitInfo("u", "Short U", "★", ("cup", "bus", "run")),
}

ALL_SUITS: tuple[SuitInfo, ...] = tuple(VOWEL_SUITS[s] for s in SUITS)


def get_suit_info(suit: str) -> Optional[SuitInfo]:
    """Look up display metadata for a suit id."""
    return VOWEL_SUITS.get(suit)


def is_valid_suit(suit: Optional[str]) -> bool:
    return suit in VOWEL_SUITS


# =============================================================================
# Catalog construction
# =============================================================================


def _build_phonics_cards() -> tuple[PhonicsCard, ...]:
    cards = []
    next_id = 1
    for vowel in SUITS:
        for word in CVC_WORDS[vowel][:CARDS_PER_VOWEL[vowel]]:
            cards.append(PhonicsCard(
                id=f"phonics-{next_id}",
                word=word,
                suit=vowel_from_word(word),
                graphemes=split_into_graphemes(word),
            ))
            next_id += 1
    return tuple(cards)


def _build_action_cards() -> tuple[ActionCard, ...]:
    layout = (
        (ActionType.CHANGE, "change", CHANGE_CARD_COUNT),
        (ActionType.MISS_A_TURN, "miss", MISS_A_TURN_CARD_COUNT),
        (ActionType.REVERSE, "reverse", REVERSE_CARD_COUNT),
    )
    cards = []
    for action, slug, count in layout:
        for n in range(1, count + 1):
            cards.append(ActionCard(id=f"action-{slug}-{n}", action=action))
    return tuple(cards)


PHONICS_CARDS: tuple[PhonicsCard, ...] = _build_phonics_cards()
ACTION_CARDS: tuple[ActionCard, ...] = _build_action_cards()
ALL_CARDS: tuple[Card, ...] = PHONICS_CARDS + ACTION_CARDS

_CARDS_BY_ID: dict[str, Card] = {card.id: card for card in ALL_CARDS}


# =============================================================================
# Queries
# =============================================================================


def all_cards() -> tuple[Card, ...]:
    """Return the full 50-card catalog in catalog order."""
    return ALL_CARDS


def get_card_by_id(card_id: str) -> Optional[Card]:
    """Look up a card by id, returning None for unknown ids."""
    return _CARDS_BY_ID.get(card_id)


def cards_by_suit(suit: str) -> list[PhonicsCard]:
    return [card for card in PHONICS_CARDS if card.suit == suit]


def action_cards_by_type(action: ActionType) -> list[ActionCard]:
    return [card for card in ACTION_CARDS if card.action == action]


CARD_COUNTS: dict[str, Any] = {
    "total": len(ALL_CARDS),
    "phonics": len(PHONICS_CARDS),
    "action": len(ACTION_CARDS),
    "change": len(action_cards_by_type(ActionType.CHANGE)),
    "miss_a_turn": len(action_cards_by_type(ActionType.MISS_A_TURN)),
    "reverse": len(action_cards_by_type(ActionType.REVERSE)),
    "by_suit": {suit: len(cards_by_suit(suit)) for suit in SUITS},
}


# =============================================================================
# Serialization
# =============================================================================


def card_to_dict(card: Card) -> dict[str, Any]:
    """
    Convert a card to its JSON shape.

    Phonics cards carry their word data so clients can render and speak
    them without a catalog of their own.
    """
    if isinstance(card, PhonicsCard):
        return {
            "id": card.id,
            "type": "phonics",
            "word": card.word,
            "suit": card.suit,
            "graphemes": list(card.graphemes),
        }
    if isinstance(card, ActionCard):
        return {"id": card.id, "type": "action", "action": card.action.value}
    raise TypeError(f"Not a card: {card!r}")


def card_from_dict(data: dict[str, Any]) -> Card:
    """
    Rebuild a card from its JSON shape.

    The catalog entry is returned when the id is known so identity is
    preserved; otherwise the card is rebuilt from the payload.

    Raises:
        ValueError: If the payload has an unknown card type.
    """
    known = _CARDS_BY_ID.get(data.get("id", ""))
    if known is not None:
        return known

    card_type = data.get("type")
    if card_type == "phonics":
        word = data["word"]
        return PhonicsCard(
            id=data["id"],
            word=word,
            suit=data.get("suit") or vowel_from_word(word),
            graphemes=tuple(data.get("graphemes") or split_into_graphemes(word)),
        )
    if card_type == "action":
        return ActionCard(id=data["id"], action=ActionType(data["action"]))
    raise ValueError(f"Unknown card type: {card_type!r}")
