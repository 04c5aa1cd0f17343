"""
Deck composition constants for the Phonics card game.

This module is the single source of truth for what goes into the deck.
cards.py builds the immutable card catalog from these tables.

Deck summary (50 cards):
    - 42 phonics cards: decodable CVC words grouped by short vowel sound
      (a=9, e=8, i=9, o=8, u=8)
    - 3 Change cards (player declares the next suit)
    - 3 Miss-a-turn cards (next player is skipped)
    - 2 Reverse cards (turn order flips)
"""

# =============================================================================
# Suits
# =============================================================================

# Vowel suits in display order
SUITS: tuple[str, ...] = ("a", "e", "i", "o", "u")


# =============================================================================
# Phonics Cards
# =============================================================================

# Words use only the letters s a t i m n o p b c g h d e f v k l r u j w z x y
# plus the doubled graphemes below.
CVC_WORDS: dict[str, tuple[str, ...]] = {
    "a": ("cat", "map", "sat", "hat", "bat", "rat", "can", "pan", "van"),
    "e": ("bed", "pen", "red", "hen", "jet", "wet", "net", "pet", "leg"),
    "i": ("sit", "pig", "win", "big", "hit", "bit", "pin", "fin", "tin"),
    "o": ("hot", "top", "dog", "log", "pot", "cot", "fox", "box", "mop"),
    "u": ("cup", "bus", "run", "sun", "bun", "hut", "cut", "nut", "mud"),
}

# How many words from each list make it into the deck (sums to 42)
CARDS_PER_VOWEL: dict[str, int] = {
    "a": 9,
    "e": 8,
    "i": 9,
    "o": 8,
    "u": 8,
}

# Consonant pairs treated as one sound unit
DOUBLE_GRAPHEMES: tuple[str, ...] = ("ff", "ll", "ss", "zz")

DEFAULT_VOWEL = "a"


# =============================================================================
# Action Cards
# =============================================================================

CHANGE_CARD_COUNT = 3
MISS_A_TURN_CARD_COUNT = 3
REVERSE_CARD_COUNT = 2

PHONICS_CARD_COUNT = sum(CARDS_PER_VOWEL.values())
ACTION_CARD_COUNT = CHANGE_CARD_COUNT + MISS_A_TURN_CARD_COUNT + REVERSE_CARD_COUNT
TOTAL_CARD_COUNT = PHONICS_CARD_COUNT + ACTION_CARD_COUNT


# =============================================================================
# Table limits
# =============================================================================

MIN_CARDS_PER_PLAYER = 1
MAX_CARDS_PER_PLAYER = 8
MAX_PLAYER_NAME_LENGTH = 20

# Matches the session_id column width in the game store
MAX_SESSION_ID_LENGTH = 64

# Returned by turn-advance helpers when nobody is left to take a turn
NO_PLAYER = -1
