"""
Game engine for the Phonics card game.

Turn transitions and dealing. Every function takes a GameState and
returns a new one; the input snapshot is never modified. Rejections are
returned as TransitionResult(success=False, ...) with no state and no
events, and all validation happens before anything is built, so a
rejected action has no partial effect.

Turn flow:
    play_card: validate -> move card to the play pile -> apply its effect
               -> check for a win -> advance to the next connected player
    draw_card: only when nothing is playable -> refill the draw pile from
               the play pile if empty -> take one card -> turn ends

Randomness is always drawn from an explicit random.Random (or the module
generator when none is given) so tests and the simulator can seed it.
"""

import logging
import random
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from cards import ActionType, Card, PhonicsCard, all_cards, card_to_dict, get_card_by_id
from constants import NO_PLAYER
from game import (
    EndReason,
    GameSettings,
    GameState,
    GameStatus,
    Player,
    current_player,
    replace_player,
    top_card,
    touch,
    utcnow,
)
from models import events as ev
from models.events import GameEvent
from rules import (
    can_play,
    determine_starting_player,
    next_connected_player_index,
    reverse_acts_as_miss,
    validate_play,
)

logger = logging.getLogger(__name__)

# Excludes I and O so codes can't be misread as 1 and 0
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ"


class ErrorKind(str, Enum):
    """
    Category of a rejected action, used by the HTTP layer to pick a status.

    INVALID: rule or precondition violation (400)
    NOT_FOUND: unknown game or card (404)
    FORBIDDEN: host-only action by a non-host (403)
    UNAVAILABLE: the server could not complete the action (503)
    """

    INVALID = "invalid"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNAVAILABLE = "unavailable"


@dataclass
class TransitionResult:
    """Outcome of play_card or draw_card."""

    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    state: Optional[GameState] = None
    events: list[GameEvent] = field(default_factory=list)

    @classmethod
    def reject(cls, error: str, kind: ErrorKind = ErrorKind.INVALID) -> "TransitionResult":
        return cls(success=False, error=error, error_kind=kind)


# =============================================================================
# Utilities
# =============================================================================


def shuffle(cards: Sequence[Card], rng: Optional[random.Random] = None) -> list[Card]:
    """
    Fisher-Yates shuffle of a copy of ``cards``.

    Every permutation is equally likely given a uniform rng.
    """
    rng = rng or random
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def generate_game_code(rng: Optional[random.Random] = None, length: int = 4) -> str:
    rng = rng or random
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(length))


def generate_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Dealing
# =============================================================================


def create_deck(rng: Optional[random.Random] = None) -> list[Card]:
    """A freshly shuffled copy of all 50 cards."""
    return shuffle(all_cards(), rng)


def deal_cards(
    deck: Sequence[Card],
    player_count: int,
    cards_per_player: int,
) -> tuple[list[list[Card]], list[Card]]:
    """
    Deal round-robin, one card at a time to each player in turn.

    Returns:
        (hands, remaining_deck). Dealing stops early if the deck runs out.
    """
    hands: list[list[Card]] = [[] for _ in range(player_count)]
    index = 0
    for _ in range(cards_per_player):
        for hand in hands:
            if index < len(deck):
                hand.append(deck[index])
                index += 1
    return hands, list(deck[index:])


def choose_starter(
    draw_pile: Sequence[Card],
    rng: Optional[random.Random] = None,
) -> tuple[Card, list[Card]]:
    """
    Turn over the opening card.

    If the front card is an action card it goes back into the pile, the
    pile is reshuffled, and the first phonics card found is used instead,
    so the game always opens on a word with a definite suit.

    Returns:
        (starter_card, remaining_draw_pile)

    Raises:
        ValueError: If the draw pile is empty.
    """
    if not draw_pile:
        raise ValueError("No cards left to start the play pile")

    starter, rest = draw_pile[0], list(draw_pile[1:])
    if isinstance(starter, PhonicsCard):
        return starter, rest

    pile = shuffle([starter] + rest, rng)
    for i, card in enumerate(pile):
        if isinstance(card, PhonicsCard):
            return card, pile[:i] + pile[i + 1:]

    # Only reachable if every undealt card is an action card
    return pile[0], pile[1:]


def deal_new_game(
    state: GameState,
    rng: Optional[random.Random] = None,
    deck: Optional[Sequence[Card]] = None,
    now: Optional[datetime] = None,
) -> GameState:
    """
    Deal a waiting game and move it to playing.

    Connected players receive ``settings.cards_per_player`` cards each,
    round-robin in seat order. The starting player is chosen among the
    connected players.

    Args:
        state: Game in the waiting lobby.
        rng: Random source for the shuffle and starting player.
        deck: Pre-arranged deck (front dealt first); a fresh shuffle
            when omitted.
        now: Timestamp override.

    Returns:
        New GameState with status PLAYING.
    """
    deck = list(deck) if deck is not None else create_deck(rng)
    seated = [i for i, p in enumerate(state.players) if p.is_connected]
    hands, remaining = deal_cards(deck, len(seated), state.settings.cards_per_player)
    starter, draw_pile = choose_starter(remaining, rng)

    players = list(state.players)
    for hand, index in zip(hands, seated):
        players[index] = replace(players[index], hand=tuple(hand))

    first = determine_starting_player(
        len(seated),
        state.settings.starting_player_mode,
        state.settings.starting_player_index,
        rng,
    )
    starter_suit = starter.suit if isinstance(starter, PhonicsCard) else None

    return touch(
        state,
        now,
        status=GameStatus.PLAYING,
        players=tuple(players),
        current_player_index=seated[first],
        direction=1,
        current_suit=starter_suit,
        draw_pile=tuple(draw_pile),
        play_pile=(starter,),
        winner_session_id=None,
        end_reason=None,
    )


def initialize_local_game(
    names: Sequence[str],
    settings: Optional[GameSettings] = None,
    rng: Optional[random.Random] = None,
    deck: Optional[Sequence[Card]] = None,
) -> GameState:
    """
    Build a ready-to-play game for pass-and-play on one device.

    Players get synthetic session ids ``local-player-{i}``; the first
    player is host.
    """
    settings = settings or GameSettings.defaults()
    now = utcnow()
    players = tuple(
        Player(
            id=generate_id(),
            session_id=f"local-player-{i}",
            name=name,
            position=i,
            is_host=i == 0,
            last_seen=now,
        )
        for i, name in enumerate(names)
    )
    lobby = GameState(
        id=generate_id(),
        code=generate_game_code(rng),
        host_session_id="local-player-0",
        players=players,
        settings=settings,
        created_at=now,
        updated_at=now,
    )
    return deal_new_game(lobby, rng=rng, deck=deck)


# =============================================================================
# Turn actions
# =============================================================================


def _turn_check(state: GameState, session_id: str) -> Optional[TransitionResult]:
    if state.status != GameStatus.PLAYING:
        return TransitionResult.reject("Game is not in progress")
    player = current_player(state)
    if player is None or player.session_id != session_id:
        return TransitionResult.reject("Not your turn")
    return None


def _finish_with_winner(state: GameState, winner: Player, events: list[GameEvent], **changes) -> GameState:
    events.append(ev.player_won(state.id, winner.id, winner.name))
    return touch(
        state,
        status=GameStatus.FINISHED,
        winner_session_id=winner.session_id,
        **changes,
    )


def play_card(
    state: GameState,
    session_id: str,
    card_id: str,
    declared_suit: Optional[str] = None,
) -> TransitionResult:
    """
    Play a card from the current player's hand.

    Args:
        state: Current game state.
        session_id: Session of the player acting.
        card_id: Catalog id of the card to play.
        declared_suit: Suit named with a Change card.

    Returns:
        TransitionResult with the new state and the events, in order.
    """
    rejected = _turn_check(state, session_id)
    if rejected:
        return rejected

    card = get_card_by_id(card_id)
    if card is None:
        return TransitionResult.reject("Card not found", ErrorKind.NOT_FOUND)

    index = state.current_player_index
    player = state.players[index]
    validation = validate_play(card, player.hand, state.current_suit, top_card(state), declared_suit)
    if not validation.valid:
        return TransitionResult.reject(validation.error)

    # Validation passed; from here on nothing can fail
    events = [ev.card_played(state.id, player.id, player.name, card_to_dict(card))]
    player = replace(player, hand=tuple(c for c in player.hand if c.id != card.id))
    suit = state.current_suit
    direction = state.direction
    skip = 0

    if isinstance(card, PhonicsCard):
        suit = card.suit
        events.append(ev.suit_changed(state.id, suit))
    elif card.action == ActionType.CHANGE:
        suit = declared_suit
        events.append(ev.suit_changed(state.id, suit))
    elif card.action == ActionType.MISS_A_TURN:
        skip = 1
        events.append(ev.turn_skipped(state.id, skip))
    elif card.action == ActionType.REVERSE:
        if reverse_acts_as_miss(len(state.players), state.settings):
            skip = 1
            events.append(ev.turn_skipped(state.id, skip))
        else:
            direction = -direction
            events.append(ev.direction_reversed(state.id, direction))

    players = replace_player(state, index, player)
    changes = dict(
        players=players,
        play_pile=state.play_pile + (card,),
        current_suit=suit,
        direction=direction,
    )

    if not player.hand:
        new_state = _finish_with_winner(state, player, events, **changes)
        logger.info(f"Game {state.code}: {player.name} won")
        return TransitionResult(success=True, state=new_state, events=events)

    next_index = next_connected_player_index(index, players, direction, skip)
    if next_index == NO_PLAYER:
        new_state = _finish_with_winner(state, player, events, **changes)
        logger.warning(f"Game {state.code}: no connected players left, {player.name} wins by default")
        return TransitionResult(success=True, state=new_state, events=events)

    new_state = touch(state, current_player_index=next_index, **changes)
    return TransitionResult(success=True, state=new_state, events=events)


def refresh_draw_pile(play_pile: Sequence[Card], rng: Optional[random.Random] = None) -> list[Card]:
    """Shuffle everything under the top card into a new draw pile."""
    return shuffle(play_pile[:-1], rng)


def draw_card(
    state: GameState,
    session_id: str,
    rng: Optional[random.Random] = None,
) -> TransitionResult:
    """
    Draw one card. Only allowed when the player has nothing playable.

    Drawing always ends the turn, even if the drawn card could be played.
    """
    rejected = _turn_check(state, session_id)
    if rejected:
        return rejected

    index = state.current_player_index
    player = state.players[index]
    top = top_card(state)
    if any(can_play(c, state.current_suit, top) for c in player.hand):
        return TransitionResult.reject("You have a playable card")

    events: list[GameEvent] = []
    draw_pile = list(state.draw_pile)
    play_pile = state.play_pile

    if not draw_pile:
        draw_pile = refresh_draw_pile(play_pile, rng)
        if not draw_pile:
            return TransitionResult.reject("No cards to draw")
        play_pile = play_pile[-1:]
        events.append(ev.deck_refreshed(state.id, len(draw_pile)))

    drawn = draw_pile.pop(0)
    player = replace(player, hand=player.hand + (drawn,))
    players = replace_player(state, index, player)
    events.append(ev.card_drawn(state.id, player.id, player.name))

    changes = dict(
        players=players,
        draw_pile=tuple(draw_pile),
        play_pile=play_pile,
    )

    next_index = next_connected_player_index(index, players, state.direction)
    if next_index == NO_PLAYER:
        new_state = _finish_with_winner(state, player, events, **changes)
        logger.warning(f"Game {state.code}: no connected players left, {player.name} wins by default")
        return TransitionResult(success=True, state=new_state, events=events)

    new_state = touch(state, current_player_index=next_index, **changes)
    return TransitionResult(success=True, state=new_state, events=events)


def is_game_over(state: GameState) -> bool:
    return state.status == GameStatus.FINISHED


# =============================================================================
# Lifecycle transitions
# =============================================================================


@dataclass
class LeaveOutcome:
    """Result of disconnect_player."""

    state: GameState
    events: list[GameEvent]
    game_ended: bool = False


def disconnect_player(state: GameState, session_id: str, min_players: int = 2) -> LeaveOutcome:
    """
    Soft-remove a player from a running game.

    The seat keeps its hand and position but is marked disconnected. If
    fewer than ``min_players`` connected players remain, the game ends:
    a lone remaining player wins, an empty table ends with no winner.
    Otherwise, if the leaver held the turn, it passes to the next
    connected player.

    Args:
        state: Game in PLAYING status, read just before the call.
        session_id: Session of the leaving player (must be seated).
        min_players: Connected players needed to keep going.
    """
    index = next(i for i, p in enumerate(state.players) if p.session_id == session_id)
    leaver = state.players[index]
    now = utcnow()
    players = replace_player(
        state, index, replace(leaver, is_connected=False, last_seen=now)
    )
    events = [ev.player_left(state.id, leaver.id, leaver.name, reason="disconnected")]

    remaining = [p for p in players if p.is_connected]
    if len(remaining) < min_players:
        winner = remaining[0] if len(remaining) == 1 else None
        if winner is not None:
            events.append(ev.player_won(state.id, winner.id, winner.name))
        events.append(ev.game_ended(
            state.id,
            winner_id=winner.id if winner else None,
            reason=EndReason.NOT_ENOUGH_PLAYERS.value,
        ))
        new_state = touch(
            state,
            now,
            players=players,
            status=GameStatus.FINISHED,
            winner_session_id=winner.session_id if winner else None,
            end_reason=EndReason.NOT_ENOUGH_PLAYERS.value,
        )
        return LeaveOutcome(new_state, events, game_ended=True)

    changes = {"players": players}
    if index == state.current_player_index:
        next_index = next_connected_player_index(index, players, state.direction)
        if next_index != NO_PLAYER:
            changes["current_player_index"] = next_index
    return LeaveOutcome(touch(state, now, **changes), events)
