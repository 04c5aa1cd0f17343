"""
Domain events for the Phonics card game.

Every transition returns the events it produced, in the order they
happened. Clients use them to drive animation, sounds and spoken words;
the server logs them. Events are informational: the GameState snapshot
returned alongside them is always the source of truth.

Ordering within one play:
    card_played -> suit_changed -> turn_skipped / direction_reversed -> player_won
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class EventType(str, Enum):
    """All event types a game can emit."""

    # Lifecycle events
    GAME_CREATED = "game_created"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    GAME_STARTED = "game_started"
    GAME_ENDED = "game_ended"

    # Gameplay events
    CARD_PLAYED = "card_played"
    SUIT_CHANGED = "suit_changed"
    TURN_SKIPPED = "turn_skipped"
    DIRECTION_REVERSED = "direction_reversed"
    PLAYER_WON = "player_won"
    CARD_DRAWN = "card_drawn"
    DECK_REFRESHED = "deck_refreshed"


@dataclass(frozen=True)
class GameEvent:
    """
    A record of something that happened in a game.

    Attributes:
        event_type: The type of event.
        game_id: Game the event belongs to.
        player_id: Player who caused the event, if any.
        data: Event-specific payload (JSON-safe).
        timestamp: When the event occurred (UTC).
    """

    event_type: EventType
    game_id: str
    player_id: Optional[str] = None
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type.value,
            "game_id": self.game_id,
            "player_id": self.player_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, d: dict) -> "GameEvent":
        timestamp = d.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            event_type=EventType(d["type"]),
            game_id=d["game_id"],
            player_id=d.get("player_id"),
            data=d.get("data", {}),
            timestamp=timestamp or datetime.now(timezone.utc),
        )


def event_types(events) -> list[EventType]:
    """Event types of a sequence of events, in order."""
    return [e.event_type for e in events]


# =============================================================================
# Event Factory Functions
# =============================================================================


def game_created(game_id: str, code: str, host_id: str, settings: dict) -> GameEvent:
    """
    Create a GameCreated event.

    Args:
        game_id: New game's id.
        code: Shareable join code.
        host_id: Player id of the host.
        settings: GameSettings as dict.
    """
    return GameEvent(
        event_type=EventType.GAME_CREATED,
        game_id=game_id,
        player_id=host_id,
        data={"code": code, "settings": settings},
    )


def player_joined(game_id: str, player_id: str, player_name: str, position: int) -> GameEvent:
    return GameEvent(
        event_type=EventType.PLAYER_JOINED,
        game_id=game_id,
        player_id=player_id,
        data={"player_name": player_name, "position": position},
    )


def player_left(game_id: str, player_id: str, player_name: str, reason: str = "left") -> GameEvent:
    """
    Create a PlayerLeft event.

    Args:
        reason: "left" for a lobby removal, "disconnected" mid-game.
    """
    return GameEvent(
        event_type=EventType.PLAYER_LEFT,
        game_id=game_id,
        player_id=player_id,
        data={"player_name": player_name, "reason": reason},
    )


def game_started(
    game_id: str,
    player_order: list[str],
    starting_player_id: str,
    starter_card: dict,
) -> GameEvent:
    """
    Create a GameStarted event.

    Args:
        player_order: Player ids in turn order.
        starting_player_id: Who takes the first turn.
        starter_card: The face-up card that opens the play pile.
    """
    return GameEvent(
        event_type=EventType.GAME_STARTED,
        game_id=game_id,
        data={
            "player_order": player_order,
            "starting_player_id": starting_player_id,
            "starter_card": starter_card,
        },
    )


def game_ended(
    game_id: str,
    winner_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> GameEvent:
    """Create a GameEnded event. Both fields are None if the table emptied."""
    return GameEvent(
        event_type=EventType.GAME_ENDED,
        game_id=game_id,
        player_id=winner_id,
        data={"winner_id": winner_id, "reason": reason},
    )


def card_played(game_id: str, player_id: str, player_name: str, card: dict) -> GameEvent:
    return GameEvent(
        event_type=EventType.CARD_PLAYED,
        game_id=game_id,
        player_id=player_id,
        data={"player_id": player_id, "player_name": player_name, "card": card},
    )


def suit_changed(game_id: str, new_suit: str) -> GameEvent:
    return GameEvent(
        event_type=EventType.SUIT_CHANGED,
        game_id=game_id,
        data={"new_suit": new_suit},
    )


def turn_skipped(game_id: str, skipped_players: int = 1) -> GameEvent:
    return GameEvent(
        event_type=EventType.TURN_SKIPPED,
        game_id=game_id,
        data={"skipped_players": skipped_players},
    )


def direction_reversed(game_id: str, direction: int) -> GameEvent:
    return GameEvent(
        event_type=EventType.DIRECTION_REVERSED,
        game_id=game_id,
        data={"direction": direction},
    )


def player_won(game_id: str, player_id: str, player_name: str) -> GameEvent:
    return GameEvent(
        event_type=EventType.PLAYER_WON,
        game_id=game_id,
        player_id=player_id,
        data={"player_id": player_id, "player_name": player_name},
    )


def card_drawn(game_id: str, player_id: str, player_name: str) -> GameEvent:
    """
    Create a CardDrawn event.

    The drawn card is deliberately absent: events go to every player and
    the card belongs to the drawer's hidden hand.
    """
    return GameEvent(
        event_type=EventType.CARD_DRAWN,
        game_id=game_id,
        player_id=player_id,
        data={"player_id": player_id, "player_name": player_name},
    )


def deck_refreshed(game_id: str, draw_pile_count: int) -> GameEvent:
    """Create a DeckRefreshed event (play pile reshuffled into a new draw pile)."""
    return GameEvent(
        event_type=EventType.DECK_REFRESHED,
        game_id=game_id,
        data={"draw_pile_count": draw_pile_count},
    )
