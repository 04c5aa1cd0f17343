"""
Game state model for the Phonics card game.

GameState is the single source of truth for one game. It is an immutable
snapshot: every transition (join, start, play, draw, leave) builds a new
GameState with dataclasses.replace and leaves the old one untouched, so a
rejected action can never leave a half-applied change behind.

ClientGameState is the per-player view sent over the wire. Other
players' hands are reduced to a card count; only the requesting player
sees their own cards. Views are computed per request and never shared.

Storage format (GameState.to_dict):
    Cards are stored by id and resolved through the catalog on load, and
    settings are merged over the server defaults so older rows pick up
    newly added settings.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from cards import Card, card_from_dict, card_to_dict, get_card_by_id
from config import config


class GameStatus(str, Enum):
    """
    Lifecycle of a game. Transitions only ever move forward.

    WAITING: lobby, players may join
    PLAYING: cards dealt, turns in progress
    FINISHED: terminal, someone won or the table emptied
    """

    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class EndReason(str, Enum):
    """Why a game finished without a normal win."""

    NOT_ENOUGH_PLAYERS = "not_enough_players"


STARTING_PLAYER_MODES = ("random", "youngest", "manual")
TTS_SPEEDS = ("normal", "slow")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# =============================================================================
# Settings
# =============================================================================


@dataclass(frozen=True)
class GameSettings:
    """
    Per-game table options chosen by the host before starting.

    Attributes:
        cards_per_player: Cards dealt to each player.
        starting_player_mode: "random", "youngest" or "manual".
        starting_player_index: Seat used when mode is "manual".
        enable_reverse_for_2_players: Real reverses at a 2-player table
            (otherwise Reverse acts as Miss-a-turn).
        enable_tts: Whether clients read words aloud.
        tts_speed: "normal" or "slow".
    """

    cards_per_player: int = 5
    starting_player_mode: str = "random"
    starting_player_index: Optional[int] = None
    enable_reverse_for_2_players: bool = False
    enable_tts: bool = True
    tts_speed: str = "normal"

    @classmethod
    def defaults(cls) -> "GameSettings":
        """Settings built from the server's configured game defaults."""
        d = config.game_defaults
        return cls(
            cards_per_player=d.cards_per_player,
            starting_player_mode=d.starting_player_mode,
            enable_reverse_for_2_players=d.enable_reverse_for_2_players,
            enable_tts=d.enable_tts,
            tts_speed=d.tts_speed,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cards_per_player": self.cards_per_player,
            "starting_player_mode": self.starting_player_mode,
            "starting_player_index": self.starting_player_index,
            "enable_reverse_for_2_players": self.enable_reverse_for_2_players,
            "enable_tts": self.enable_tts,
            "tts_speed": self.tts_speed,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "GameSettings":
        """Build settings from a (possibly partial) dict, filling gaps from defaults."""
        base = cls.defaults()
        if not data:
            return base
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        return replace(base, **known)


# =============================================================================
# Players
# =============================================================================


@dataclass(frozen=True)
class Player:
    """
    A seat at the table.

    Attributes:
        id: Player id, unique within the game.
        session_id: Browser session the seat belongs to. A correlation
            key only, not an authenticated identity.
        name: Display name.
        hand: Cards held, in the order received.
        position: Seat number assigned at join time. A stable key, never
            renumbered when someone leaves the lobby.
        is_host: Exactly one player per game is host.
        is_connected: False once the player has left a running game.
        last_seen: Last time this player's client polled.
    """

    id: str
    session_id: str
    name: str
    hand: tuple[Card, ...] = ()
    position: int = 0
    is_host: bool = False
    is_connected: bool = True
    last_seen: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "name": self.name,
            "hand": [card.id for card in self.hand],
            "position": self.position,
            "is_host": self.is_host,
            "is_connected": self.is_connected,
            "last_seen": self.last_seen.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Player":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            name=data["name"],
            hand=cards_from_ids(data.get("hand", [])),
            position=data.get("position", 0),
            is_host=data.get("is_host", False),
            is_connected=data.get("is_connected", True),
            last_seen=_parse_datetime(data["last_seen"]) if data.get("last_seen") else utcnow(),
        )


def cards_from_ids(card_ids) -> tuple[Card, ...]:
    """
    Resolve stored card ids through the catalog.

    Raises:
        ValueError: If an id is not in the catalog.
    """
    cards = []
    for card_id in card_ids:
        card = get_card_by_id(card_id)
        if card is None:
            raise ValueError(f"Unknown card id in stored game: {card_id}")
        cards.append(card)
    return tuple(cards)


# =============================================================================
# Game state
# =============================================================================


@dataclass(frozen=True)
class GameState:
    """
    Authoritative state of one game.

    Invariants:
        - hands + draw pile + play pile always hold all 50 cards once dealt
        - players are ordered by position
        - status only moves waiting -> playing -> finished
        - current_player_index points at a connected player while playing
    """

    id: str
    code: str
    host_session_id: str
    status: GameStatus = GameStatus.WAITING
    players: tuple[Player, ...] = ()
    current_player_index: int = 0
    direction: int = 1
    current_suit: Optional[str] = None
    draw_pile: tuple[Card, ...] = ()  # front is drawn next
    play_pile: tuple[Card, ...] = ()  # last is the face-up top card
    winner_session_id: Optional[str] = None
    settings: GameSettings = field(default_factory=GameSettings.defaults)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    end_reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Storage form: cards by id, timestamps as ISO strings."""
        return {
            "id": self.id,
            "code": self.code,
            "host_session_id": self.host_session_id,
            "status": self.status.value,
            "players": [p.to_dict() for p in self.players],
            "current_player_index": self.current_player_index,
            "direction": self.direction,
            "current_suit": self.current_suit,
            "draw_pile": [card.id for card in self.draw_pile],
            "play_pile": [card.id for card in self.play_pile],
            "winner_session_id": self.winner_session_id,
            "settings": self.settings.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "end_reason": self.end_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        players = sorted(
            (Player.from_dict(p) for p in data.get("players", [])),
            key=lambda p: p.position,
        )
        return cls(
            id=data["id"],
            code=data["code"],
            host_session_id=data["host_session_id"],
            status=GameStatus(data.get("status", GameStatus.WAITING.value)),
            players=tuple(players),
            current_player_index=data.get("current_player_index", 0),
            direction=data.get("direction", 1),
            current_suit=data.get("current_suit"),
            draw_pile=cards_from_ids(data.get("draw_pile", [])),
            play_pile=cards_from_ids(data.get("play_pile", [])),
            winner_session_id=data.get("winner_session_id"),
            settings=GameSettings.from_dict(data.get("settings")),
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data["updated_at"]),
            end_reason=data.get("end_reason"),
        )


# =============================================================================
# State helpers
# =============================================================================


def top_card(state: GameState) -> Optional[Card]:
    return state.play_pile[-1] if state.play_pile else None


def current_player(state: GameState) -> Optional[Player]:
    if 0 <= state.current_player_index < len(state.players):
        return state.players[state.current_player_index]
    return None


def player_by_session(state: GameState, session_id: str) -> Optional[Player]:
    for player in state.players:
        if player.session_id == session_id:
            return player
    return None


def player_index(state: GameState, session_id: str) -> int:
    """List index of the session's player, or -1."""
    for i, player in enumerate(state.players):
        if player.session_id == session_id:
            return i
    return -1


def is_player_turn(state: GameState, session_id: str) -> bool:
    player = current_player(state)
    return player is not None and player.session_id == session_id


def connected_players(state: GameState) -> list[Player]:
    return [p for p in state.players if p.is_connected]


def card_count_total(state: GameState) -> int:
    """Cards across all hands and both piles (50 for any dealt game)."""
    return (
        sum(len(p.hand) for p in state.players)
        + len(state.draw_pile)
        + len(state.play_pile)
    )


def replace_player(state: GameState, index: int, player: Player) -> tuple[Player, ...]:
    """Players tuple with the entry at index swapped for player."""
    players = list(state.players)
    players[index] = player
    return tuple(players)


def touch(state: GameState, now: Optional[datetime] = None, **changes) -> GameState:
    """
    Apply changes and bump updated_at.

    updated_at strictly increases on every write, even when two writes
    land within the clock's resolution, so pollers comparing timestamps
    never miss an update.
    """
    now = now or utcnow()
    floor = state.updated_at + timedelta(microseconds=1)
    return replace(state, updated_at=max(now, floor), **changes)


# =============================================================================
# Client view
# =============================================================================


@dataclass(frozen=True)
class PlayerView:
    """What every player at the table can see about a seat."""

    id: str
    name: str
    card_count: int
    position: int
    is_host: bool
    is_connected: bool
    is_current_turn: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "card_count": self.card_count,
            "position": self.position,
            "is_host": self.is_host,
            "is_connected": self.is_connected,
            "is_current_turn": self.is_current_turn,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerView":
        return cls(
            id=data["id"],
            name=data["name"],
            card_count=data["card_count"],
            position=data["position"],
            is_host=data["is_host"],
            is_connected=data["is_connected"],
            is_current_turn=data["is_current_turn"],
        )


@dataclass(frozen=True)
class SelfView:
    """The requesting player's own seat, hand included."""

    player: PlayerView
    hand: tuple[Card, ...]

    def to_dict(self) -> dict[str, Any]:
        return {**self.player.to_dict(), "hand": [card_to_dict(c) for c in self.hand]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelfView":
        return cls(
            player=PlayerView.from_dict(data),
            hand=tuple(card_from_dict(c) for c in data.get("hand", [])),
        )


@dataclass(frozen=True)
class ClientGameState:
    """
    Per-player projection of a GameState.

    ``you`` is None when the requester has no seat (a spectator polling
    by code).
    """

    id: str
    code: str
    status: GameStatus
    players: tuple[PlayerView, ...]
    you: Optional[SelfView]
    current_player_index: int
    direction: int
    current_suit: Optional[str]
    top_card: Optional[Card]
    draw_pile_count: int
    play_pile_count: int
    winner_session_id: Optional[str]
    settings: GameSettings
    updated_at: datetime
    end_reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "status": self.status.value,
            "players": [p.to_dict() for p in self.players],
            "you": self.you.to_dict() if self.you else None,
            "current_player_index": self.current_player_index,
            "direction": self.direction,
            "current_suit": self.current_suit,
            "top_card": card_to_dict(self.top_card) if self.top_card else None,
            "draw_pile_count": self.draw_pile_count,
            "play_pile_count": self.play_pile_count,
            "winner_session_id": self.winner_session_id,
            "settings": self.settings.to_dict(),
            "updated_at": self.updated_at.isoformat(),
            "end_reason": self.end_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientGameState":
        return cls(
            id=data["id"],
            code=data["code"],
            status=GameStatus(data["status"]),
            players=tuple(PlayerView.from_dict(p) for p in data.get("players", [])),
            you=SelfView.from_dict(data["you"]) if data.get("you") else None,
            current_player_index=data.get("current_player_index", 0),
            direction=data.get("direction", 1),
            current_suit=data.get("current_suit"),
            top_card=card_from_dict(data["top_card"]) if data.get("top_card") else None,
            draw_pile_count=data.get("draw_pile_count", 0),
            play_pile_count=data.get("play_pile_count", 0),
            winner_session_id=data.get("winner_session_id"),
            settings=GameSettings.from_dict(data.get("settings")),
            updated_at=_parse_datetime(data["updated_at"]),
            end_reason=data.get("end_reason"),
        )


def to_client_state(state: GameState, session_id: Optional[str]) -> ClientGameState:
    """
    Build the view of a game for one requester.

    Args:
        state: Authoritative game state.
        session_id: Requester's session, or None for an anonymous viewer.

    Returns:
        ClientGameState with only the requester's hand revealed.
    """
    playing = state.status == GameStatus.PLAYING
    views = []
    you = None
    for i, player in enumerate(state.players):
        view = PlayerView(
            id=player.id,
            name=player.name,
            card_count=len(player.hand),
            position=player.position,
            is_host=player.is_host,
            is_connected=player.is_connected,
            is_current_turn=playing and i == state.current_player_index,
        )
        views.append(view)
        if session_id is not None and player.session_id == session_id:
            you = SelfView(player=view, hand=player.hand)

    return ClientGameState(
        id=state.id,
        code=state.code,
        status=state.status,
        players=tuple(views),
        you=you,
        current_player_index=state.current_player_index,
        direction=state.direction,
        current_suit=state.current_suit,
        top_card=top_card(state),
        draw_pile_count=len(state.draw_pile),
        play_pile_count=len(state.play_pile),
        winner_session_id=state.winner_session_id,
        settings=state.settings,
        updated_at=state.updated_at,
        end_reason=state.end_reason,
    )
