"""
Persistence contract for Phonics games.

Every backend stores whole games (players, hands, piles, settings) and
hands back fully rebuilt GameState snapshots: players sorted by position,
hands resolved to catalog cards, settings merged over defaults.

Writes are partial (update one game's fields, one player's hand, ...) so
backends that keep players in their own rows only touch what changed.
GameStore.save_transition turns a before/after pair of snapshots into
those partial writes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Optional

from cards import Card
from game import GameState, Player

# GameState fields that live on the game record (players are stored separately)
GAME_FIELDS = tuple(
    f.name for f in fields(GameState)
    if f.name not in ("id", "code", "host_session_id", "players", "created_at")
)

# Player fields that can change after the player is added
PLAYER_FIELDS = ("name", "hand", "is_connected", "last_seen")


@dataclass(frozen=True)
class Transition:
    """
    Writes that turn one snapshot of a game into another.

    Attributes:
        removed: Session ids whose seats are gone.
        added: New seats.
        player_changes: Non-hand PLAYER_FIELDS changes by session id.
        hands: Changed hands by session id.
        game_changes: Changed GAME_FIELDS.
    """

    removed: tuple[str, ...]
    added: tuple[Player, ...]
    player_changes: dict[str, dict[str, Any]]
    hands: dict[str, tuple[Card, ...]]
    game_changes: dict[str, Any]


def diff_snapshots(before: GameState, after: GameState) -> Transition:
    """
    Compare two snapshots of the same game.

    Player seats are matched by session id. Seats present only in
    ``after`` are added, seats present only in ``before`` are removed.
    """
    old_players = {p.session_id: p for p in before.players}
    new_players = {p.session_id: p for p in after.players}

    added = []
    player_changes = {}
    hands = {}
    for session_id, player in new_players.items():
        old = old_players.get(session_id)
        if old is None:
            added.append(player)
            continue
        if old.hand != player.hand:
            hands[session_id] = player.hand
        changes = {
            name: getattr(player, name)
            for name in PLAYER_FIELDS
            if name != "hand" and getattr(old, name) != getattr(player, name)
        }
        if changes:
            player_changes[session_id] = changes

    return Transition(
        removed=tuple(s for s in old_players if s not in new_players),
        added=tuple(added),
        player_changes=player_changes,
        hands=hands,
        game_changes={
            name: getattr(after, name)
            for name in GAME_FIELDS
            if getattr(before, name) != getattr(after, name)
        },
    )


class GameStore(ABC):
    """Abstract game persistence."""

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @abstractmethod
    async def fetch_by_code(self, code: str) -> Optional[GameState]:
        """Load a game by its join code (already uppercased by the caller)."""

    @abstractmethod
    async def fetch_by_id(self, game_id: str) -> Optional[GameState]:
        """Load a game by id."""

    @abstractmethod
    async def code_is_available(self, code: str) -> bool:
        """True if no stored game uses this code."""

    @abstractmethod
    async def count_by_status(self) -> dict[str, int]:
        """Number of stored games per status."""

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create(self, state: GameState) -> None:
        """Store a new game together with its players."""

    @abstractmethod
    async def update(self, game_id: str, **changes: Any) -> None:
        """Overwrite game-level fields (any of GAME_FIELDS)."""

    @abstractmethod
    async def add_player(self, game_id: str, player: Player) -> None:
        """Seat a new player."""

    @abstractmethod
    async def remove_player(self, game_id: str, session_id: str) -> None:
        """Delete a player's seat outright."""

    @abstractmethod
    async def update_player(self, game_id: str, session_id: str, **changes: Any) -> None:
        """Overwrite player fields (any of PLAYER_FIELDS)."""

    @abstractmethod
    async def delete_game(self, game_id: str) -> bool:
        """Delete a game and its players. Returns False if it didn't exist."""

    @abstractmethod
    async def delete_stale(self, waiting_before: datetime, finished_before: datetime) -> int:
        """
        Delete abandoned games.

        Args:
            waiting_before: Waiting games created before this are deleted.
            finished_before: Finished games last updated before this are deleted.

        Returns:
            Number of games deleted.
        """

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def ping(self) -> bool:
        """Check the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend connections."""

    # -------------------------------------------------------------------------
    # Convenience writes
    # -------------------------------------------------------------------------

    async def update_player_hand(self, game_id: str, session_id: str, hand: tuple[Card, ...]) -> None:
        await self.update_player(game_id, session_id, hand=hand)

    async def update_players_hands(self, game_id: str, hands: dict[str, tuple[Card, ...]]) -> None:
        """Write several hands at once, keyed by session id."""
        for session_id, hand in hands.items():
            await self.update_player_hand(game_id, session_id, hand)

    async def save_transition(self, before: GameState, after: GameState) -> None:
        """
        Persist the difference between two snapshots of the same game.

        This default issues the partial writes one after another.
        Backends shared between processes override it so the whole
        transition lands at once.
        """
        transition = diff_snapshots(before, after)

        for session_id in transition.removed:
            await self.remove_player(after.id, session_id)
        for player in transition.added:
            await self.add_player(after.id, player)
        for session_id, changes in transition.player_changes.items():
            await self.update_player(after.id, session_id, **changes)
        if transition.hands:
            await self.update_players_hands(after.id, transition.hands)
        if transition.game_changes:
            await self.update(after.id, **transition.game_changes)
