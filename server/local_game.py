"""
Pass-and-play on a single device.

LocalGameSession is the whole state of one table: the GameState plus the
few UI flags a pass-and-play screen needs (is the current hand shown,
which card is selected, is the suit picker open). Everything is held on
the session object and passed around explicitly; the rules themselves
come from engine.py, exactly as for online games.

Hands are hidden between turns. After each play or draw the device is
passed on and the next player reveals their own hand.
"""

import logging
import random
from typing import Optional, Sequence

from cards import ActionCard, ActionType, Card, PhonicsCard, card_to_dict
from config import config
from engine import TransitionResult, draw_card, initialize_local_game, play_card
from game import GameSettings, GameState, GameStatus, Player, current_player, top_card
from models import events as ev
from models.events import GameEvent
from progress import ProgressTracker
from rules import can_play, must_draw, playable_cards

logger = logging.getLogger(__name__)


class LocalGameSession:
    """
    One pass-and-play game and its screen state.

    Attributes:
        state: The game, or None before init_game (setup screen).
        is_hand_revealed: Current player's cards are face up.
        selected_card_id: Card picked but not yet played.
        show_suit_picker: Waiting for a suit to go with a Change card.
        last_event: First event of the most recent action, for
            announcements and sounds.
    """

    def __init__(
        self,
        progress: Optional[ProgressTracker] = None,
        rng: Optional[random.Random] = None,
    ):
        self.progress = progress
        self.rng = rng
        self.reset()

    def reset(self) -> None:
        """Back to the setup screen."""
        self.state: Optional[GameState] = None
        self.is_hand_revealed = False
        self.selected_card_id: Optional[str] = None
        self.show_suit_picker = False
        self.last_event: Optional[GameEvent] = None
        self._win_recorded = False

    # =========================================================================
    # Setup
    # =========================================================================

    def init_game(
        self,
        player_names: Sequence[str],
        settings: Optional[GameSettings] = None,
        deck: Optional[Sequence[Card]] = None,
    ) -> GameState:
        """
        Deal a new game for the named players.

        Raises:
            ValueError: If the number of players is outside the table limits.
        """
        names = [name.strip() for name in player_names if name and name.strip()]
        if not config.MIN_PLAYERS_TO_START <= len(names) <= config.MAX_PLAYERS_PER_GAME:
            raise ValueError(
                f"Need {config.MIN_PLAYERS_TO_START} to {config.MAX_PLAYERS_PER_GAME} players, "
                f"got {len(names)}"
            )

        self.reset()
        self.state = initialize_local_game(names, settings, rng=self.rng, deck=deck)
        first = current_player(self.state)
        self.last_event = ev.game_started(
            self.state.id,
            [p.id for p in self.state.players],
            first.id,
            card_to_dict(top_card(self.state)),
        )
        if self.progress is not None:
            self.progress.record_game_played()

        logger.info(f"Local game started with {len(names)} players, {first.name} goes first")
        return self.state

    # =========================================================================
    # Screen flags
    # =========================================================================

    def reveal_hand(self) -> None:
        self.is_hand_revealed = True

    def hide_hand(self) -> None:
        """Hide the hand before passing the device on."""
        self.is_hand_revealed = False
        self.selected_card_id = None
        self.show_suit_picker = False

    def select_card(self, card_id: Optional[str]) -> None:
        self.selected_card_id = card_id

    def open_suit_picker(self) -> None:
        self.show_suit_picker = True

    def close_suit_picker(self) -> None:
        self.show_suit_picker = False

    # =========================================================================
    # Actions
    # =========================================================================

    def play_selected_card(self, declared_suit: Optional[str] = None) -> TransitionResult:
        """
        Play the selected card for the current player.

        A Change card selected without a suit opens the suit picker and
        is not played yet.
        """
        if self.state is None:
            return TransitionResult.reject("No game in progress")
        if not self.selected_card_id:
            return TransitionResult.reject("No card selected")

        player = current_player(self.state)
        card = self._card_in_hand(player, self.selected_card_id)
        if card is None:
            return TransitionResult.reject("Card not found in hand")

        if isinstance(card, ActionCard) and card.action == ActionType.CHANGE and not declared_suit:
            self.show_suit_picker = True
            return TransitionResult.reject("Please select a new suit")

        result = play_card(self.state, player.session_id, card.id, declared_suit)
        if not result.success:
            return result

        self.state = result.state
        self.selected_card_id = None
        self.show_suit_picker = False
        self.last_event = result.events[0] if result.events else None

        finished = self.state.status == GameStatus.FINISHED
        # Winner's hand stays up for the celebration
        self.is_hand_revealed = finished

        if self.progress is not None and isinstance(card, PhonicsCard):
            self.progress.record_word_practiced(card.word)
        if finished:
            self._record_win()
        return result

    def draw(self) -> TransitionResult:
        """Draw for the current player; their turn ends and the hand is hidden."""
        if self.state is None:
            return TransitionResult.reject("No game in progress")

        player = current_player(self.state)
        result = draw_card(self.state, player.session_id, self.rng)
        if not result.success:
            return result

        self.state = result.state
        self.selected_card_id = None
        self.is_hand_revealed = False
        self.last_event = result.events[0] if result.events else None
        return result

    def _record_win(self) -> None:
        if self._win_recorded or self.progress is None or not self.state.winner_session_id:
            return
        self.progress.record_game_won()
        self._win_recorded = True

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def _card_in_hand(player: Optional[Player], card_id: str) -> Optional[Card]:
        if player is None:
            return None
        for card in player.hand:
            if card.id == card_id:
                return card
        return None

    @property
    def status(self) -> str:
        """Game status value, or "setup" before a game is dealt."""
        return self.state.status.value if self.state else "setup"

    def current_player(self) -> Optional[Player]:
        return current_player(self.state) if self.state else None

    def top_card(self) -> Optional[Card]:
        return top_card(self.state) if self.state else None

    def playable_cards(self) -> list[Card]:
        player = self.current_player()
        if player is None:
            return []
        return playable_cards(player.hand, self.state.current_suit, self.top_card())

    def can_play_selected_card(self) -> bool:
        if not self.selected_card_id:
            return False
        card = self._card_in_hand(self.current_player(), self.selected_card_id)
        if card is None:
            return False
        return can_play(card, self.state.current_suit, self.top_card())

    def must_draw_card(self) -> bool:
        player = self.current_player()
        if player is None:
            return False
        return must_draw(player.hand, self.state.current_suit, self.top_card())

    def winner(self) -> Optional[Player]:
        if self.state is None or not self.state.winner_session_id:
            return None
        for player in self.state.players:
            if player.session_id == self.state.winner_session_id:
                return player
        return None
