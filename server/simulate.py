"""
Phonics Game Simulation Runner

Plays automatic local games straight through the engine to shake out
rule bugs. After every play and draw the deck is counted: hands plus
both piles must always hold every card.

Strategy: play the first playable card; a Change card names the suit
the player holds most of; with nothing playable, draw.

Usage:
    python simulate.py [num_games] [num_players] [seed]
    python simulate.py detail [num_players] [seed]

Examples:
    python simulate.py 100        # 100 games with 4 players each
    python simulate.py 50 2 7     # 50 two-player games, seed 7
"""

import random
import sys
from collections import Counter
from typing import Optional

from cards import ActionCard, ActionType, Card, PhonicsCard
from constants import DEFAULT_VOWEL, TOTAL_CARD_COUNT
from engine import draw_card, initialize_local_game, play_card
from game import GameSettings, GameState, GameStatus, card_count_total, current_player, top_card
from rules import playable_cards

MAX_TURNS = 1000


class SimulationStats:
    """Track simulation statistics."""

    def __init__(self):
        self.games_played = 0
        self.games_stalled = 0
        self.total_turns = 0
        self.player_wins: dict[str, int] = {}
        self.actions: Counter = Counter()
        self.turn_counts: list[int] = []

    def record_game(self, winner_name: Optional[str], turns: int):
        self.games_played += 1
        self.turn_counts.append(turns)
        if winner_name is None:
            self.games_stalled += 1
            return
        self.player_wins[winner_name] = self.player_wins.get(winner_name, 0) + 1

    def record_turn(self, action: str):
        self.total_turns += 1
        self.actions[action] += 1

    def report(self) -> str:
        lines = [
            "=" * 50,
            "SIMULATION RESULTS",
            "=" * 50,
            f"Games played: {self.games_played}",
            f"Games without a winner: {self.games_stalled}",
            f"Total turns: {self.total_turns}",
        ]
        if self.turn_counts:
            avg = sum(self.turn_counts) / len(self.turn_counts)
            lines.append(
                f"Turns per game: avg {avg:.1f}, "
                f"min {min(self.turn_counts)}, max {max(self.turn_counts)}"
            )

        lines.append("")
        lines.append("WINS BY SEAT:")
        for name, wins in sorted(self.player_wins.items()):
            pct = wins / self.games_played * 100 if self.games_played else 0
            lines.append(f"  {name}: {wins} ({pct:.1f}%)")

        lines.append("")
        lines.append("ACTIONS:")
        for action, count in self.actions.most_common():
            lines.append(f"  {action}: {count}")
        return "\n".join(lines)


def check_conservation(state: GameState) -> None:
    """
    Raises:
        AssertionError: If any card went missing or was duplicated.
    """
    total = card_count_total(state)
    if total != TOTAL_CARD_COUNT:
        raise AssertionError(f"Card count is {total}, expected {TOTAL_CARD_COUNT}")

    ids = [c.id for p in state.players for c in p.hand]
    ids += [c.id for c in state.draw_pile] + [c.id for c in state.play_pile]
    if len(set(ids)) != len(ids):
        raise AssertionError("A card appears in more than one place")


def choose_suit(hand: list[Card]) -> str:
    """The suit the hand holds most of (ties go to the first seen)."""
    suits = Counter(c.suit for c in hand if isinstance(c, PhonicsCard))
    if not suits:
        return DEFAULT_VOWEL
    return suits.most_common(1)[0][0]


def choose_play(state: GameState) -> Optional[tuple[Card, Optional[str]]]:
    """(card, declared_suit) for the current player, or None to draw."""
    player = current_player(state)
    options = playable_cards(player.hand, state.current_suit, top_card(state))
    if not options:
        return None
    card = options[0]
    declared = None
    if isinstance(card, ActionCard) and card.action == ActionType.CHANGE:
        declared = choose_suit([c for c in player.hand if c.id != card.id])
    return card, declared


def describe(card: Card) -> str:
    if isinstance(card, PhonicsCard):
        return f"{card.word} ({card.suit})"
    return card.action.value


def run_game(
    num_players: int = 4,
    rng: Optional[random.Random] = None,
    stats: Optional[SimulationStats] = None,
    settings: Optional[GameSettings] = None,
    verbose: bool = False,
) -> GameState:
    """
    Play one automatic game to the end.

    Stops early without a winner if nobody can move (nothing playable
    and nothing left to draw) or after MAX_TURNS.

    Returns:
        The final state.
    """
    rng = rng or random.Random()
    names = [f"Player {i + 1}" for i in range(num_players)]
    state = initialize_local_game(names, settings, rng=rng)
    check_conservation(state)
    if verbose:
        print(f"Starter: {describe(top_card(state))}, {current_player(state).name} goes first")

    turns = 0
    while state.status == GameStatus.PLAYING and turns < MAX_TURNS:
        player = current_player(state)
        choice = choose_play(state)
        if choice is not None:
            card, declared = choice
            result = play_card(state, player.session_id, card.id, declared)
            action = "play_action" if isinstance(card, ActionCard) else "play_word"
        else:
            card, declared = None, None
            result = draw_card(state, player.session_id, rng)
            action = "draw"

        if not result.success:
            if verbose:
                print(f"  {player.name} is stuck: {result.error}")
            break

        state = result.state
        check_conservation(state)
        turns += 1
        if stats:
            stats.record_turn(action)
        if verbose:
            what = describe(card) if card else "drew a card"
            suffix = f" -> {declared}" if declared else ""
            left = len(next(p.hand for p in state.players if p.id == player.id))
            print(f"Turn {turns}: {player.name} {what}{suffix}, {left} cards left")

    winner = None
    if state.winner_session_id:
        winner = next(p.name for p in state.players if p.session_id == state.winner_session_id)
    if stats:
        stats.record_game(winner, turns)
    if verbose:
        print(f"\nWinner: {winner or 'nobody'} after {turns} turns")
    return state


def run_simulation(num_games: int = 10, num_players: int = 4, seed: Optional[int] = None):
    """Run many games and print aggregate statistics."""
    rng = random.Random(seed)
    stats = SimulationStats()

    print(f"Running {num_games} games with {num_players} players...")
    for i in range(num_games):
        run_game(num_players, rng, stats)
        if (i + 1) % 10 == 0:
            print(f"  {i + 1}/{num_games} games complete")

    print("\n")
    print(stats.report())
    return stats


def run_detailed_game(num_players: int = 4, seed: Optional[int] = None):
    """Run a single game with turn-by-turn output."""
    print(f"\nRunning detailed game with {num_players} players...")
    print("=" * 50)
    return run_game(num_players, random.Random(seed), verbose=True)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "detail":
        num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4
        seed = int(sys.argv[3]) if len(sys.argv) > 3 else None
        run_detailed_game(num_players, seed)
    else:
        num_games = int(sys.argv[1]) if len(sys.argv) > 1 else 10
        num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4
        seed = int(sys.argv[3]) if len(sys.argv) > 3 else None
        run_simulation(num_games, num_players, seed)
