"""
In-process game store.

Default backend when neither POSTGRES_URL nor REDIS_URL is configured, and
the one the test suite runs against. Games vanish on restart.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

from game import GameState, GameStatus, Player
from stores.base import GAME_FIELDS, PLAYER_FIELDS, GameStore

logger = logging.getLogger(__name__)


class MemoryGameStore(GameStore):
    """Dict-backed GameStore. Snapshots are immutable so they are stored as-is."""

    def __init__(self):
        self._games: dict[str, GameState] = {}
        self._codes: dict[str, str] = {}

    async def fetch_by_code(self, code: str) -> Optional[GameState]:
        game_id = self._codes.get(code)
        return self._games.get(game_id) if game_id else None

    async def fetch_by_id(self, game_id: str) -> Optional[GameState]:
        return self._games.get(game_id)

    async def code_is_available(self, code: str) -> bool:
        return code not in self._codes

    async def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in GameStatus}
        for state in self._games.values():
            counts[state.status.value] += 1
        return counts

    async def create(self, state: GameState) -> None:
        if state.code in self._codes:
            raise ValueError(f"Game code {state.code} already in use")
        self._games[state.id] = replace(
            state, players=tuple(sorted(state.players, key=lambda p: p.position))
        )
        self._codes[state.code] = state.id

    async def update(self, game_id: str, **changes: Any) -> None:
        unknown = set(changes) - set(GAME_FIELDS)
        if unknown:
            raise ValueError(f"Not game fields: {sorted(unknown)}")
        state = self._require(game_id)
        self._games[game_id] = replace(state, **changes)

    async def add_player(self, game_id: str, player: Player) -> None:
        state = self._require(game_id)
        players = sorted(state.players + (player,), key=lambda p: p.position)
        self._games[game_id] = replace(state, players=tuple(players))

    async def remove_player(self, game_id: str, session_id: str) -> None:
        state = self._require(game_id)
        players = tuple(p for p in state.players if p.session_id != session_id)
        self._games[game_id] = replace(state, players=players)

    async def update_player(self, game_id: str, session_id: str, **changes: Any) -> None:
        unknown = set(changes) - set(PLAYER_FIELDS)
        if unknown:
            raise ValueError(f"Not player fields: {sorted(unknown)}")
        state = self._require(game_id)
        players = tuple(
            replace(p, **changes) if p.session_id == session_id else p
            for p in state.players
        )
        self._games[game_id] = replace(state, players=players)

    async def delete_game(self, game_id: str) -> bool:
        state = self._games.pop(game_id, None)
        if state is None:
            return False
        self._codes.pop(state.code, None)
        return True

    async def delete_stale(self, waiting_before: datetime, finished_before: datetime) -> int:
        stale = [
            state.id
            for state in self._games.values()
            if (state.status == GameStatus.WAITING and state.created_at < waiting_before)
            or (state.status == GameStatus.FINISHED and state.updated_at < finished_before)
        ]
        for game_id in stale:
            await self.delete_game(game_id)
        return len(stale)

    def _require(self, game_id: str) -> GameState:
        state = self._games.get(game_id)
        if state is None:
            raise KeyError(f"Game {game_id} not found")
        return state
