"""
Redis-backed game store.

Each game is kept as one JSON snapshot (GameState.to_dict) so partial
updates are get/modify/set on that snapshot. A whole transition is a
single set of the new snapshot. Every write refreshes the TTL, so
abandoned games expire even if the cleanup task never runs.

Key patterns:
- phonics:game:{game_id}  -> JSON (full game snapshot)
- phonics:code:{code}     -> String (game id)
- phonics:games:active    -> Set (ids of stored games)
"""

import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Optional

import redis.asyncio as redis

from game import GameState, GameStatus, Player
from stores.base import GAME_FIELDS, PLAYER_FIELDS, GameStore

logger = logging.getLogger(__name__)


class RedisGameStore(GameStore):
    """Redis-backed GameStore."""

    GAME_KEY = "phonics:game:{game_id}"
    CODE_KEY = "phonics:code:{code}"
    ACTIVE_GAMES_KEY = "phonics:games:active"

    GAME_TTL = timedelta(hours=24)

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize the store with a Redis client.

        Args:
            redis_client: Async Redis client.
        """
        self.redis = redis_client

    @classmethod
    async def connect(cls, redis_url: str) -> "RedisGameStore":
        """
        Create a store with a new Redis connection.

        Args:
            redis_url: Redis connection URL.
        """
        client = redis.from_url(redis_url, decode_responses=False)
        await client.ping()
        logger.info("RedisGameStore connected to Redis")
        return cls(client)

    async def close(self) -> None:
        await self.redis.close()

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_by_id(self, game_id: str) -> Optional[GameState]:
        data = await self.redis.get(self.GAME_KEY.format(game_id=game_id))
        if not data:
            return None
        return GameState.from_dict(json.loads(data))

    async def fetch_by_code(self, code: str) -> Optional[GameState]:
        game_id = await self.redis.get(self.CODE_KEY.format(code=code))
        if not game_id:
            return None
        if isinstance(game_id, bytes):
            game_id = game_id.decode()
        return await self.fetch_by_id(game_id)

    async def code_is_available(self, code: str) -> bool:
        return not await self.redis.exists(self.CODE_KEY.format(code=code))

    async def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in GameStatus}
        for state in await self._active_games():
            counts[state.status.value] += 1
        return counts

    async def _active_games(self) -> list[GameState]:
        """Load every game in the active set, dropping ids whose key expired."""
        games = []
        for raw_id in await self.redis.smembers(self.ACTIVE_GAMES_KEY):
            game_id = raw_id.decode() if isinstance(raw_id, bytes) else raw_id
            state = await self.fetch_by_id(game_id)
            if state is None:
                await self.redis.srem(self.ACTIVE_GAMES_KEY, game_id)
                continue
            games.append(state)
        return games

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _save(self, state: GameState) -> None:
        ttl = int(self.GAME_TTL.total_seconds())
        pipe = self.redis.pipeline()
        pipe.set(self.GAME_KEY.format(game_id=state.id), json.dumps(state.to_dict()), ex=ttl)
        pipe.set(self.CODE_KEY.format(code=state.code), state.id, ex=ttl)
        pipe.sadd(self.ACTIVE_GAMES_KEY, state.id)
        await pipe.execute()

    async def _require(self, game_id: str) -> GameState:
        state = await self.fetch_by_id(game_id)
        if state is None:
            raise KeyError(f"Game {game_id} not found")
        return state

    async def create(self, state: GameState) -> None:
        await self._save(state)
        logger.debug(f"Stored game {state.code} ({state.id})")

    async def update(self, game_id: str, **changes: Any) -> None:
        unknown = set(changes) - set(GAME_FIELDS)
        if unknown:
            raise ValueError(f"Not game fields: {sorted(unknown)}")
        state = await self._require(game_id)
        await self._save(replace(state, **changes))

    async def add_player(self, game_id: str, player: Player) -> None:
        state = await self._require(game_id)
        players = sorted(state.players + (player,), key=lambda p: p.position)
        await self._save(replace(state, players=tuple(players)))

    async def remove_player(self, game_id: str, session_id: str) -> None:
        state = await self._require(game_id)
        players = tuple(p for p in state.players if p.session_id != session_id)
        await self._save(replace(state, players=players))

    async def update_player(self, game_id: str, session_id: str, **changes: Any) -> None:
        unknown = set(changes) - set(PLAYER_FIELDS)
        if unknown:
            raise ValueError(f"Not player fields: {sorted(unknown)}")
        state = await self._require(game_id)
        players = tuple(
            replace(p, **changes) if p.session_id == session_id else p
            for p in state.players
        )
        await self._save(replace(state, players=players))

    async def update_players_hands(self, game_id: str, hands: dict) -> None:
        """Write several hands with a single snapshot save."""
        state = await self._require(game_id)
        players = tuple(
            replace(p, hand=hands[p.session_id]) if p.session_id in hands else p
            for p in state.players
        )
        await self._save(replace(state, players=players))

    async def save_transition(self, before: GameState, after: GameState) -> None:
        """Write ``after`` as one snapshot so readers never see half a turn."""
        await self._save(after)

    async def delete_game(self, game_id: str) -> bool:
        state = await self.fetch_by_id(game_id)
        pipe = self.redis.pipeline()
        pipe.delete(self.GAME_KEY.format(game_id=game_id))
        if state is not None:
            pipe.delete(self.CODE_KEY.format(code=state.code))
        pipe.srem(self.ACTIVE_GAMES_KEY, game_id)
        await pipe.execute()
        return state is not None

    async def delete_stale(self, waiting_before: datetime, finished_before: datetime) -> int:
        deleted = 0
        for state in await self._active_games():
            stale = (
                (state.status == GameStatus.WAITING and state.created_at < waiting_before)
                or (state.status == GameStatus.FINISHED and state.updated_at < finished_before)
            )
            if stale and await self.delete_game(state.id):
                deleted += 1
        return deleted
