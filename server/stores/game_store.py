"""
PostgreSQL-backed game store.

Two tables: one row per game, one row per seated player. Hands and piles
are JSONB arrays of card ids; settings are a JSONB object. Reads join the
two tables back into a GameState with players ordered by position.
A whole turn is written in one transaction and each read sees one
snapshot of both tables.

Deleting a game cascades to its players.
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional

import asyncpg

from game import GameState, GameStatus, Player
from stores.base import GAME_FIELDS, PLAYER_FIELDS, GameStore, diff_snapshots

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS phonics_games (
    id UUID PRIMARY KEY,
    code VARCHAR(8) NOT NULL UNIQUE,
    status VARCHAR(20) NOT NULL DEFAULT 'waiting',  -- waiting, playing, finished
    host_session_id VARCHAR(64) NOT NULL,
    current_player_index INT NOT NULL DEFAULT 0,
    direction SMALLINT NOT NULL DEFAULT 1,
    current_suit VARCHAR(2),
    draw_pile JSONB NOT NULL DEFAULT '[]',
    play_pile JSONB NOT NULL DEFAULT '[]',
    winner_session_id VARCHAR(64),
    settings JSONB NOT NULL DEFAULT '{}',
    end_reason VARCHAR(50),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS phonics_players (
    id UUID PRIMARY KEY,
    game_id UUID NOT NULL REFERENCES phonics_games(id) ON DELETE CASCADE,
    session_id VARCHAR(64) NOT NULL,
    name VARCHAR(50) NOT NULL,
    hand JSONB NOT NULL DEFAULT '[]',
    position INT NOT NULL,
    is_host BOOLEAN NOT NULL DEFAULT FALSE,
    is_connected BOOLEAN NOT NULL DEFAULT TRUE,
    last_seen TIMESTAMPTZ NOT NULL DEFAULT NOW(),

    UNIQUE(game_id, session_id)
);

CREATE INDEX IF NOT EXISTS idx_phonics_games_status ON phonics_games(status);
CREATE INDEX IF NOT EXISTS idx_phonics_games_updated ON phonics_games(updated_at);
CREATE INDEX IF NOT EXISTS idx_phonics_players_game ON phonics_players(game_id, position);
"""

# Game columns holding JSON, and how to turn a model value into JSON text
_JSON_GAME_COLUMNS = {
    "draw_pile": lambda cards: json.dumps([c.id for c in cards]),
    "play_pile": lambda cards: json.dumps([c.id for c in cards]),
    "settings": lambda settings: json.dumps(settings.to_dict()),
}


def _load_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _game_value(column: str, value: Any) -> Any:
    if column in _JSON_GAME_COLUMNS:
        return _JSON_GAME_COLUMNS[column](value)
    if column == "status":
        return GameStatus(value).value
    return value


def _player_value(column: str, value: Any) -> Any:
    if column == "hand":
        return json.dumps([c.id for c in value])
    return value


def rows_to_state(game_row, player_rows) -> GameState:
    """
    Rebuild a GameState from a phonics_games row and its phonics_players rows.

    Args:
        game_row: Mapping with the phonics_games columns.
        player_rows: Mappings with the phonics_players columns, any order.

    Returns:
        GameState with players sorted by position.
    """
    players = [
        {
            "id": str(row["id"]),
            "session_id": row["session_id"],
            "name": row["name"],
            "hand": _load_json(row["hand"]) or [],
            "position": row["position"],
            "is_host": row["is_host"],
            "is_connected": row["is_connected"],
            "last_seen": row["last_seen"],
        }
        for row in player_rows
    ]
    return GameState.from_dict({
        "id": str(game_row["id"]),
        "code": game_row["code"],
        "host_session_id": game_row["host_session_id"],
        "status": game_row["status"],
        "players": players,
        "current_player_index": game_row["current_player_index"],
        "direction": game_row["direction"],
        "current_suit": game_row["current_suit"],
        "draw_pile": _load_json(game_row["draw_pile"]) or [],
        "play_pile": _load_json(game_row["play_pile"]) or [],
        "winner_session_id": game_row["winner_session_id"],
        "settings": _load_json(game_row["settings"]),
        "created_at": game_row["created_at"],
        "updated_at": game_row["updated_at"],
        "end_reason": game_row["end_reason"],
    })


class PostgresGameStore(GameStore):
    """
    PostgreSQL-backed game store.

    Uses asyncpg for async database access.
    """

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize the store with a connection pool.

        Args:
            pool: asyncpg connection pool.
        """
        self.pool = pool

    @classmethod
    async def connect(cls, postgres_url: str) -> "PostgresGameStore":
        """
        Create a store with a new connection pool and make sure the schema exists.

        Args:
            postgres_url: PostgreSQL connection URL.
        """
        pool = await asyncpg.create_pool(postgres_url, min_size=2, max_size=10)
        store = cls(pool)
        await store.initialize_schema()
        return store

    async def initialize_schema(self) -> None:
        """Create database tables if they don't exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Game store schema initialized")

    async def close(self) -> None:
        await self.pool.close()

    async def ping(self) -> bool:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_by_code(self, code: str) -> Optional[GameState]:
        return await self._fetch("code", code)

    async def fetch_by_id(self, game_id: str) -> Optional[GameState]:
        return await self._fetch("id", game_id)

    async def _fetch(self, column: str, value: str) -> Optional[GameState]:
        async with self.pool.acquire() as conn:
            # One snapshot for both queries so a concurrent turn can't tear the read
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                game_row = await conn.fetchrow(
                    f"SELECT * FROM phonics_games WHERE {column} = $1",
                    value,
                )
                if game_row is None:
                    return None
                player_rows = await conn.fetch(
                    "SELECT * FROM phonics_players WHERE game_id = $1 ORDER BY position",
                    game_row["id"],
                )
        return rows_to_state(game_row, player_rows)

    async def code_is_available(self, code: str) -> bool:
        async with self.pool.acquire() as conn:
            exists = await conn.fetchval(
                "SELECT EXISTS(SELECT 1 FROM phonics_games WHERE code = $1)",
                code,
            )
        return not exists

    async def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in GameStatus}
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT status, COUNT(*) AS n FROM phonics_games GROUP BY status"
            )
        for row in rows:
            counts[row["status"]] = row["n"]
        return counts

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create(self, state: GameState) -> None:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO phonics_games (
                        id, code, status, host_session_id, current_player_index,
                        direction, current_suit, draw_pile, play_pile,
                        winner_session_id, settings, end_reason, created_at, updated_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
                    """,
                    state.id,
                    state.code,
                    state.status.value,
                    state.host_session_id,
                    state.current_player_index,
                    state.direction,
                    state.current_suit,
                    _game_value("draw_pile", state.draw_pile),
                    _game_value("play_pile", state.play_pile),
                    state.winner_session_id,
                    _game_value("settings", state.settings),
                    state.end_reason,
                    state.created_at,
                    state.updated_at,
                )
                for player in state.players:
                    await self._insert_player(conn, state.id, player)

    async def update(self, game_id: str, **changes: Any) -> None:
        if not changes:
            return
        unknown = set(changes) - set(GAME_FIELDS)
        if unknown:
            raise ValueError(f"Not game fields: {sorted(unknown)}")
        async with self.pool.acquire() as conn:
            await self._update_game(conn, game_id, changes)

    async def _update_game(self, conn, game_id: str, changes: dict[str, Any]) -> None:
        columns = list(changes)
        assignments = ", ".join(f"{col} = ${i + 2}" for i, col in enumerate(columns))
        values = [_game_value(col, changes[col]) for col in columns]
        await conn.execute(
            f"UPDATE phonics_games SET {assignments} WHERE id = $1",
            game_id,
            *values,
        )

    async def add_player(self, game_id: str, player: Player) -> None:
        async with self.pool.acquire() as conn:
            await self._insert_player(conn, game_id, player)

    async def _insert_player(self, conn, game_id: str, player: Player) -> None:
        await conn.execute(
            """
            INSERT INTO phonics_players (
                id, game_id, session_id, name, hand, position,
                is_host, is_connected, last_seen
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            """,
            player.id,
            game_id,
            player.session_id,
            player.name,
            _player_value("hand", player.hand),
            player.position,
            player.is_host,
            player.is_connected,
            player.last_seen,
        )

    async def remove_player(self, game_id: str, session_id: str) -> None:
        async with self.pool.acquire() as conn:
            await self._delete_player(conn, game_id, session_id)

    async def _delete_player(self, conn, game_id: str, session_id: str) -> None:
        await conn.execute(
            "DELETE FROM phonics_players WHERE game_id = $1 AND session_id = $2",
            game_id,
            session_id,
        )

    async def update_player(self, game_id: str, session_id: str, **changes: Any) -> None:
        if not changes:
            return
        unknown = set(changes) - set(PLAYER_FIELDS)
        if unknown:
            raise ValueError(f"Not player fields: {sorted(unknown)}")
        async with self.pool.acquire() as conn:
            await self._update_player(conn, game_id, session_id, changes)

    async def _update_player(self, conn, game_id: str, session_id: str, changes: dict[str, Any]) -> None:
        columns = list(changes)
        assignments = ", ".join(f"{col} = ${i + 3}" for i, col in enumerate(columns))
        values = [_player_value(col, changes[col]) for col in columns]
        await conn.execute(
            f"UPDATE phonics_players SET {assignments} "
            "WHERE game_id = $1 AND session_id = $2",
            game_id,
            session_id,
            *values,
        )

    async def update_players_hands(self, game_id: str, hands: dict) -> None:
        """Write several hands in one transaction."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._update_hands(conn, game_id, hands)

    async def _update_hands(self, conn, game_id: str, hands: dict) -> None:
        await conn.executemany(
            "UPDATE phonics_players SET hand = $3 WHERE game_id = $1 AND session_id = $2",
            [
                (game_id, session_id, _player_value("hand", hand))
                for session_id, hand in hands.items()
            ],
        )

    async def save_transition(self, before: GameState, after: GameState) -> None:
        """Apply every write of a transition in a single transaction."""
        transition = diff_snapshots(before, after)
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for session_id in transition.removed:
                    await self._delete_player(conn, after.id, session_id)
                for player in transition.added:
                    await self._insert_player(conn, after.id, player)
                for session_id, changes in transition.player_changes.items():
                    await self._update_player(conn, after.id, session_id, changes)
                if transition.hands:
                    await self._update_hands(conn, after.id, transition.hands)
                if transition.game_changes:
                    await self._update_game(conn, after.id, transition.game_changes)

    async def delete_game(self, game_id: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM phonics_games WHERE id = $1",
                game_id,
            )
        return result.endswith(" 1")

    async def delete_stale(self, waiting_before: datetime, finished_before: datetime) -> int:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                DELETE FROM phonics_games
                WHERE (status = 'waiting' AND created_at < $1)
                   OR (status = 'finished' AND updated_at < $2)
                RETURNING id
                """,
                waiting_before,
                finished_before,
            )
        return len(rows)
