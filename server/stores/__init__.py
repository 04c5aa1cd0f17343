"""Stores package for Phonics game persistence."""

import logging

from .base import GameStore
from .memory_store import MemoryGameStore
from .game_store import PostgresGameStore
from .redis_store import RedisGameStore

logger = logging.getLogger(__name__)


async def create_store(server_config) -> GameStore:
    """
    Pick a backend from configuration.

    POSTGRES_URL wins over REDIS_URL; with neither set games live in memory.
    """
    if server_config.POSTGRES_URL:
        logger.info("Using PostgreSQL game store")
        return await PostgresGameStore.connect(server_config.POSTGRES_URL)
    if server_config.REDIS_URL:
        logger.info("Using Redis game store")
        return await RedisGameStore.connect(server_config.REDIS_URL)
    logger.info("No database configured, games are kept in memory")
    return MemoryGameStore()


__all__ = [
    "GameStore",
    "MemoryGameStore",
    "PostgresGameStore",
    "RedisGameStore",
    "create_store",
]
