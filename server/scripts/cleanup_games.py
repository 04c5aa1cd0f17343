#!/usr/bin/env python3
"""
Delete stale Phonics games from the configured store.

Removes waiting lobbies older than WAITING_GAME_MAX_AGE_HOURS and
finished games idle for FINISHED_GAME_MAX_AGE_MINUTES, the same sweep
the server runs periodically.

Usage:
    python scripts/cleanup_games.py
"""

import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config
from services.game_manager import GameManager
from stores import MemoryGameStore, create_store


async def cleanup_games() -> int:
    """Run one cleanup pass and return the number of games deleted."""
    print("Connecting to game store...")
    store = await create_store(config)
    if isinstance(store, MemoryGameStore):
        print("Error: neither POSTGRES_URL nor REDIS_URL is configured")
        print("In-memory games only live inside the server process")
        sys.exit(1)

    try:
        deleted = await GameManager(store).cleanup()
    finally:
        await store.close()

    print(f"Deleted {deleted} stale game(s)")
    return deleted


def main():
    if len(sys.argv) > 1:
        print(__doc__)
        sys.exit(1)
    asyncio.run(cleanup_games())


if __name__ == "__main__":
    main()
