"""Services package for Phonics game business logic."""

from .game_manager import ActionResult, GameManager, get_game_manager, set_game_manager

__all__ = [
    "ActionResult",
    "GameManager",
    "get_game_manager",
    "set_game_manager",
]
