"""
Centralized configuration for the Phonics card game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.game_defaults.cards_per_player)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class GameDefaults:
    """Default settings applied to new games."""
    cards_per_player: int = 5
    starting_player_mode: str = "random"  # "random", "youngest", or "manual"
    enable_reverse_for_2_players: bool = False
    enable_tts: bool = True
    tts_speed: str = "normal"  # "normal" or "slow"


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Storage (Postgres wins over Redis; neither means in-memory)
    POSTGRES_URL: str = ""
    REDIS_URL: str = ""

    # Game settings
    MAX_PLAYERS_PER_GAME: int = 6
    MIN_PLAYERS_TO_START: int = 2
    GAME_CODE_LENGTH: int = 4
    GAME_CODE_MAX_ATTEMPTS: int = 10

    # Housekeeping
    WAITING_GAME_MAX_AGE_HOURS: int = 24
    FINISHED_GAME_MAX_AGE_MINUTES: int = 60
    CLEANUP_INTERVAL_SECONDS: int = 300

    # Anonymous sessions
    SESSION_COOKIE_NAME: str = "super_phonics_session"
    PLAYER_NAME_COOKIE_NAME: str = "super_phonics_player"
    SESSION_MAX_AGE_DAYS: int = 30

    game_defaults: GameDefaults = field(default_factory=GameDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            POSTGRES_URL=get_env("POSTGRES_URL", ""),
            REDIS_URL=get_env("REDIS_URL", ""),
            MAX_PLAYERS_PER_GAME=get_env_int("MAX_PLAYERS_PER_GAME", 6),
            MIN_PLAYERS_TO_START=get_env_int("MIN_PLAYERS_TO_START", 2),
            GAME_CODE_LENGTH=get_env_int("GAME_CODE_LENGTH", 4),
            GAME_CODE_MAX_ATTEMPTS=get_env_int("GAME_CODE_MAX_ATTEMPTS", 10),
            WAITING_GAME_MAX_AGE_HOURS=get_env_int("WAITING_GAME_MAX_AGE_HOURS", 24),
            FINISHED_GAME_MAX_AGE_MINUTES=get_env_int("FINISHED_GAME_MAX_AGE_MINUTES", 60),
            CLEANUP_INTERVAL_SECONDS=get_env_int("CLEANUP_INTERVAL_SECONDS", 300),
            SESSION_COOKIE_NAME=get_env("SESSION_COOKIE_NAME", "super_phonics_session"),
            PLAYER_NAME_COOKIE_NAME=get_env("PLAYER_NAME_COOKIE_NAME", "super_phonics_player"),
            SESSION_MAX_AGE_DAYS=get_env_int("SESSION_MAX_AGE_DAYS", 30),
            game_defaults=GameDefaults(
                cards_per_player=get_env_int("DEFAULT_CARDS_PER_PLAYER", 5),
                starting_player_mode=get_env("DEFAULT_STARTING_PLAYER_MODE", "random"),
                enable_reverse_for_2_players=get_env_bool("DEFAULT_REVERSE_FOR_2_PLAYERS", False),
                enable_tts=get_env_bool("DEFAULT_ENABLE_TTS", True),
                tts_speed=get_env("DEFAULT_TTS_SPEED", "normal"),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
