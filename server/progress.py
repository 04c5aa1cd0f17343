"""
Practice progress for local games.

Kept in a small JSON file so it survives between sessions on the same
machine. A missing or unreadable file just means no progress yet.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_PATH = Path.home() / ".super_phonics" / "progress.json"

# A word already among the most recent RECENT_WORD_WINDOW isn't added again
RECENT_WORD_WINDOW = 50
MAX_WORDS_KEPT = 500


@dataclass
class ProgressData:
    games_played: int = 0
    games_won: int = 0
    words_practiced: list[str] = field(default_factory=list)
    last_played: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressData":
        return cls(
            games_played=int(data.get("games_played", 0)),
            games_won=int(data.get("games_won", 0)),
            words_practiced=list(data.get("words_practiced", [])),
            last_played=data.get("last_played"),
        )


class ProgressTracker:
    """Read-modify-write access to the progress file."""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path) if path is not None else DEFAULT_PROGRESS_PATH

    def load(self) -> ProgressData:
        if not self.path.exists():
            return ProgressData()
        try:
            with open(self.path) as f:
                return ProgressData.from_dict(json.load(f))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable progress file {self.path}: {e}")
            return ProgressData()

    def save(self, progress: ProgressData) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(asdict(progress), f, indent=2)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()

    def record_game_played(self) -> ProgressData:
        progress = self.load()
        progress.games_played += 1
        progress.last_played = _now()
        self.save(progress)
        return progress

    def record_game_won(self) -> ProgressData:
        progress = self.load()
        progress.games_won += 1
        progress.last_played = _now()
        self.save(progress)
        return progress

    def record_word_practiced(self, word: str) -> bool:
        """
        Add a word to the practice list.

        Returns:
            False if the word was practiced recently and was not added.
        """
        progress = self.load()
        if word in progress.words_practiced[-RECENT_WORD_WINDOW:]:
            return False
        progress.words_practiced.append(word)
        progress.words_practiced = progress.words_practiced[-MAX_WORDS_KEPT:]
        self.save(progress)
        return True


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
