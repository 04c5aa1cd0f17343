"""Models package for the Phonics game server."""

from .events import EventType, GameEvent, event_types

__all__ = [
    "EventType",
    "GameEvent",
    "event_types",
]
