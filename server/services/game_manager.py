"""
Game lifecycle management for online Phonics games.

GameManager owns every write to a stored game: create, join, start,
play, draw, leave, delete and stale-game cleanup. Each call reads the
authoritative state from the store, decides, and writes the difference
back. Expected rejections come back as ActionResult(success=False) with
an ErrorKind the HTTP layer maps to a status code; only storage failures
raise.

Concurrency:
    Calls for the same game, polls included, are serialised by a per-game
    asyncio.Lock and the state is re-read inside the lock before deciding.
    This closes the races between requests handled by one process. Requests for the same
    game spread across several server processes can still interleave;
    the turn gate and the client's pending-card tracking keep that window
    small.
"""

import asyncio
import random
import weakref
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional

from cards import card_to_dict
from config import config
from engine import (
    ErrorKind,
    TransitionResult,
    deal_new_game,
    disconnect_player,
    draw_card as engine_draw_card,
    generate_game_code,
    generate_id,
    play_card as engine_play_card,
)
from game import (
    ClientGameState,
    GameSettings,
    GameState,
    GameStatus,
    Player,
    connected_players,
    player_by_session,
    player_index,
    replace_player,
    to_client_state,
    touch,
    utcnow,
)
from logging_config import get_logger
from names import generate_unique_name
from models import events as ev
from models.events import GameEvent
from stores.base import GameStore

logger = get_logger(__name__)


@dataclass
class ActionResult:
    """
    Outcome of a GameManager call.

    Attributes:
        success: Whether the action was applied.
        error: Human-readable reason when it was not.
        error_kind: Category of the rejection.
        state: Game state after the action.
        events: Events the action produced, in order.
        message: Short confirmation text for the client.
        game_deleted: The game no longer exists.
        game_ended: The action finished the game.
        view: Requester's ClientGameState (polls only).
    """

    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    state: Optional[GameState] = None
    events: list[GameEvent] = field(default_factory=list)
    message: Optional[str] = None
    game_deleted: bool = False
    game_ended: bool = False
    view: Optional[ClientGameState] = None

    @classmethod
    def fail(cls, error: str, kind: ErrorKind = ErrorKind.INVALID) -> "ActionResult":
        return cls(success=False, error=error, error_kind=kind)


GAME_NOT_FOUND = "Game not found"


def normalize_code(code: str) -> str:
    return code.strip().upper()


class GameManager:
    """
    Create and drive online games against a GameStore.

    A single GameManager instance is used by the server.
    """

    def __init__(
        self,
        store: GameStore,
        rng: Optional[random.Random] = None,
        max_players: Optional[int] = None,
        min_players: Optional[int] = None,
    ) -> None:
        """
        Args:
            store: Persistence backend.
            rng: Random source for codes, shuffles and starting players.
            max_players: Seat limit (defaults to config).
            min_players: Connected players needed to start and keep playing.
        """
        self.store = store
        self.rng = rng or random.Random()
        self.max_players = max_players or config.MAX_PLAYERS_PER_GAME
        self.min_players = min_players or config.MIN_PLAYERS_TO_START
        # Entries live while some request holds or waits on the lock
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def _lock_for(self, code: str) -> asyncio.Lock:
        lock = self._locks.get(code)
        if lock is None:
            lock = self._locks[code] = asyncio.Lock()
        return lock

    async def _generate_code(self) -> Optional[str]:
        """Find an unused join code, or None after GAME_CODE_MAX_ATTEMPTS tries."""
        for _ in range(config.GAME_CODE_MAX_ATTEMPTS):
            code = generate_game_code(self.rng, config.GAME_CODE_LENGTH)
            if await self.store.code_is_available(code):
                return code
        return None

    # =========================================================================
    # Lobby
    # =========================================================================

    async def create_game(
        self,
        session_id: str,
        host_name: str,
        settings: Optional[GameSettings] = None,
    ) -> ActionResult:
        """
        Create a game in the waiting lobby with the caller as host.

        Args:
            session_id: Host's session.
            host_name: Host's display name.
            settings: Table options (server defaults when omitted).

        Returns:
            ActionResult with the new state, or UNAVAILABLE if no free
            code could be found.
        """
        code = await self._generate_code()
        if code is None:
            logger.error("Could not generate a unique game code")
            return ActionResult.fail("Could not generate a unique game code", ErrorKind.UNAVAILABLE)

        now = utcnow()
        host = Player(
            id=generate_id(),
            session_id=session_id,
            name=host_name,
            position=0,
            is_host=True,
            last_seen=now,
        )
        state = GameState(
            id=generate_id(),
            code=code,
            host_session_id=session_id,
            players=(host,),
            settings=settings or GameSettings.defaults(),
            created_at=now,
            updated_at=now,
        )
        await self.store.create(state)

        logger.with_context(game_code=code).info(f"Game {code} created by {host_name}")
        return ActionResult(
            success=True,
            state=state,
            events=[ev.game_created(state.id, code, host.id, state.settings.to_dict())],
            message="Game created",
        )

    async def join_game(self, code: str, session_id: str, name: Optional[str] = None) -> ActionResult:
        """
        Seat a player in a waiting game.

        Joining a game you're already in succeeds without adding a seat.
        New players take the seat after the highest position in use.
        Without a name the player gets a fun one not already at the table.
        """
        code = normalize_code(code)
        async with self._lock_for(code):
            state = await self.store.fetch_by_code(code)
            if state is None:
                return ActionResult.fail(GAME_NOT_FOUND, ErrorKind.NOT_FOUND)
            if state.status != GameStatus.WAITING:
                return ActionResult.fail("Game has already started")

            if player_by_session(state, session_id) is not None:
                return ActionResult(success=True, state=state, message="Already in game")

            if len(state.players) >= self.max_players:
                return ActionResult.fail("Game is full")

            position = max((p.position for p in state.players), default=-1) + 1
            name = name or generate_unique_name([p.name for p in state.players], self.rng)
            player = Player(
                id=generate_id(),
                session_id=session_id,
                name=name,
                position=position,
            )
            new_state = touch(state, players=state.players + (player,))
            await self.store.save_transition(state, new_state)

        logger.with_context(game_code=code).info(f"{name} joined game {code} at seat {position}")
        return ActionResult(
            success=True,
            state=new_state,
            events=[ev.player_joined(state.id, player.id, name, position)],
            message="Joined game",
        )

    async def start_game(self, code: str, session_id: str) -> ActionResult:
        """Deal the cards and start play. Host only."""
        code = normalize_code(code)
        async with self._lock_for(code):
            state = await self.store.fetch_by_code(code)
            if state is None:
                return ActionResult.fail(GAME_NOT_FOUND, ErrorKind.NOT_FOUND)
            if state.host_session_id != session_id:
                return ActionResult.fail("Only the host can start the game", ErrorKind.FORBIDDEN)
            if state.status != GameStatus.WAITING:
                return ActionResult.fail("Game has already started")
            if len(connected_players(state)) < self.min_players:
                return ActionResult.fail(f"Need at least {self.min_players} players to start")

            new_state = deal_new_game(state, rng=self.rng)
            await self.store.save_transition(state, new_state)

        first = new_state.players[new_state.current_player_index]
        logger.with_context(game_code=code).info(
            f"Game {code} started with {len(connected_players(new_state))} players, "
            f"{first.name} goes first"
        )
        return ActionResult(
            success=True,
            state=new_state,
            events=[ev.game_started(
                state.id,
                [p.id for p in new_state.players if p.is_connected],
                first.id,
                card_to_dict(new_state.play_pile[-1]),
            )],
            message="Game started",
        )

    # =========================================================================
    # Turns
    # =========================================================================

    async def play_card(
        self,
        code: str,
        session_id: str,
        card_id: str,
        declared_suit: Optional[str] = None,
    ) -> ActionResult:
        """Play a card for the current player."""
        return await self._turn(
            code,
            session_id,
            "play",
            lambda state: engine_play_card(state, session_id, card_id, declared_suit),
        )

    async def draw_card(self, code: str, session_id: str) -> ActionResult:
        """Draw for the current player when they have nothing playable."""
        return await self._turn(
            code,
            session_id,
            "draw",
            lambda state: engine_draw_card(state, session_id, self.rng),
        )

    async def _turn(self, code: str, session_id: str, action: str, apply) -> ActionResult:
        code = normalize_code(code)
        log = logger.with_context(game_code=code, action=action)
        async with self._lock_for(code):
            state = await self.store.fetch_by_code(code)
            if state is None:
                return ActionResult.fail(GAME_NOT_FOUND, ErrorKind.NOT_FOUND)
            if state.status != GameStatus.PLAYING:
                return ActionResult.fail("Game is not in progress")

            result: TransitionResult = apply(state)
            if not result.success:
                log.debug(f"Rejected {action} in {code}: {result.error}")
                return ActionResult.fail(result.error, result.error_kind)

            new_state = result.state
            await self.store.save_transition(state, new_state)

        events = list(result.events)
        ended = new_state.status == GameStatus.FINISHED
        if ended:
            winner = player_by_session(new_state, new_state.winner_session_id)
            events.append(ev.game_ended(new_state.id, winner_id=winner.id if winner else None))
            log.info(f"Game {code} finished, winner: {winner.name if winner else 'none'}")
        return ActionResult(success=True, state=new_state, events=events, game_ended=ended)

    # =========================================================================
    # Leaving and removal
    # =========================================================================

    async def leave_game(self, code: str, session_id: str) -> ActionResult:
        """
        Leave a game.

        - Host leaving the lobby deletes the game
        - Anyone else leaving the lobby gives up their seat
        - Leaving a running game marks the seat disconnected and may end
          the game or pass the turn on
        - Leaving a finished game marks the seat disconnected
        """
        code = normalize_code(code)
        log = logger.with_context(game_code=code)
        async with self._lock_for(code):
            state = await self.store.fetch_by_code(code)
            if state is None:
                return ActionResult.fail(GAME_NOT_FOUND, ErrorKind.NOT_FOUND)
            leaver = player_by_session(state, session_id)
            if leaver is None:
                return ActionResult.fail("You are not in this game")

            if state.status == GameStatus.WAITING:
                if leaver.is_host:
                    await self.store.delete_game(state.id)
                    log.info(f"Host left, game {code} deleted")
                    return ActionResult(
                        success=True,
                        message="Game deleted",
                        game_deleted=True,
                        events=[ev.player_left(state.id, leaver.id, leaver.name)],
                    )

                players = tuple(p for p in state.players if p.session_id != session_id)
                new_state = touch(state, players=players)
                await self.store.save_transition(state, new_state)
                log.info(f"{leaver.name} left lobby {code}")
                return ActionResult(
                    success=True,
                    state=new_state,
                    message="Left game",
                    events=[ev.player_left(state.id, leaver.id, leaver.name)],
                )

            if state.status == GameStatus.PLAYING:
                outcome = disconnect_player(state, session_id, self.min_players)
                await self.store.save_transition(state, outcome.state)
                if outcome.game_ended:
                    log.info(f"{leaver.name} left, game {code} ended: not enough players")
                    message = "Not enough players to continue"
                else:
                    log.info(f"{leaver.name} disconnected from game {code}")
                    message = "Disconnected from game"
                return ActionResult(
                    success=True,
                    state=outcome.state,
                    events=outcome.events,
                    message=message,
                    game_ended=outcome.game_ended,
                )

            index = player_index(state, session_id)
            new_state = touch(
                state,
                players=replace_player(state, index, replace(leaver, is_connected=False)),
            )
            await self.store.save_transition(state, new_state)
            return ActionResult(
                success=True,
                state=new_state,
                message="Left game",
                events=[ev.player_left(state.id, leaver.id, leaver.name)],
            )

    async def delete_game(self, code: str, session_id: str) -> ActionResult:
        """Delete a game in any status. Host only."""
        code = normalize_code(code)
        async with self._lock_for(code):
            state = await self.store.fetch_by_code(code)
            if state is None:
                return ActionResult.fail(GAME_NOT_FOUND, ErrorKind.NOT_FOUND)
            if state.host_session_id != session_id:
                return ActionResult.fail("Only the host can delete the game", ErrorKind.FORBIDDEN)
            await self.store.delete_game(state.id)

        logger.with_context(game_code=code).info(f"Game {code} deleted by host")
        return ActionResult(success=True, message="Game deleted", game_deleted=True)

    # =========================================================================
    # Polling and housekeeping
    # =========================================================================

    async def get_client_state(self, code: str, session_id: Optional[str]) -> ActionResult:
        """
        Poll a game.

        Records the requester's last_seen without touching updated_at, so
        polls never look like state changes to other players. A poll does
        not reconnect a player who has left.
        """
        code = normalize_code(code)
        async with self._lock_for(code):
            state = await self.store.fetch_by_code(code)
            if state is None:
                return ActionResult.fail(GAME_NOT_FOUND, ErrorKind.NOT_FOUND)

            if session_id and player_by_session(state, session_id) is not None:
                await self.store.update_player(state.id, session_id, last_seen=utcnow())

        return ActionResult(success=True, state=state, view=to_client_state(state, session_id))

    async def cleanup(self, now: Optional[datetime] = None) -> int:
        """
        Delete abandoned games.

        Waiting games older than WAITING_GAME_MAX_AGE_HOURS and finished
        games idle for FINISHED_GAME_MAX_AGE_MINUTES are removed.

        Returns:
            Number of games deleted.
        """
        now = now or utcnow()
        deleted = await self.store.delete_stale(
            waiting_before=now - timedelta(hours=config.WAITING_GAME_MAX_AGE_HOURS),
            finished_before=now - timedelta(minutes=config.FINISHED_GAME_MAX_AGE_MINUTES),
        )
        if deleted:
            logger.info(f"Cleaned up {deleted} stale games")
        return deleted


# Global manager instance (set by main.py at startup)
_game_manager: Optional[GameManager] = None


def set_game_manager(manager: Optional[GameManager]) -> None:
    global _game_manager
    _game_manager = manager


def get_game_manager() -> GameManager:
    """
    Return the server's GameManager.

    Raises:
        RuntimeError: If the server hasn't set one yet.
    """
    if _game_manager is None:
        raise RuntimeError("Game manager not initialized")
    return _game_manager
