"""
Polling client for online Phonics games.

There is no push channel: the client fetches the whole ClientGameState
from GET /api/game/{code} on an adaptive cadence and compares the
server's ``updated_at`` with the last value it saw, replacing its copy
only when the game actually changed.

Cadence:
    waiting lobby   -> PollIntervals.waiting
    game in play    -> PollIntervals.active
    after N errors  -> base_error * 2**(N-1), capped at max_error
    finished        -> polling stops

Polling is suspended while the client is not visible and resumes with an
immediate fetch when it becomes visible again.

Playing a card removes it from the local hand straight away and marks
the copy dirty. Whatever the server answers, the client re-fetches and
adopts the server's state, so the optimistic guess is never final. A
card with a play request in flight is "pending" and can't be played
again until that request resolves.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional

import httpx

from cards import Card
from game import ClientGameState, GameStatus
from rules import can_play

logger = logging.getLogger(__name__)

NETWORK_ERROR = "Network error"


# =============================================================================
# Poll scheduling
# =============================================================================


@dataclass(frozen=True)
class PollIntervals:
    """Seconds between polls."""

    waiting: float = 5.0
    active: float = 1.5
    base_error: float = 6.0
    max_error: float = 24.0


DEFAULT_INTERVALS = PollIntervals()


def next_poll_delay(
    status: Optional[str],
    consecutive_errors: int = 0,
    intervals: PollIntervals = DEFAULT_INTERVALS,
) -> Optional[float]:
    """
    Delay before the next poll, or None when polling should stop.

    Args:
        status: Last known game status (None before the first success).
        consecutive_errors: Failed polls since the last success.
        intervals: Cadence to use.
    """
    if consecutive_errors > 0:
        return min(intervals.base_error * 2 ** (consecutive_errors - 1), intervals.max_error)
    if status == GameStatus.FINISHED:
        return None
    if status is None or status == GameStatus.WAITING:
        return intervals.waiting
    return intervals.active


class PollTimer:
    """
    Cancelable single-shot timer that runs a coroutine function.

    Scheduling again replaces the pending shot. After cancel() nothing
    fires, although a run already in progress is left to finish.
    """

    def __init__(self) -> None:
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self.delay: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def task(self) -> Optional[asyncio.Task]:
        """The most recent run, if the timer has fired."""
        return self._task

    def schedule(self, delay: float, callback: Callable[[], Awaitable[Any]]) -> None:
        self.cancel()
        self.delay = delay
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, callback)

    def _fire(self, callback: Callable[[], Awaitable[Any]]) -> None:
        self._handle = None
        self._task = asyncio.ensure_future(callback())
        self._task.add_done_callback(self._collect)

    @staticmethod
    def _collect(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Scheduled poll failed", exc_info=task.exception())

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.delay = None


# =============================================================================
# HTTP API
# =============================================================================


@dataclass
class ApiResponse:
    """
    Outcome of one API call.

    ``ok`` is False for HTTP errors, ``success: false`` bodies and
    transport failures alike; ``status_code`` is 0 when no response
    arrived.
    """

    ok: bool
    status_code: int = 0
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class GameApi:
    """
    Thin async wrapper over the game endpoints.

    The session cookie set by the server lives in the httpx client's
    cookie jar, so one GameApi is one browser session.
    """

    def __init__(
        self,
        base_url: str = "",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._background: set[asyncio.Task] = set()

    async def __aenter__(self) -> "GameApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> ApiResponse:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            return ApiResponse(ok=False, error=NETWORK_ERROR)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_success and data.get("success", True):
            return ApiResponse(ok=True, status_code=response.status_code, data=data)
        return ApiResponse(
            ok=False,
            status_code=response.status_code,
            data=data,
            error=data.get("error") or f"Request failed ({response.status_code})",
        )

    async def get_session(self) -> ApiResponse:
        return await self._request("GET", "/api/session")

    async def create_game(
        self,
        player_name: Optional[str] = None,
        settings: Optional[dict[str, Any]] = None,
    ) -> ApiResponse:
        body: dict[str, Any] = {}
        if player_name:
            body["player_name"] = player_name
        if settings:
            body["settings"] = settings
        return await self._request("POST", "/api/game", json=body)

    async def get_game(self, code: str) -> ApiResponse:
        return await self._request("GET", f"/api/game/{code}")

    async def join_game(self, code: str, player_name: Optional[str] = None) -> ApiResponse:
        body = {"player_name": player_name} if player_name else None
        return await self._request("POST", f"/api/game/{code}/join", json=body)

    async def start_game(self, code: str) -> ApiResponse:
        return await self._request("POST", f"/api/game/{code}/start")

    async def play_card(self, code: str, card_id: str, declared_suit: Optional[str] = None) -> ApiResponse:
        body = {"card_id": card_id}
        if declared_suit:
            body["declared_suit"] = declared_suit
        return await self._request("POST", f"/api/game/{code}/play", json=body)

    async def draw_card(self, code: str) -> ApiResponse:
        return await self._request("POST", f"/api/game/{code}/draw")

    async def leave_game(self, code: str) -> ApiResponse:
        return await self._request("POST", f"/api/game/{code}/leave")

    async def delete_game(self, code: str) -> ApiResponse:
        return await self._request("DELETE", f"/api/game/{code}")

    def leave_nowait(self, code: str) -> asyncio.Task:
        """
        Send a leave request without waiting for it.

        Delivery is best effort: the returned task may be dropped if the
        event loop shuts down first.
        """
        task = asyncio.get_running_loop().create_task(self.leave_game(code))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task


# =============================================================================
# Game client
# =============================================================================


StateListener = Callable[[ClientGameState], None]


class OnlineGameClient:
    """
    One player's view of one online game, kept fresh by polling.

    Attributes:
        game: Last adopted state (with any optimistic edits applied).
        is_player: Whether this session holds a seat.
        error: Message from the last failed poll, cleared on success.
        consecutive_errors: Failed polls since the last success.
        is_polling: Polling has been started and not stopped.
        is_visible: Polls only run while visible.
    """

    def __init__(
        self,
        api: GameApi,
        code: str,
        intervals: PollIntervals = DEFAULT_INTERVALS,
    ) -> None:
        self.api = api
        self.code = code.strip().upper()
        self.intervals = intervals

        self.game: Optional[ClientGameState] = None
        self.is_player = False
        self.error: Optional[str] = None
        self.consecutive_errors = 0
        self.is_polling = False
        self.is_visible = True

        self._last_updated_at: Optional[str] = None
        self._dirty = False
        self._request_seq = 0
        self._answered_seq = 0
        self._pending: set[str] = set()
        self._timer = PollTimer()
        self._listeners: list[StateListener] = []

    @property
    def timer(self) -> PollTimer:
        return self._timer

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.game)
            except Exception as e:
                logger.error(f"Game state listener failed: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Fetch once and keep polling."""
        if self.is_polling:
            return
        self.is_polling = True
        await self.refresh()

    def stop(self) -> None:
        """Stop polling. No scheduled poll fires after this returns."""
        self.is_polling = False
        self._timer.cancel()

    async def set_visible(self, visible: bool) -> None:
        """
        Suspend polling while hidden; fetch immediately when shown again.
        """
        was_visible = self.is_visible
        self.is_visible = visible
        if not visible:
            self._timer.cancel()
            return
        if not was_visible and self.is_polling and not self.is_finished:
            await self.refresh()

    async def refresh(self) -> bool:
        """
        Fetch the game, adopt it if it changed, and schedule the next poll.

        Fetches can overlap (a timer poll and the one after a play). An
        answer to an older request than one already answered is dropped.

        Returns:
            Whether the fetch succeeded.
        """
        self._request_seq += 1
        seq = self._request_seq
        response = await self.api.get_game(self.code)
        if response.ok:
            self.consecutive_errors = 0
            self.error = None
            updated_at = response.data.get("updated_at")
            if seq < self._answered_seq:
                logger.debug(f"Dropped out-of-order poll answer for {self.code}")
            elif self._dirty or updated_at != self._last_updated_at:
                game = ClientGameState.from_dict(response.data["game"])
                self._answered_seq = seq
                self._last_updated_at = updated_at
                self._dirty = False
                self.game = game
                self.is_player = bool(response.data.get("is_player"))
                self._notify()
            else:
                self._answered_seq = seq
        else:
            self.consecutive_errors += 1
            self.error = response.error
            logger.debug(f"Poll of {self.code} failed ({self.consecutive_errors}): {response.error}")

        self._schedule_next()
        return response.ok

    def _schedule_next(self) -> None:
        if not self.is_polling or not self.is_visible:
            return
        status = self.game.status if self.game else None
        delay = next_poll_delay(status, self.consecutive_errors, self.intervals)
        if delay is None:
            logger.info(f"Game {self.code} finished, polling stopped")
            self.stop()
            return
        self._timer.schedule(delay, self._poll)

    async def _poll(self) -> None:
        """Timer-driven refresh; a body that can't be read counts as a failed poll."""
        try:
            await self.refresh()
        except Exception as e:
            logger.error(f"Poll of {self.code} failed: {e}", exc_info=True)
            self.consecutive_errors += 1
            self.error = str(e)
            self._schedule_next()

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def join_game(self, player_name: Optional[str] = None) -> ApiResponse:
        response = await self.api.join_game(self.code, player_name)
        if response.ok:
            await self.refresh()
        return response

    async def start_game(self) -> ApiResponse:
        response = await self.api.start_game(self.code)
        if response.ok:
            await self.refresh()
        return response

    async def play_card(self, card_id: str, declared_suit: Optional[str] = None) -> ApiResponse:
        """
        Play a card optimistically.

        The card leaves the local hand before the request is sent; the
        server's state is re-fetched afterwards in every case.
        """
        if card_id in self._pending:
            return ApiResponse(ok=False, error="Card is already being played")

        self._pending.add(card_id)
        self._remove_from_hand(card_id)
        try:
            response = await self.api.play_card(self.code, card_id, declared_suit)
            await self.refresh()
            return response
        finally:
            self._pending.discard(card_id)

    def _remove_from_hand(self, card_id: str) -> None:
        if self.game is None or self.game.you is None:
            return
        you = self.game.you
        hand = tuple(c for c in you.hand if c.id != card_id)
        if len(hand) == len(you.hand):
            return
        self.game = replace(self.game, you=replace(you, hand=hand))
        self._dirty = True
        self._notify()

    async def draw_card(self) -> ApiResponse:
        response = await self.api.draw_card(self.code)
        if response.ok:
            await self.refresh()
        return response

    async def leave_game(self) -> ApiResponse:
        """Stop polling and leave, waiting for the server's answer."""
        self.stop()
        return await self.api.leave_game(self.code)

    def leave_nowait(self) -> asyncio.Task:
        """Stop polling and leave without waiting (e.g. on shutdown)."""
        self.stop()
        return self.api.leave_nowait(self.code)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def is_finished(self) -> bool:
        return self.game is not None and self.game.status == GameStatus.FINISHED

    @property
    def hand(self) -> tuple[Card, ...]:
        if self.game is None or self.game.you is None:
            return ()
        return self.game.you.hand

    @property
    def is_my_turn(self) -> bool:
        return (
            self.game is not None
            and self.game.you is not None
            and self.game.you.player.is_current_turn
        )

    def can_play_card(self, card: Card) -> bool:
        if not self.is_my_turn:
            return False
        return can_play(card, self.game.current_suit, self.game.top_card)

    @property
    def must_draw(self) -> bool:
        """True on my turn when nothing in hand can be played."""
        return self.is_my_turn and not any(self.can_play_card(c) for c in self.hand)

    def is_card_pending(self, card_id: str) -> bool:
        return card_id in self._pending
