"""
Tests for GameManager, the online game lifecycle.

Runs against MemoryGameStore so every read goes back through the store
exactly as it would with Postgres or Redis.

Run with: pytest test_game_manager.py -v
"""

import asyncio
import random
from dataclasses import replace
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from cards import all_cards, get_card_by_id
from constants import TOTAL_CARD_COUNT
from engine import ErrorKind
from game import GameSettings, GameState, GameStatus, Player, card_count_total, utcnow
from models.events import EventType, event_types
from rules import playable_cards
from services.game_manager import GameManager, get_game_manager, set_game_manager
from stores.memory_store import MemoryGameStore

MANUAL_FIRST = GameSettings(starting_player_mode="manual", starting_player_index=0)


@pytest.fixture
def store():
    return MemoryGameStore()


@pytest.fixture
def manager(store):
    return GameManager(store, rng=random.Random(11))


async def create_started_game(manager, players=2, settings=MANUAL_FIRST):
    """Host s0 plus joiners s1..; returns the started state."""
    created = await manager.create_game("s0", "Host", settings)
    code = created.state.code
    for i in range(1, players):
        await manager.join_game(code, f"s{i}", f"Player {i}")
    started = await manager.start_game(code, "s0")
    assert started.success
    return started.state


async def store_playing_game(store, hands, top="phonics-2", suit="a", current=0, code="PLAY"):
    """Put a hand-built game in progress straight into the store."""
    used = {c for hand in hands for c in hand} | {top}
    players = tuple(
        Player(
            id=f"p{i}",
            session_id=f"s{i}",
            name=f"Player {i}",
            position=i,
            is_host=i == 0,
            hand=tuple(get_card_by_id(c) for c in hand),
        )
        for i, hand in enumerate(hands)
    )
    state = GameState(
        id=f"game-{code}",
        code=code,
        host_session_id="s0",
        status=GameStatus.PLAYING,
        players=players,
        current_player_index=current,
        current_suit=suit,
        draw_pile=tuple(c for c in all_cards() if c.id not in used),
        play_pile=(get_card_by_id(top),),
        settings=MANUAL_FIRST,
    )
    await store.create(state)
    return state


# =============================================================================
# Create Tests
# =============================================================================

class TestCreateGame:

    @pytest.mark.asyncio
    async def test_creates_waiting_game(self, manager, store):
        result = await manager.create_game("s0", "Host")

        assert result.success
        state = result.state
        assert state.status == GameStatus.WAITING
        assert len(state.code) == 4
        assert state.host_session_id == "s0"
        assert len(state.players) == 1
        assert state.players[0].is_host
        assert state.players[0].position == 0
        assert event_types(result.events) == [EventType.GAME_CREATED]
        assert await store.fetch_by_code(state.code) == state

    @pytest.mark.asyncio
    async def test_uses_given_settings(self, manager):
        settings = GameSettings(cards_per_player=3, enable_tts=False)
        result = await manager.create_game("s0", "Host", settings)
        assert result.state.settings == settings

    @pytest.mark.asyncio
    async def test_no_free_code(self, manager, store):
        store.code_is_available = AsyncMock(return_value=False)
        result = await manager.create_game("s0", "Host")

        assert not result.success
        assert result.error_kind == ErrorKind.UNAVAILABLE
        assert result.error == "Could not generate a unique game code"

    @pytest.mark.asyncio
    async def test_codes_differ(self, manager):
        codes = {(await manager.create_game(f"s{i}", "Host")).state.code for i in range(20)}
        assert len(codes) == 20


# =============================================================================
# Join Tests
# =============================================================================

class TestJoinGame:

    @pytest.mark.asyncio
    async def test_join(self, manager):
        code = (await manager.create_game("s0", "Host")).state.code
        result = await manager.join_game(code, "s1", "Ben")

        assert result.success
        assert result.message == "Joined game"
        assert [p.name for p in result.state.players] == ["Host", "Ben"]
        assert result.state.players[1].position == 1
        assert not result.state.players[1].is_host
        assert event_types(result.events) == [EventType.PLAYER_JOINED]

    @pytest.mark.asyncio
    async def test_code_case_insensitive(self, manager):
        code = (await manager.create_game("s0", "Host")).state.code
        assert (await manager.join_game(f" {code.lower()} ", "s1", "Ben")).success

    @pytest.mark.asyncio
    async def test_join_twice(self, manager):
        code = (await manager.create_game("s0", "Host")).state.code
        await manager.join_game(code, "s1", "Ben")
        result = await manager.join_game(code, "s1", "Ben again")

        assert result.success
        assert result.message == "Already in game"
        assert len(result.state.players) == 2

    @pytest.mark.asyncio
    async def test_generated_name(self, manager):
        code = (await manager.create_game("s0", "Host")).state.code
        result = await manager.join_game(code, "s1")
        assert result.state.players[1].name

    @pytest.mark.asyncio
    async def test_unknown_game(self, manager):
        result = await manager.join_game("ZZZZ", "s1", "Ben")
        assert not result.success
        assert result.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_full_game(self, store):
        manager = GameManager(store, rng=random.Random(1), max_players=2)
        code = (await manager.create_game("s0", "Host")).state.code
        await manager.join_game(code, "s1", "Ben")
        result = await manager.join_game(code, "s2", "Cal")

        assert not result.success
        assert result.error == "Game is full"

    @pytest.mark.asyncio
    async def test_already_started(self, manager):
        state = await create_started_game(manager)
        result = await manager.join_game(state.code, "s9", "Late")
        assert not result.success
        assert result.error == "Game has already started"

    @pytest.mark.asyncio
    async def test_rejoin_started_game_is_refused(self, manager):
        state = await create_started_game(manager)
        result = await manager.join_game(state.code, "s1", "Player 1")
        assert result.error == "Game has already started"

    @pytest.mark.asyncio
    async def test_concurrent_joins_respect_capacity(self, store):
        manager = GameManager(store, rng=random.Random(1), max_players=2)
        code = (await manager.create_game("s0", "Host")).state.code
        results = await asyncio.gather(
            manager.join_game(code, "s1", "Ben"),
            manager.join_game(code, "s2", "Cal"),
        )

        assert sorted(r.success for r in results) == [False, True]
        assert len((await store.fetch_by_code(code)).players) == 2

    @pytest.mark.asyncio
    async def test_position_after_lobby_leave(self, manager):
        code = (await manager.create_game("s0", "Host")).state.code
        await manager.join_game(code, "s1", "Ben")
        await manager.join_game(code, "s2", "Cal")
        await manager.leave_game(code, "s1")
        result = await manager.join_game(code, "s3", "Dee")
        assert [p.position for p in result.state.players] == [0, 2, 3]


# =============================================================================
# Start Tests
# =============================================================================

class TestStartGame:

    @pytest.mark.asyncio
    async def test_start(self, manager, store):
        created = await manager.create_game("s0", "Host", MANUAL_FIRST)
        code = created.state.code
        await manager.join_game(code, "s1", "Ben")
        result = await manager.start_game(code, "s0")

        assert result.success
        state = await store.fetch_by_code(code)
        assert state.status == GameStatus.PLAYING
        assert all(len(p.hand) == 5 for p in state.players)
        assert state.current_player_index == 0
        assert card_count_total(state) == TOTAL_CARD_COUNT
        assert event_types(result.events) == [EventType.GAME_STARTED]
        assert result.events[0].data["starter_card"]["id"] == state.play_pile[-1].id

    @pytest.mark.asyncio
    async def test_only_host(self, manager):
        code = (await manager.create_game("s0", "Host")).state.code
        await manager.join_game(code, "s1", "Ben")
        result = await manager.start_game(code, "s1")

        assert not result.success
        assert result.error_kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_needs_two_players(self, manager):
        code = (await manager.create_game("s0", "Host")).state.code
        result = await manager.start_game(code, "s0")

        assert not result.success
        assert result.error == "Need at least 2 players to start"

    @pytest.mark.asyncio
    async def test_start_twice(self, manager):
        state = await create_started_game(manager)
        result = await manager.start_game(state.code, "s0")
        assert result.error == "Game has already started"


# =============================================================================
# Turn Tests
# =============================================================================

class TestTurns:

    @pytest.mark.asyncio
    async def test_play_persists(self, manager, store):
        await store_playing_game(store, [["phonics-1", "phonics-10"], ["phonics-3"]])
        result = await manager.play_card("PLAY", "s0", "phonics-1")

        assert result.success
        assert not result.game_ended
        stored = await store.fetch_by_code("PLAY")
        assert stored == result.state
        assert stored.current_player_index == 1
        assert stored.play_pile[-1].id == "phonics-1"

    @pytest.mark.asyncio
    async def test_play_from_real_deal(self, manager, store):
        state = await create_started_game(manager)
        player = state.players[state.current_player_index]
        options = playable_cards(player.hand, state.current_suit, state.play_pile[-1])
        if options:
            suit = "a" if options[0].is_action else None
            result = await manager.play_card(state.code, player.session_id, options[0].id, suit)
        else:
            result = await manager.draw_card(state.code, player.session_id)

        assert result.success
        stored = await store.fetch_by_code(state.code)
        assert card_count_total(stored) == TOTAL_CARD_COUNT
        assert stored.updated_at > state.updated_at

    @pytest.mark.asyncio
    async def test_wrong_player(self, manager, store):
        await store_playing_game(store, [["phonics-1", "phonics-10"], ["phonics-3"]])
        result = await manager.play_card("PLAY", "s1", "phonics-3")

        assert not result.success
        assert result.error == "Not your turn"
        assert (await store.fetch_by_code("PLAY")).current_player_index == 0

    @pytest.mark.asyncio
    async def test_play_in_lobby(self, manager):
        code = (await manager.create_game("s0", "Host")).state.code
        result = await manager.play_card(code, "s0", "phonics-1")
        assert result.error == "Game is not in progress"

    @pytest.mark.asyncio
    async def test_unknown_game(self, manager):
        result = await manager.draw_card("NONE", "s0")
        assert result.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_card(self, manager, store):
        await store_playing_game(store, [["phonics-1", "phonics-10"], ["phonics-3"]])
        result = await manager.play_card("PLAY", "s0", "nope")
        assert result.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_winning_play_ends_game(self, manager, store):
        await store_playing_game(store, [["phonics-1"], ["phonics-3"]])
        result = await manager.play_card("PLAY", "s0", "phonics-1")

        assert result.game_ended
        assert event_types(result.events) == [
            EventType.CARD_PLAYED,
            EventType.SUIT_CHANGED,
            EventType.PLAYER_WON,
            EventType.GAME_ENDED,
        ]
        assert result.events[-1].data["winner_id"] == "p0"
        assert (await store.fetch_by_code("PLAY")).winner_session_id == "s0"

    @pytest.mark.asyncio
    async def test_draw(self, manager, store):
        await store_playing_game(store, [["phonics-10"], ["phonics-3"]])
        result = await manager.draw_card("PLAY", "s0")

        assert result.success
        stored = await store.fetch_by_code("PLAY")
        assert len(stored.players[0].hand) == 2
        assert stored.current_player_index == 1

    @pytest.mark.asyncio
    async def test_draw_with_playable_card(self, manager, store):
        await store_playing_game(store, [["phonics-1"], ["phonics-3"]])
        result = await manager.draw_card("PLAY", "s0")
        assert result.error == "You have a playable card"


# =============================================================================
# Leave and Delete Tests
# =============================================================================

class TestLeaveGame:

    @pytest.mark.asyncio
    async def test_host_leaving_lobby_deletes_game(self, manager, store):
        code = (await manager.create_game("s0", "Host")).state.code
        await manager.join_game(code, "s1", "Ben")
        result = await manager.leave_game(code, "s0")

        assert result.success
        assert result.game_deleted
        assert await store.fetch_by_code(code) is None

    @pytest.mark.asyncio
    async def test_guest_leaving_lobby_frees_seat(self, manager, store):
        code = (await manager.create_game("s0", "Host")).state.code
        await manager.join_game(code, "s1", "Ben")
        result = await manager.leave_game(code, "s1")

        assert result.success
        assert result.message == "Left game"
        assert [p.session_id for p in (await store.fetch_by_code(code)).players] == ["s0"]

    @pytest.mark.asyncio
    async def test_leaving_two_player_game_ends_it(self, manager, store):
        state = await create_started_game(manager, players=2)
        result = await manager.leave_game(state.code, "s1")

        assert result.game_ended
        assert result.message == "Not enough players to continue"
        stored = await store.fetch_by_code(state.code)
        assert stored.status == GameStatus.FINISHED
        assert stored.winner_session_id == "s0"
        assert stored.end_reason == "not_enough_players"

    @pytest.mark.asyncio
    async def test_current_player_leaving_passes_turn(self, manager, store):
        state = await create_started_game(manager, players=3)
        assert state.current_player_index == 0
        result = await manager.leave_game(state.code, "s0")

        assert result.success
        assert not result.game_ended
        assert result.message == "Disconnected from game"
        stored = await store.fetch_by_code(state.code)
        assert stored.status == GameStatus.PLAYING
        assert stored.current_player_index == 1
        assert not stored.players[0].is_connected
        assert card_count_total(stored) == TOTAL_CARD_COUNT

    @pytest.mark.asyncio
    async def test_leaving_finished_game(self, manager, store):
        await store_playing_game(store, [["phonics-1"], ["phonics-3"]])
        await manager.play_card("PLAY", "s0", "phonics-1")
        result = await manager.leave_game("PLAY", "s1")

        assert result.success
        stored = await store.fetch_by_code("PLAY")
        assert stored.status == GameStatus.FINISHED
        assert not stored.players[1].is_connected

    @pytest.mark.asyncio
    async def test_not_in_game(self, manager):
        code = (await manager.create_game("s0", "Host")).state.code
        result = await manager.leave_game(code, "s9")
        assert result.error == "You are not in this game"

    @pytest.mark.asyncio
    async def test_unknown_game(self, manager):
        assert (await manager.leave_game("NONE", "s0")).error_kind == ErrorKind.NOT_FOUND


class TestDeleteGame:

    @pytest.mark.asyncio
    async def test_host_deletes(self, manager, store):
        state = await create_started_game(manager)
        result = await manager.delete_game(state.code, "s0")

        assert result.success
        assert result.game_deleted
        assert await store.fetch_by_code(state.code) is None

    @pytest.mark.asyncio
    async def test_guest_cannot_delete(self, manager):
        state = await create_started_game(manager)
        result = await manager.delete_game(state.code, "s1")
        assert result.error_kind == ErrorKind.FORBIDDEN


# =============================================================================
# Polling and Cleanup Tests
# =============================================================================

class TestClientState:

    @pytest.mark.asyncio
    async def test_player_sees_own_hand_only(self, manager):
        state = await create_started_game(manager)
        result = await manager.get_client_state(state.code, "s1")

        view = result.view
        assert view.you is not None
        assert view.you.hand == state.players[1].hand
        assert [p.card_count for p in view.players] == [5, 5]
        assert "hand" not in view.to_dict()["players"][0]

    @pytest.mark.asyncio
    async def test_spectator(self, manager):
        state = await create_started_game(manager)
        result = await manager.get_client_state(state.code, "s9")
        assert result.success
        assert result.view.you is None

    @pytest.mark.asyncio
    async def test_poll_does_not_touch_updated_at(self, manager, store):
        state = await create_started_game(manager)
        before = await store.fetch_by_code(state.code)
        await manager.get_client_state(state.code, "s1")
        after = await store.fetch_by_code(state.code)

        assert after.updated_at == before.updated_at
        assert after.players[1].last_seen >= before.players[1].last_seen

    @pytest.mark.asyncio
    async def test_unknown_game(self, manager):
        result = await manager.get_client_state("NONE", "s0")
        assert result.error_kind == ErrorKind.NOT_FOUND


class TestCleanup:

    @pytest.mark.asyncio
    async def test_deletes_stale_games(self, manager, store):
        now = utcnow()
        old_lobby = (await manager.create_game("s0", "Old")).state
        fresh_lobby = (await manager.create_game("s1", "New")).state
        await store_playing_game(store, [["phonics-1"], ["phonics-3"]])
        await manager.play_card("PLAY", "s0", "phonics-1")

        store._games[old_lobby.id] = replace(old_lobby, created_at=now - timedelta(hours=25))
        finished = await store.fetch_by_code("PLAY")
        await store.update(finished.id, updated_at=now - timedelta(hours=2))

        deleted = await manager.cleanup(now)

        assert deleted == 2
        assert await store.fetch_by_code(old_lobby.code) is None
        assert await store.fetch_by_code("PLAY") is None
        assert await store.fetch_by_code(fresh_lobby.code) is not None

    @pytest.mark.asyncio
    async def test_keeps_lock_a_waiter_is_about_to_take(self, manager):
        held = []
        a_inside, a_release = asyncio.Event(), asyncio.Event()

        async def first():
            lock = manager._lock_for("PLAY")
            async with lock:
                held.append(lock)
                a_inside.set()
                await a_release.wait()

        async def second():
            lock = manager._lock_for("PLAY")
            async with lock:
                held.append(lock)

        a = asyncio.create_task(first())
        await a_inside.wait()
        b = asyncio.create_task(second())
        await asyncio.sleep(0)

        # A lets go; B has been handed the lock but hasn't resumed yet
        a_release.set()
        await asyncio.sleep(0)
        await manager.cleanup()
        late = manager._lock_for("PLAY")

        await asyncio.gather(a, b)
        assert held[0] is held[1] is late


class TestManagerSingleton:

    def test_unset_raises(self):
        set_game_manager(None)
        with pytest.raises(RuntimeError):
            get_game_manager()

    def test_set_and_get(self, manager):
        set_game_manager(manager)
        try:
            assert get_game_manager() is manager
        finally:
            set_game_manager(None)
