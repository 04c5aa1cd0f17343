"""
HTTP tests for the game, session and health endpoints.

Each TestClient keeps its own cookie jar, so each one is a separate
browser session. The app lifespan is not run; the tests install a
GameManager over a MemoryGameStore themselves.

Run with: pytest test_api.py -v
"""

import random

import pytest
from fastapi.testclient import TestClient

from config import config
from main import app
from services.game_manager import GameManager, set_game_manager
from stores.memory_store import MemoryGameStore

HOST_FIRST = {"starting_player_mode": "manual", "starting_player_index": 0}


@pytest.fixture
def manager():
    m = GameManager(MemoryGameStore(), rng=random.Random(5))
    set_game_manager(m)
    yield m
    set_game_manager(None)


@pytest.fixture
def host(manager):
    return TestClient(app)


@pytest.fixture
def guest(manager):
    return TestClient(app)


def create(client, name="Host", settings=HOST_FIRST):
    response = client.post("/api/game", json={"player_name": name, "settings": settings})
    assert response.status_code == 200
    return response.json()["code"]


def started_game(host, guest):
    code = create(host)
    assert guest.post(f"/api/game/{code}/join", json={"player_name": "Ben"}).status_code == 200
    assert host.post(f"/api/game/{code}/start").status_code == 200
    return code


def is_playable(card, suit):
    return card["type"] == "action" or suit is None or card["suit"] == suit


# =============================================================================
# Session Tests
# =============================================================================

class TestSession:

    def test_first_visit_creates_session(self, host):
        first = host.get("/api/session").json()
        second = host.get("/api/session").json()

        assert first["created"] is True
        assert first["session_id"]
        assert host.cookies.get(config.SESSION_COOKIE_NAME) == first["session_id"]
        assert second["created"] is False
        assert second["session_id"] == first["session_id"]

    def test_remember_name(self, host):
        response = host.post("/api/session", json={"player_name": "  Ann  "})
        assert response.json()["player_name"] == "Ann"
        assert host.get("/api/session").json()["player_name"] == "Ann"

    def test_blank_name_rejected(self, host):
        response = host.post("/api/session", json={"player_name": "   "})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_empty_name_fails_validation(self, host):
        assert host.post("/api/session", json={"player_name": ""}).status_code == 422

    def test_forget_session(self, host):
        old = host.get("/api/session").json()["session_id"]
        assert host.delete("/api/session").json() == {"success": True}

        fresh = host.get("/api/session").json()
        assert fresh["created"] is True
        assert fresh["session_id"] != old

    def test_oversized_cookie_replaced(self, host):
        cookie = f"{config.SESSION_COOKIE_NAME}={'x' * 100}"
        data = host.get("/api/session", headers={"Cookie": cookie}).json()

        assert data["created"] is True
        assert len(data["session_id"]) <= 64
        assert host.cookies.get(config.SESSION_COOKIE_NAME) == data["session_id"]

    def test_request_id_echoed(self, host):
        response = host.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"
        assert host.get("/health").headers["X-Request-ID"]


# =============================================================================
# Lobby Tests
# =============================================================================

class TestLobby:

    def test_create(self, host):
        data = host.post("/api/game", json={"player_name": "Ann"}).json()

        assert data["success"] is True
        assert len(data["code"]) == 4
        assert data["player_name"] == "Ann"
        assert data["events"][0]["type"] == "game_created"
        assert host.cookies.get(config.PLAYER_NAME_COOKIE_NAME) == "Ann"

    def test_create_without_body_name(self, host):
        data = host.post("/api/game", json={}).json()
        assert data["success"] is True
        assert data["player_name"]

    def test_create_rejects_bad_settings(self, host):
        response = host.post("/api/game", json={"settings": {"cards_per_player": 100}})
        assert response.status_code == 422

    def test_poll_waiting_game(self, host):
        code = create(host)
        data = host.get(f"/api/game/{code}").json()

        assert data["success"] is True
        assert data["is_player"] is True
        assert data["game"]["status"] == "waiting"
        assert data["game"]["you"]["hand"] == []
        assert data["updated_at"] == data["game"]["updated_at"]

    def test_poll_unknown_game(self, host, manager):
        response = host.get("/api/game/ZZZZ")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Game not found"}

    def test_spectator_poll(self, host, guest):
        code = create(host)
        data = guest.get(f"/api/game/{code}").json()
        assert data["is_player"] is False
        assert data["game"]["you"] is None

    def test_join(self, host, guest):
        code = create(host)
        data = guest.post(f"/api/game/{code.lower()}/join", json={"player_name": "Ben"}).json()

        assert data["success"] is True
        assert data["message"] == "Joined game"
        assert data["events"][0]["data"]["player_name"] == "Ben"
        names = [p["name"] for p in host.get(f"/api/game/{code}").json()["game"]["players"]]
        assert names == ["Host", "Ben"]

    def test_join_without_body(self, host, guest):
        code = create(host)
        assert guest.post(f"/api/game/{code}/join").json()["success"] is True

    def test_join_unknown(self, guest, manager):
        assert guest.post("/api/game/ZZZZ/join").status_code == 404

    def test_guest_cannot_start(self, host, guest):
        code = create(host)
        guest.post(f"/api/game/{code}/join")
        response = guest.post(f"/api/game/{code}/start")

        assert response.status_code == 403
        assert response.json()["error"] == "Only the host can start the game"

    def test_start_alone(self, host):
        code = create(host)
        response = host.post(f"/api/game/{code}/start")
        assert response.status_code == 400
        assert response.json()["error"] == "Need at least 2 players to start"


# =============================================================================
# Play Tests
# =============================================================================

class TestPlay:

    def test_start_deals_hands(self, host, guest):
        code = started_game(host, guest)
        game = guest.get(f"/api/game/{code}").json()["game"]

        assert game["status"] == "playing"
        assert len(game["you"]["hand"]) == 5
        assert [p["card_count"] for p in game["players"]] == [5, 5]
        assert game["players"][0]["is_current_turn"] is True
        assert game["top_card"] is not None

    def test_not_your_turn(self, host, guest):
        code = started_game(host, guest)
        card_id = guest.get(f"/api/game/{code}").json()["game"]["you"]["hand"][0]["id"]
        response = guest.post(f"/api/game/{code}/play", json={"card_id": card_id})

        assert response.status_code == 400
        assert response.json()["error"] == "Not your turn"

    def test_unknown_card(self, host, guest):
        code = started_game(host, guest)
        response = host.post(f"/api/game/{code}/play", json={"card_id": "phonics-99"})
        assert response.status_code == 404

    def test_take_a_turn(self, host, guest):
        code = started_game(host, guest)
        before = host.get(f"/api/game/{code}").json()
        game = before["game"]
        playable = [c for c in game["you"]["hand"] if is_playable(c, game["current_suit"])]

        if playable:
            response = host.post(
                f"/api/game/{code}/play",
                json={"card_id": playable[0]["id"], "declared_suit": "o"},
            )
        else:
            response = host.post(f"/api/game/{code}/draw")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["game_ended"] is False
        after = host.get(f"/api/game/{code}").json()
        assert after["updated_at"] != before["updated_at"]

    def test_play_in_lobby(self, host):
        code = create(host)
        response = host.post(f"/api/game/{code}/play", json={"card_id": "phonics-1"})
        assert response.status_code == 400
        assert response.json()["error"] == "Game is not in progress"


# =============================================================================
# Leave and Delete Tests
# =============================================================================

class TestLeaveAndDelete:

    def test_guest_leaves_lobby(self, host, guest):
        code = create(host)
        guest.post(f"/api/game/{code}/join")
        data = guest.post(f"/api/game/{code}/leave").json()

        assert data == {
            "success": True,
            "message": "Left game",
            "game_deleted": False,
            "game_ended": False,
        }

    def test_host_leaving_lobby_deletes(self, host):
        code = create(host)
        assert host.post(f"/api/game/{code}/leave").json()["game_deleted"] is True
        assert host.get(f"/api/game/{code}").status_code == 404

    def test_leaving_started_game_ends_it(self, host, guest):
        code = started_game(host, guest)
        data = guest.post(f"/api/game/{code}/leave").json()

        assert data["game_ended"] is True
        assert data["message"] == "Not enough players to continue"
        game = host.get(f"/api/game/{code}").json()["game"]
        assert game["status"] == "finished"
        assert game["end_reason"] == "not_enough_players"

    def test_leave_when_not_seated(self, host, guest):
        code = create(host)
        response = guest.post(f"/api/game/{code}/leave")
        assert response.status_code == 400

    def test_delete(self, host, guest):
        code = started_game(host, guest)
        assert guest.delete(f"/api/game/{code}").status_code == 403

        data = host.delete(f"/api/game/{code}").json()
        assert data["game_deleted"] is True
        assert host.get(f"/api/game/{code}").status_code == 404


# =============================================================================
# Health Tests
# =============================================================================

class TestHealth:

    def test_health(self, host):
        assert host.get("/health").json()["status"] == "ok"

    def test_ready(self, host):
        response = host.get("/ready")
        assert response.status_code == 200
        assert response.json()["checks"]["store"]["backend"] == "MemoryGameStore"

    def test_not_ready(self, host, manager, monkeypatch):
        async def down():
            raise ConnectionError("store offline")

        monkeypatch.setattr(manager.store, "ping", down)
        response = host.get("/ready")
        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_metrics(self, host):
        create(host)
        data = host.get("/metrics").json()
        assert data["games"]["waiting"] == 1
        assert data["total_games"] == 1
