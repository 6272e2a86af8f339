"""HTTP surface of the room server."""

import asyncio

import pytest

from lobby.tests.helpers import ROOM_CODE
from shared.dal.store import Table


def _setup_started_room(client):
    client.post("/rooms", json={"code": ROOM_CODE})
    client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P1", "display_name": "Alice"})
    client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P2", "display_name": "Bob"})
    client.post(f"/rooms/{ROOM_CODE}/pool", json={"character_id": "char-x", "added_by": "P1"})
    client.post(f"/rooms/{ROOM_CODE}/pool", json={"character_id": "char-y", "added_by": "P2"})
    client.post(f"/rooms/{ROOM_CODE}/start")


def _setup_guessing_room(client):
    _setup_started_room(client)
    client.post(f"/rooms/{ROOM_CODE}/picks", json={"user_id": "P1", "character_id": "char-x", "is_ready": True})
    client.post(f"/rooms/{ROOM_CODE}/picks", json={"user_id": "P2", "character_id": "char-y", "is_ready": True})


class TestHealthAndCatalog:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_list_characters_newest_first(self, client):
        response = client.get("/characters")
        assert response.status_code == 200
        assert [c["id"] for c in response.json()["characters"]] == ["char-z", "char-y", "char-x"]


class TestRoomEndpoints:
    def test_create_and_get_room(self, client):
        response = client.post("/rooms", json={"code": ROOM_CODE})
        assert response.status_code == 201
        assert response.json()["room"]["id"] == ROOM_CODE

        response = client.get(f"/rooms/{ROOM_CODE}")
        assert response.status_code == 200
        assert response.json()["room"]["players"] == []

    def test_create_duplicate_room_conflict(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        response = client.post("/rooms", json={"code": ROOM_CODE})
        assert response.status_code == 409
        assert response.json() == {"error": "room-already-exists"}

    @pytest.mark.parametrize("code", ["abc123", "ABC12", "ABC1234", "ABC-12"])
    def test_create_room_invalid_code(self, client, code):
        response = client.post("/rooms", json={"code": code})
        assert response.status_code == 422
        assert "error" in response.json()

    def test_create_room_extra_field_rejected(self, client):
        response = client.post("/rooms", json={"code": ROOM_CODE, "owner": "P1"})
        assert response.status_code == 422

    def test_create_room_malformed_json_rejected(self, client):
        response = client.post("/rooms", content='{"code": "ABC123"', headers={"Content-Type": "application/json"})
        assert response.status_code == 422

    def test_create_room_non_object_json_body(self, client):
        response = client.post("/rooms", content="null", headers={"Content-Type": "application/json"})
        assert response.status_code == 422

        response = client.post("/rooms", content="[1,2]", headers={"Content-Type": "application/json"})
        assert response.status_code == 422

    def test_oversized_body_rejected(self, client):
        response = client.post("/rooms", content="x" * 5000, headers={"Content-Type": "application/json"})
        assert response.status_code == 413

    def test_get_missing_room(self, client):
        response = client.get("/rooms/NOPE00")
        assert response.status_code == 404
        assert response.json() == {"error": "room-not-found"}

    def test_delete_room_idempotent(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        assert client.delete(f"/rooms/{ROOM_CODE}").status_code == 204
        assert client.delete(f"/rooms/{ROOM_CODE}").status_code == 204
        assert client.get(f"/rooms/{ROOM_CODE}").status_code == 404


class TestMembershipEndpoints:
    def test_can_join(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        response = client.get(f"/rooms/{ROOM_CODE}/can-join", params={"user_id": "P1"})
        assert response.json() == {"can_join": True, "reason": None}

    def test_can_join_requires_user_id(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        assert client.get(f"/rooms/{ROOM_CODE}/can-join").status_code == 422

    def test_can_join_full_room(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P1", "display_name": "Alice"})
        client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P2", "display_name": "Bob"})

        response = client.get(f"/rooms/{ROOM_CODE}/can-join", params={"user_id": "P3"})
        assert response.json() == {"can_join": False, "reason": "room-full"}

    def test_join_room(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        response = client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P1", "display_name": "Alice"})
        assert response.status_code == 200
        assert response.json()["room"]["players"] == [{"id": "P1", "name": "Alice", "is_ready": False}]

    def test_join_missing_room(self, client):
        response = client.post("/rooms/NOPE00/players", json={"user_id": "P1", "display_name": "Alice"})
        assert response.status_code == 404

    def test_join_full_room_conflict(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P1", "display_name": "Alice"})
        client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P2", "display_name": "Bob"})

        response = client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P3", "display_name": "Carol"})
        assert response.status_code == 409
        assert response.json() == {"error": "room-full"}

    def test_join_requires_display_name(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        response = client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P1"})
        assert response.status_code == 422

    def test_leave_room(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        client.post(f"/rooms/{ROOM_CODE}/players", json={"user_id": "P1", "display_name": "Alice"})

        assert client.delete(f"/rooms/{ROOM_CODE}/players/P1").status_code == 204
        assert client.get(f"/rooms/{ROOM_CODE}").status_code == 404

    def test_leave_missing_room_is_noop(self, client):
        assert client.delete("/rooms/NOPE00/players/P1").status_code == 204

    def test_leave_not_member(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        response = client.delete(f"/rooms/{ROOM_CODE}/players/P9")
        assert response.status_code == 404
        assert response.json() == {"error": "not-in-room"}


class TestPoolEndpoints:
    def test_add_list_remove(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})

        response = client.post(f"/rooms/{ROOM_CODE}/pool", json={"character_id": "char-x", "added_by": "P1"})
        assert response.status_code == 201

        pool = client.get(f"/rooms/{ROOM_CODE}/pool").json()["characters"]
        assert [c["character"]["id"] for c in pool] == ["char-x"]
        assert pool[0]["added_by"] == "P1"

        assert client.delete(f"/rooms/{ROOM_CODE}/pool/char-x").status_code == 204
        assert client.get(f"/rooms/{ROOM_CODE}/pool").json() == {"characters": []}

    def test_add_duplicate_conflict(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        client.post(f"/rooms/{ROOM_CODE}/pool", json={"character_id": "char-x", "added_by": "P1"})
        response = client.post(f"/rooms/{ROOM_CODE}/pool", json={"character_id": "char-x", "added_by": "P2"})
        assert response.status_code == 409
        assert response.json() == {"error": "already-in-pool"}

    def test_add_unknown_character(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        response = client.post(f"/rooms/{ROOM_CODE}/pool", json={"character_id": "nobody", "added_by": "P1"})
        assert response.status_code == 404
        assert response.json() == {"error": "character-not-found"}


class TestGameEndpoints:
    def test_start_without_players_conflict(self, client):
        client.post("/rooms", json={"code": ROOM_CODE})
        response = client.post(f"/rooms/{ROOM_CODE}/start")
        assert response.status_code == 409
        assert response.json() == {"error": "not-enough-players"}

    def test_start_game(self, client):
        _setup_started_room(client)
        response = client.post(f"/rooms/{ROOM_CODE}/start")
        assert response.status_code == 200
        assert response.json()["room"]["is_game_started"] is True

    def test_picks_reach_guessing(self, client):
        _setup_started_room(client)
        response = client.post(
            f"/rooms/{ROOM_CODE}/picks",
            json={"user_id": "P1", "character_id": "char-x", "is_ready": True},
        )
        assert response.status_code == 200
        assert response.json()["is_guessing_started"] is False

        response = client.post(
            f"/rooms/{ROOM_CODE}/picks",
            json={"user_id": "P2", "character_id": "char-y", "is_ready": True},
        )
        assert response.json()["is_guessing_started"] is True

    def test_pick_character_not_in_pool(self, client):
        _setup_started_room(client)
        response = client.post(f"/rooms/{ROOM_CODE}/picks", json={"user_id": "P1", "character_id": "char-z"})
        assert response.status_code == 409
        assert response.json() == {"error": "character-not-in-pool"}

    def test_correct_guess_wins(self, client, app_store):
        _setup_guessing_room(client)

        response = client.post(f"/rooms/{ROOM_CODE}/guesses", json={"user_id": "P2", "character_id": "char-x"})
        assert response.status_code == 200
        assert response.json() == {"outcome": "correct", "correct": True, "winner": "P2"}

        assert client.get(f"/rooms/{ROOM_CODE}/winner").json() == {"winner": "P2"}
        assert client.get(f"/rooms/{ROOM_CODE}/guesses/P2").json() == {"guess_count": 1}

        winner = asyncio.run(app_store.get(Table.LEADERBOARD, {"user_id": "P2"}))
        loser = asyncio.run(app_store.get(Table.LEADERBOARD, {"user_id": "P1"}))
        assert (winner["games_played"], winner["wins"]) == (1, 1)
        assert (loser["games_played"], loser["wins"]) == (1, 0)

    def test_wrong_guess(self, client):
        _setup_guessing_room(client)
        response = client.post(f"/rooms/{ROOM_CODE}/guesses", json={"user_id": "P1", "character_id": "char-x"})
        assert response.json() == {"outcome": "wrong", "correct": False, "winner": None}

    def test_guess_after_game_over_conflict(self, client):
        _setup_guessing_room(client)
        client.post(f"/rooms/{ROOM_CODE}/guesses", json={"user_id": "P2", "character_id": "char-x"})

        response = client.post(f"/rooms/{ROOM_CODE}/guesses", json={"user_id": "P1", "character_id": "char-y"})
        assert response.status_code == 409
        assert response.json() == {"error": "game-over"}

    def test_guess_before_guessing_conflict(self, client):
        _setup_started_room(client)
        response = client.post(f"/rooms/{ROOM_CODE}/guesses", json={"user_id": "P1", "character_id": "char-y"})
        assert response.status_code == 409
        assert response.json() == {"error": "guessing-not-started"}

    def test_winner_of_missing_room(self, client):
        assert client.get("/rooms/NOPE00/winner").json() == {"winner": None}


class TestCors:
    def test_preflight_allows_configured_origin(self, client):
        response = client.options(
            "/rooms",
            headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
