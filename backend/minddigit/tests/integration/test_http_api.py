"""HTTP routes: request parsing, camelCase payloads and error mapping."""

import pytest
from starlette.testclient import TestClient

from minddigit.server.app import create_app
from minddigit.server.settings import ServerSettings

FIXED_SEED = "ab" * 16


@pytest.fixture
def client():
    app = create_app(settings=ServerSettings(turn_seed=FIXED_SEED, cors_origins=["http://localhost:5173"]))
    with TestClient(app) as client:
        yield client


def _join(client: TestClient, name: str) -> dict:
    response = client.post("/room/join", json={"playerName": name})
    assert response.status_code == 200
    return response.json()


def _seat_pair(client: TestClient) -> tuple[str, str, str]:
    host = _join(client, "Alice")
    guest = _join(client, "Bob")
    return host["roomId"], host["playerId"], guest["playerId"]


def _start_game(client: TestClient) -> tuple[str, str, str]:
    """Return (room_id, first_player_id, second_player_id) of a game in PLAYING."""
    room_id, host_id, guest_id = _seat_pair(client)
    for player_id in (host_id, guest_id):
        response = client.post("/game/select-digit", json={"roomId": room_id, "playerId": player_id, "digits": 4})
        assert response.status_code == 200
    client.post("/game/set-secret", json={"roomId": room_id, "playerId": host_id, "secret": "1234"})
    response = client.post("/game/set-secret", json={"roomId": room_id, "playerId": guest_id, "secret": "5678"})
    first = response.json()["currentTurnPlayerId"]
    second = guest_id if first == host_id else host_id
    return room_id, first, second


class TestHealth:
    def test_reports_store_backend(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "store": "memory"}


class TestJoinRoute:
    def test_join_returns_camel_case_ids(self, client):
        body = _join(client, "Alice")

        assert set(body) == {"roomId", "playerId", "position", "phase"}
        assert body["position"] == 1
        assert body["phase"] == "WAITING"

    def test_snake_case_body_accepted(self, client):
        response = client.post("/room/join", json={"player_name": "Alice"})
        assert response.status_code == 200

    @pytest.mark.parametrize(
        "content",
        [b"not json", b"[]", b'{"playerName": 5}', b'{"playerName": "A", "admin": true}', b"{}"],
    )
    def test_malformed_body_rejected(self, client, content):
        response = client.post("/room/join", content=content, headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json() == {"error": "invalid_input", "message": "Invalid request body"}

    def test_oversized_body_rejected(self, client):
        response = client.post("/room/join", json={"playerName": "x" * 5000})

        assert response.status_code == 413

    def test_blank_name_rejected(self, client):
        response = client.post("/room/join", json={"playerName": "   "})

        assert response.status_code == 400
        assert response.json()["message"] == "Player name is required"


class TestStatusRoute:
    def test_status_for_player(self, client):
        room_id, host_id, _ = _seat_pair(client)

        response = client.get("/room/status", params={"roomId": room_id, "playerId": host_id})

        assert response.status_code == 200
        body = response.json()
        assert body["roomId"] == room_id
        assert body["phase"] == "DIGIT_SELECTION"
        assert [player["isYou"] for player in body["players"]] == [True, False]

    def test_missing_room_id(self, client):
        response = client.get("/room/status")

        assert response.status_code == 400
        assert response.json()["message"] == "Missing roomId parameter"

    def test_invalid_room_id(self, client):
        response = client.get("/room/status", params={"roomId": "../etc"})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid roomId parameter"

    def test_unknown_room_is_recovered(self, client):
        response = client.get("/room/status", params={"roomId": "GONE0001", "playerId": "abcdef99"})

        body = response.json()
        assert response.status_code == 200
        assert body["recovered"] is True
        assert body["players"][0]["name"] == "Player-abcdef"


class TestErrorMapping:
    def test_digit_count_out_of_range(self, client):
        room_id, host_id, _ = _seat_pair(client)

        response = client.post("/game/select-digit", json={"roomId": room_id, "playerId": host_id, "digits": 9})

        assert response.status_code == 400
        assert response.json() == {
            "error": "invalid_input",
            "message": "Digit count must be between 3 and 6",
            "minDigits": 3,
            "maxDigits": 6,
        }

    def test_wrong_phase_is_conflict(self, client):
        room_id, host_id, _ = _seat_pair(client)

        response = client.post("/game/set-secret", json={"roomId": room_id, "playerId": host_id, "secret": "1234"})

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_state"
        assert response.json()["phase"] == "DIGIT_SELECTION"

    def test_unknown_player_is_not_found(self, client):
        room_id, _, _ = _seat_pair(client)

        response = client.post("/game/select-digit", json={"roomId": room_id, "playerId": "nobody", "digits": 4})

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_not_your_turn(self, client):
        room_id, first, second = _start_game(client)
        client.post("/game/guess", json={"roomId": room_id, "playerId": first, "guess": "9012"})

        response = client.post("/game/guess", json={"roomId": room_id, "playerId": first, "guess": "9013"})

        assert response.status_code == 409
        assert response.json()["error"] == "not_your_turn"
        assert response.json()["currentTurnPlayerId"] == second

    def test_invalid_guess_reports_required_digits(self, client):
        room_id, first, _ = _start_game(client)

        response = client.post("/game/guess", json={"roomId": room_id, "playerId": first, "guess": "12"})

        assert response.status_code == 400
        assert response.json()["requiredDigits"] == 4

    def test_invalid_room_id_in_body(self, client):
        response = client.post("/game/leave", json={"roomId": "bad id!", "playerId": "p1"})

        assert response.status_code == 400


class TestGameRoutes:
    def test_guess_then_history(self, client):
        room_id, first, second = _start_game(client)

        miss = client.post("/game/guess", json={"roomId": room_id, "playerId": first, "guess": "9012"})
        assert miss.status_code == 200
        assert miss.json()["nextTurnPlayerId"] == second

        status = client.get("/room/status", params={"roomId": room_id, "playerId": second}).json()
        assert status["isYourTurn"] is True

        history = client.get("/game/history", params={"roomId": room_id, "playerId": first}).json()
        assert history["yourGuesses"] == 1
        assert history["entries"][0]["isYou"] is True

    def test_winner_and_reveal(self, client):
        room_id, first, second = _start_game(client)
        secrets = {}
        for player_id in (first, second):
            status = client.get("/room/status", params={"roomId": room_id, "playerId": player_id}).json()
            secrets[player_id] = next(p["secret"] for p in status["players"] if p["isYou"])

        win = client.post("/game/guess", json={"roomId": room_id, "playerId": first, "guess": secrets[second]})
        assert win.json()["isWin"] is True
        assert win.json()["winnerId"] == first
        assert win.json()["phase"] == "FINISHED"

        reveal = client.post("/game/opponent-secret", json={"roomId": room_id, "playerId": second})
        assert reveal.status_code == 200
        assert reveal.json()["opponentSecret"] == secrets[first]

        denied = client.post("/game/opponent-secret", json={"roomId": room_id, "playerId": first})
        assert denied.status_code == 409

    def test_leave_finishes_game(self, client):
        room_id, first, second = _start_game(client)

        response = client.post("/game/leave", json={"roomId": room_id, "playerId": first})

        assert response.status_code == 200
        assert response.json()["phase"] == "FINISHED"
        status = client.get("/room/status", params={"roomId": room_id, "playerId": second}).json()
        assert status["winnerId"] == second
        assert status["finishReason"] == "opponent_left"

    def test_suggest_secret(self, client):
        room_id, _, _ = _seat_pair(client)

        response = client.get("/game/suggest-secret", params={"roomId": room_id})

        body = response.json()
        assert response.status_code == 200
        assert body["digitCount"] == 4
        assert len(set(body["secret"])) == 4


class TestCors:
    def test_allowed_origin_header(self, client):
        response = client.get("/health", headers={"Origin": "http://localhost:5173"})

        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
