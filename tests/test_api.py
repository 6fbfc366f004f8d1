from datetime import timedelta

from redblue.game.game_manager import get_game_manager
from tests.conftest import bearer


def create_game(client, name="Alice", visibility="private"):
    res = client.post(
        "/api/v1/game/create", json={"player1_name": name, "visibility": visibility}
    )
    assert res.status_code == 200
    return res.json()


def start_game(client):
    host = create_game(client)
    res = client.post("/api/v1/game/join", json={"player_name": "Bob", "code": host["code"]})
    assert res.status_code == 200
    return host, res.json()


def choose(client, game_id, round_number, player_name, choice, token):
    return client.post(
        f"/api/v1/game/{game_id}/round/{round_number}/choice",
        json={
            "game_id": game_id,
            "round_number": round_number,
            "player_name": player_name,
            "choice": choice,
            "token": token,
        },
    )


def admin_token(client):
    res = client.post("/api/v1/admin/login", json={"password": "letmein"})
    assert res.status_code == 200
    return res.json()["admin_token"]


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    data = res.json()
    assert data["status"] == "healthy"
    assert data["redis"] == "disabled"
    assert data["database"] == "disabled"


def test_create_and_join(client):
    host = create_game(client)
    assert host["role"] == "player1"
    assert len(host["code"]) == 6

    res = client.post(
        "/api/v1/game/join", json={"player_name": "Bob", "code": host["code"].lower()}
    )
    assert res.status_code == 200
    guest = res.json()
    assert guest["role"] == "player2"
    assert guest["game_id"] == host["game_id"]

    res = client.get(f"/api/v1/game/{host['game_id']}", headers=bearer(host["token"]))
    assert res.status_code == 200
    game = res.json()
    assert game["game_state"] == "active"
    assert game["current_round"] == 1
    assert game["player2_name"] == "Bob"
    assert game["round_deadline"] is not None
    assert host["token"] not in res.text
    assert guest["token"] not in res.text


def test_join_errors(client):
    host = create_game(client)

    res = client.post("/api/v1/game/join", json={"player_name": "Bob", "code": "ZZZZZZ"})
    assert res.status_code == 404

    res = client.post("/api/v1/game/join", json={"player_name": "Bo", "code": host["code"]})
    assert res.status_code == 400

    res = client.post("/api/v1/game/join", json={"player_name": "alice", "code": host["code"]})
    assert res.status_code == 400

    client.post("/api/v1/game/join", json={"player_name": "Bob", "code": host["code"]})
    res = client.post("/api/v1/game/join", json={"player_name": "Carol", "code": host["code"]})
    assert res.status_code == 409


def test_join_expired_lobby_is_gone(client):
    host = create_game(client)
    session = get_game_manager().get_game_session(host["game_id"])
    session.created_at -= timedelta(minutes=11)

    res = client.post("/api/v1/game/join", json={"player_name": "Bob", "code": host["code"]})
    assert res.status_code == 410


def test_snapshot_requires_a_valid_token(client):
    host = create_game(client)

    assert client.get(f"/api/v1/game/{host['game_id']}").status_code == 401
    res = client.get(f"/api/v1/game/{host['game_id']}", headers=bearer("nope"))
    assert res.status_code == 401
    res = client.get("/api/v1/game/missing", headers=bearer(host["token"]))
    assert res.status_code == 404


def test_choices_stay_hidden_until_the_round_resolves(client):
    host, guest = start_game(client)
    game_id = host["game_id"]

    res = choose(client, game_id, 1, "Alice", "RED", host["token"])
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["player1_choice"] == "RED"
    assert data["player2_chose"] is False

    guest_view = client.get(f"/api/v1/game/{game_id}", headers=bearer(guest["token"])).json()
    assert guest_view["rounds"][0]["player1_choice"] is None
    assert guest_view["rounds"][0]["player1_chose"] is True

    res = choose(client, game_id, 1, "Bob", "BLUE", guest["token"])
    assert res.status_code == 200

    game = client.get(f"/api/v1/game/{game_id}", headers=bearer(host["token"])).json()
    assert game["current_round"] == 2
    assert (game["player1_score"], game["player2_score"]) == (-6, 6)
    assert game["rounds"][0]["player2_choice"] == "BLUE"


def test_choice_errors(client):
    host, guest = start_game(client)
    game_id = host["game_id"]

    choose(client, game_id, 1, "Alice", "RED", host["token"])
    assert choose(client, game_id, 1, "Alice", "BLUE", host["token"]).status_code == 409
    assert choose(client, game_id, 3, "Bob", "RED", guest["token"]).status_code == 409
    assert choose(client, game_id, 1, "Bob", "GREEN", guest["token"]).status_code == 422
    assert choose(client, game_id, 1, "Alice", "RED", guest["token"]).status_code == 401
    assert choose(client, game_id, 1, "Bob", "RED", "nope").status_code == 401

    res = client.post(
        f"/api/v1/game/{game_id}/round/2/choice",
        json={
            "game_id": game_id,
            "round_number": 1,
            "player_name": "Bob",
            "choice": "RED",
            "token": guest["token"],
        },
    )
    assert res.status_code == 400


def test_abandon(client):
    host, guest = start_game(client)
    game_id = host["game_id"]

    res = client.post(
        f"/api/v1/game/{game_id}/abandon",
        json={"game_id": game_id, "player_name": "Bob", "token": guest["token"]},
    )
    assert res.status_code == 200
    assert res.json()["data"] is True

    game = client.get(f"/api/v1/game/{game_id}", headers=bearer(host["token"])).json()
    assert game["game_state"] == "finished"
    assert game["finish_reason"] == "abandon"

    res = choose(client, game_id, 1, "Alice", "RED", host["token"])
    assert res.status_code == 409


def test_visibility_and_public_listing(client):
    host = create_game(client)
    game_id = host["game_id"]
    assert client.get("/api/v1/games/public").json()["games"] == []

    res = client.post(f"/api/v1/game/{game_id}/change_visibility", headers=bearer(host["token"]))
    assert res.status_code == 200
    assert res.json()["data"] == "public"

    games = client.get("/api/v1/games/public").json()["games"]
    assert [g["code"] for g in games] == [host["code"]]
    assert games[0]["player1_name"] == "Alice"

    res = client.post(f"/api/v1/game/{game_id}/change_visibility", headers=bearer("nope"))
    assert res.status_code == 401

    client.post("/api/v1/game/join", json={"player_name": "Bob", "code": host["code"]})
    assert client.get("/api/v1/games/public").json()["games"] == []
    res = client.post(f"/api/v1/game/{game_id}/change_visibility", headers=bearer(host["token"]))
    assert res.status_code == 409


def test_delete_lobby(client):
    host = create_game(client, visibility="public")
    game_id = host["game_id"]

    assert client.delete(f"/api/v1/game/{game_id}/delete").status_code == 401

    res = client.delete(f"/api/v1/game/{game_id}/delete", headers=bearer(host["token"]))
    assert res.status_code == 200

    res = client.get(f"/api/v1/game/{game_id}", headers=bearer(host["token"]))
    assert res.status_code == 404
    assert client.get("/api/v1/games/public").json()["games"] == []


def test_admin_login(client):
    res = client.post("/api/v1/admin/login", json={"password": "wrong"})
    assert res.status_code == 401
    assert admin_token(client)


def test_admin_lists_games(client):
    host, _ = start_game(client)
    lobby = create_game(client, name="Carol")
    token = admin_token(client)

    res = client.get("/api/v1/games", params={"admin_token": token})
    assert res.status_code == 200
    data = res.json()
    assert data["found_games"] == 2
    assert [g["id"] for g in data["games"]] == [lobby["game_id"], host["game_id"]]

    res = client.get("/api/v1/games", params={"admin_token": token, "game_state": "active"})
    assert [g["id"] for g in res.json()["games"]] == [host["game_id"]]

    res = client.get("/api/v1/games", params={"admin_token": token, "page": 2, "page_size": 1})
    assert [g["id"] for g in res.json()["games"]] == [host["game_id"]]

    res = client.get("/api/v1/games", params={"admin_token": "nope"})
    assert res.status_code == 401


def test_admin_can_read_any_snapshot(client):
    host, _ = start_game(client)
    token = admin_token(client)

    res = client.get(f"/api/v1/game/{host['game_id']}", headers=bearer(token))
    assert res.status_code == 200
    assert res.json()["player1_name"] == "Alice"


def test_admin_cleanup_removes_expired_lobbies(client):
    host = create_game(client)
    get_game_manager().get_game_session(host["game_id"]).created_at -= timedelta(minutes=11)
    token = admin_token(client)

    res = client.post("/api/v1/admin/cleanup", json={"admin_token": "nope"})
    assert res.status_code == 401

    res = client.post("/api/v1/admin/cleanup", json={"admin_token": token})
    assert res.status_code == 200
    assert res.json()["data"] == {"lobbies_removed": 1, "games_removed": 0}

    res = client.get(f"/api/v1/game/{host['game_id']}", headers=bearer(host["token"]))
    assert res.status_code == 404
