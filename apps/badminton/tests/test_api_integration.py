"""
End-to-end API tests against an in-memory database.
"""

import pytest


async def _create_group(api_client, names=("Alice", "Bob", "Carol", "Dave")):
    response = await api_client.post("/api/groups", json={"name": "Club", "player_names": list(names)})
    assert response.status_code == 200
    return response.json()


async def _create_group_session(api_client, group, round_robin=False):
    response = await api_client.post("/api/sessions", json={
        "players": [{"name": p["name"], "group_player_id": p["id"]} for p in group["players"]],
        "game_mode": "doubles",
        "group_id": group["id"],
        "round_robin": round_robin,
    })
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_round_robin_session_to_player_stats(api_client):
    group = await _create_group(api_client)
    session = await _create_group_session(api_client, group, round_robin=True)
    assert len(session["games"]) == 3

    first = session["games"][0]
    response = await api_client.put(
        f"/api/sessions/{session['id']}/games/{first['id']}",
        json={"winning_team": "A", "team_a_score": 21, "team_b_score": 15},
    )
    assert response.status_code == 200

    alice = group["players"][0]
    response = await api_client.get(f"/api/groups/{group['id']}/players/{alice['id']}/stats")
    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    stats = response.json()
    assert (stats["wins"], stats["losses"]) == (1, 0)
    assert (stats["points_scored"], stats["points_conceded"]) == (21, 15)
    assert stats["current_streak"] == 1
    assert stats["elo_rating"] == 1516

    response = await api_client.get(f"/api/groups/{group['id']}/stats")
    board = response.json()
    assert [e["elo_rating"] for e in board] == [1516, 1516, 1484, 1484]
    assert [e["rank"] for e in board] == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_game_crud(api_client):
    group = await _create_group(api_client)
    session = await _create_group_session(api_client, group)
    ids = [p["id"] for p in session["players"]]
    games_url = f"/api/sessions/{session['id']}/games"

    response = await api_client.post(games_url, json={"team_a": ids[:2], "team_b": ids[2:]})
    assert response.status_code == 200
    game = response.json()
    assert game["game_number"] == 1
    assert game["winning_team"] is None

    response = await api_client.post(games_url, json={"team_a": ids[:2], "team_b": [ids[0], ids[3]]})
    assert response.status_code == 400

    response = await api_client.put(f"{games_url}/{game['id']}", json={})
    assert response.status_code == 400

    response = await api_client.put(f"{games_url}/missing", json={"winning_team": "A"})
    assert response.status_code == 404

    response = await api_client.get(games_url)
    assert [g["id"] for g in response.json()] == [game["id"]]

    response = await api_client.delete(f"{games_url}/{game['id']}")
    assert response.status_code == 200
    response = await api_client.get(games_url)
    assert response.json() == []


@pytest.mark.asyncio
async def test_pairing_rebuild_and_reads(api_client):
    group = await _create_group(api_client)
    session = await _create_group_session(api_client, group)
    ids = [p["id"] for p in session["players"]]
    games_url = f"/api/sessions/{session['id']}/games"

    for team_a, team_b in ((ids[:2], ids[2:]), (ids[2:], ids[:2])):
        response = await api_client.post(games_url, json={
            "team_a": team_a, "team_b": team_b,
            "winning_team": "A", "team_a_score": 21, "team_b_score": 17,
        })
        assert response.status_code == 200

    response = await api_client.post(f"/api/groups/{group['id']}/pairings")
    assert response.status_code == 200
    assert response.json() == {
        "partners_updated": 2,
        "matchups_updated": 1,
        "games_processed": 2,
        "skipped_games": 0,
    }

    response = await api_client.post(f"/api/groups/{group['id']}/pairings")
    assert response.status_code == 429

    response = await api_client.get(f"/api/groups/{group['id']}/pairings/matchups")
    matchups = response.json()
    assert len(matchups) == 1
    assert matchups[0]["total_games"] == 2
    assert matchups[0]["team1_wins"] == 1

    response = await api_client.get(f"/api/groups/{group['id']}/pairings")
    partners = response.json()
    assert len(partners) == 2
    assert all(not p["is_qualified"] for p in partners)

    alice, bob = group["players"][0]["id"], group["players"][1]["id"]
    response = await api_client.get(f"/api/groups/{group['id']}/pairings/{bob}/{alice}")
    assert response.status_code == 200
    detail = response.json()
    assert detail["player1_id"] == min(alice, bob)
    assert detail["games_played"] == 2


@pytest.mark.asyncio
async def test_elo_recalculation(api_client):
    group = await _create_group(api_client)
    session = await _create_group_session(api_client, group)
    ids = [p["id"] for p in session["players"]]
    await api_client.post(f"/api/sessions/{session['id']}/games", json={
        "team_a": ids[:2], "team_b": ids[2:], "winning_team": "B",
    })

    response = await api_client.post(f"/api/groups/{group['id']}/elo/recalculate")
    assert response.status_code == 200
    result = response.json()
    assert result["games_processed"] == 1
    assert result["players_reset"] == 4

    response = await api_client.get(f"/api/groups/{group['id']}/stats")
    top = response.json()[0]
    assert top["elo_rating"] == 1516
    assert top["player_name"] in ("Carol", "Dave")

    response = await api_client.post("/api/groups/missing/elo/recalculate")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_group_lifecycle(api_client):
    group = await _create_group(api_client, names=("Alice",))

    response = await api_client.get(f"/api/groups/shareable/{group['shareable_link']}")
    assert response.json()["id"] == group["id"]

    response = await api_client.post(f"/api/groups/{group['id']}/players", json={"name": "ALICE"})
    assert response.status_code == 400

    response = await api_client.post(f"/api/groups/{group['id']}/players", json={"name": "Bob"})
    assert response.status_code == 200

    response = await api_client.get(f"/api/groups/{group['id']}/players")
    assert sorted(p["name"] for p in response.json()) == ["Alice", "Bob"]

    response = await api_client.delete(f"/api/groups/{group['id']}")
    assert response.status_code == 200
    response = await api_client.get(f"/api/groups/{group['id']}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_session_lifecycle(api_client):
    response = await api_client.post("/api/sessions", json={
        "players": [{"name": n} for n in ("A", "B", "C")],
        "game_mode": "singles",
        "round_robin": True,
    })
    assert response.status_code == 200
    session = response.json()
    assert len(session["games"]) == 3

    response = await api_client.get(f"/api/sessions/{session['id']}")
    assert len(response.json()["players"]) == 3

    response = await api_client.delete(f"/api/sessions/{session['id']}")
    assert response.status_code == 200
    response = await api_client.get(f"/api/sessions/{session['id']}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_database_health(api_client):
    response = await api_client.get("/api/health/db")
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_group_sessions_guests_and_roster_changes(api_client):
    group = await _create_group(api_client)
    session = await _create_group_session(api_client, group, round_robin=True)

    response = await api_client.post("/api/sessions", json={
        "players": [{"name": "Erin"}, {"name": "Frank"}],
        "game_mode": "singles",
        "group_id": group["id"],
    })
    assert response.status_code == 200
    guest_session = response.json()

    response = await api_client.get(f"/api/groups/{group['id']}/sessions")
    assert response.status_code == 200
    sessions = {s["id"]: s for s in response.json()}
    assert sessions[session["id"]]["total_games"] == 3
    assert sessions[session["id"]]["completed_games"] == 0
    assert len(sessions[guest_session["id"]]["players"]) == 2

    response = await api_client.get(f"/api/groups/{group['id']}/guests")
    assert response.status_code == 200
    assert sorted(g["name"] for g in response.json()) == ["Erin", "Frank"]

    response = await api_client.post(f"/api/groups/{group['id']}/guests", json={"name": "Erin"})
    assert response.status_code == 200
    assert response.json()["linked_players"] == 1

    response = await api_client.post(f"/api/groups/{group['id']}/guests", json={"name": "erin"})
    assert response.status_code == 400

    response = await api_client.get(f"/api/groups/{group['id']}/guests")
    assert [g["name"] for g in response.json()] == ["Frank"]

    dave = group["players"][3]
    response = await api_client.delete(f"/api/groups/{group['id']}/players/{dave['id']}")
    assert response.status_code == 200
    response = await api_client.delete(f"/api/groups/{group['id']}/players/{dave['id']}")
    assert response.status_code == 404

    response = await api_client.get(f"/api/groups/{group['id']}/players")
    assert sorted(p["name"] for p in response.json()) == ["Alice", "Bob", "Carol", "Erin"]

    # Dave is now a guest in the round robin session
    response = await api_client.get(f"/api/groups/{group['id']}/guests")
    assert sorted(g["name"] for g in response.json()) == ["Dave", "Frank"]

    response = await api_client.get("/api/groups/missing/sessions")
    assert response.status_code == 404
    response = await api_client.get("/api/groups/missing/guests")
    assert response.status_code == 404
