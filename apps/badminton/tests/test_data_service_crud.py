"""
Tests for group, session and game CRUD in data_service.
"""

from datetime import timedelta

import pytest

from badminton.services import data_service, game_service
from badminton.utils.datetime_utils import utcnow


@pytest.mark.asyncio
async def test_create_group_with_players(db_session):
    group = await data_service.create_group(db_session, "  Club  ", ["Alice", " Bob "])

    assert group["name"] == "Club"
    assert [p["name"] for p in group["players"]] == ["Alice", "Bob"]
    assert all(p["elo_rating"] == 1500 for p in group["players"])
    assert group["shareable_link"]


@pytest.mark.asyncio
async def test_get_group_by_shareable_link(db_session, group_with_players):
    found = await data_service.get_group_by_shareable_link(
        db_session, group_with_players["shareable_link"]
    )
    assert found["id"] == group_with_players["id"]
    assert await data_service.get_group_by_shareable_link(db_session, "missing") is None


@pytest.mark.asyncio
async def test_add_group_player_rejects_duplicate_names(db_session, group_with_players):
    added = await data_service.add_group_player(db_session, group_with_players["id"], "Erin")
    assert added["name"] == "Erin"

    with pytest.raises(ValueError, match="already exists"):
        await data_service.add_group_player(db_session, group_with_players["id"], "alice")


@pytest.mark.asyncio
async def test_delete_group_removes_everything(db_session, linked_session, group_with_players):
    group_id = group_with_players["id"]
    ids = [p["id"] for p in linked_session["players"]]
    await data_service.create_game(db_session, linked_session["id"], ids[:2], ids[2:], "A")
    await db_session.commit()

    assert await data_service.delete_group(db_session, group_id) is True
    await db_session.commit()

    assert await data_service.get_group(db_session, group_id) is None
    assert await data_service.get_session_row(db_session, linked_session["id"]) is None
    assert await data_service.list_group_players(db_session, group_id) == []
    assert await data_service.delete_group(db_session, group_id) is False


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_default_name_from_date(self, db_session):
        from datetime import datetime

        created = await data_service.create_session(
            db_session,
            [{"name": n} for n in ("A", "B", "C", "D")],
            date=datetime(2026, 1, 21, 19, 0),
        )
        assert created["name"] == "1/21/2026"
        assert created["group_id"] is None
        assert created["games"] == []

    @pytest.mark.asyncio
    async def test_round_robin_games_generated(self, db_session):
        created = await data_service.create_session(
            db_session,
            [{"name": n} for n in ("A", "B", "C", "D", "E")],
            round_robin=True,
            round_robin_count=6,
        )
        games = created["games"]

        assert len(games) == 6
        assert [g["game_number"] for g in games] == [1, 2, 3, 4, 5, 6]
        assert games[0]["id"] == f"{created['id']}-game-1"
        assert all(g["winning_team"] is None for g in games)
        roster = {p["id"] for p in created["players"]}
        assert all(set(g["team_a"] + g["team_b"]) <= roster for g in games)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode,count", [("doubles", 3), ("singles", 1), ("doubles", 7)])
    async def test_roster_size_limits(self, db_session, mode, count):
        with pytest.raises(ValueError):
            await data_service.create_session(
                db_session, [{"name": f"P{i}"} for i in range(count)], game_mode=mode
            )

    @pytest.mark.asyncio
    async def test_linked_players_must_belong_to_group(self, db_session, group_with_players):
        other = await data_service.create_group(db_session, "Other", ["Zed"])
        roster = [{"name": p["name"], "group_player_id": p["id"]} for p in group_with_players["players"][:3]]
        roster.append({"name": "Zed", "group_player_id": other["players"][0]["id"]})

        with pytest.raises(ValueError, match="not in group"):
            await data_service.create_session(db_session, roster, group_id=group_with_players["id"])

    @pytest.mark.asyncio
    async def test_linked_player_once_per_session(self, db_session, group_with_players):
        alice = group_with_players["players"][0]
        roster = [{"name": "Alice", "group_player_id": alice["id"]}] * 2 + [
            {"name": "X"}, {"name": "Y"}
        ]
        with pytest.raises(ValueError, match="only appear once"):
            await data_service.create_session(db_session, roster, group_id=group_with_players["id"])

    @pytest.mark.asyncio
    async def test_linking_requires_group(self, db_session, group_with_players):
        roster = [{"name": p["name"], "group_player_id": p["id"]} for p in group_with_players["players"]]
        with pytest.raises(ValueError):
            await data_service.create_session(db_session, roster)


class TestGames:
    @pytest.mark.asyncio
    async def test_game_numbers_increment(self, db_session, linked_session):
        ids = [p["id"] for p in linked_session["players"]]
        first = await data_service.create_game(db_session, linked_session["id"], ids[:2], ids[2:])
        second = await data_service.create_game(db_session, linked_session["id"], ids[2:], ids[:2], "B", 10, 21)

        assert (first.game_number, second.game_number) == (1, 2)
        assert second.id == f"{linked_session['id']}-game-2"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("team_a,team_b,winner,score_a,error", [
        ([0], [2, 3], None, None, "Each team"),
        ([0, 0], [2, 3], None, None, "twice"),
        ([0, 1], [2, "nobody"], None, None, "not in session"),
        ([0, 1], [2, 3], None, 21, "unplayed"),
        ([0, 1], [2, 3], "C", None, "winning_team"),
    ])
    async def test_invalid_games(self, db_session, linked_session, team_a, team_b, winner, score_a, error):
        ids = [p["id"] for p in linked_session["players"]]

        def resolve(team):
            return [ids[i] if isinstance(i, int) else i for i in team]

        with pytest.raises(ValueError, match=error):
            await data_service.create_game(
                db_session, linked_session["id"], resolve(team_a), resolve(team_b), winner, score_a, None
            )

    @pytest.mark.asyncio
    async def test_missing_session(self, db_session):
        with pytest.raises(ValueError, match="not found"):
            await data_service.create_game(db_session, "nope", ["a", "b"], ["c", "d"])

    @pytest.mark.asyncio
    async def test_clearing_result_clears_scores(self, db_session, linked_session):
        ids = [p["id"] for p in linked_session["players"]]
        game = await data_service.create_game(db_session, linked_session["id"], ids[:2], ids[2:], "A", 21, 19)

        updated = await data_service.update_game(db_session, game, {"winning_team": None})

        assert updated.winning_team is None
        assert updated.team_a_score is None
        assert updated.team_b_score is None

    @pytest.mark.asyncio
    async def test_session_detail_lists_games_in_order(self, db_session, linked_session):
        ids = [p["id"] for p in linked_session["players"]]
        await data_service.create_game(db_session, linked_session["id"], ids[:2], ids[2:], "A", 21, 19)
        await data_service.create_game(db_session, linked_session["id"], ids[2:], ids[:2])
        await db_session.commit()

        detail = await data_service.get_session(db_session, linked_session["id"])
        assert [g["game_number"] for g in detail["games"]] == [1, 2]
        assert len(detail["players"]) == 4

        assert await data_service.delete_session(db_session, linked_session["id"]) is True
        assert await data_service.get_session(db_session, linked_session["id"]) is None


class TestGroupRoster:
    @pytest.mark.asyncio
    async def test_remove_group_player_turns_links_into_guests(
        self, db_session, linked_session, group_with_players
    ):
        group_id = group_with_players["id"]
        alice_id = group_with_players["players"][0]["id"]
        ids = [p["id"] for p in linked_session["players"]]
        await game_service.create_game(db_session, linked_session["id"], {
            "team_a": ids[:2], "team_b": ids[2:], "winning_team": "A",
            "team_a_score": 21, "team_b_score": 18,
        })
        await db_session.commit()
        assert len(await data_service.list_partner_stats(db_session, group_id)) == 2

        assert await data_service.remove_group_player(db_session, group_id, alice_id) is True
        await db_session.commit()

        remaining = await data_service.list_group_players(db_session, group_id)
        assert [p.name for p in remaining] == ["Bob", "Carol", "Dave"]
        roster = await data_service.list_session_players(db_session, [linked_session["id"]])
        assert [p.group_player_id for p in roster if p.name == "Alice"] == [None]
        partners = await data_service.list_partner_stats(db_session, group_id)
        assert [(p.player1_id, p.player2_id) for p in partners if alice_id in (p.player1_id, p.player2_id)] == []
        assert await data_service.list_pairing_matchups(db_session, group_id) == []
        # The game itself is kept
        assert len(await data_service.list_session_games(db_session, linked_session["id"])) == 1

    @pytest.mark.asyncio
    async def test_remove_unknown_group_player(self, db_session, group_with_players):
        assert await data_service.remove_group_player(
            db_session, group_with_players["id"], "missing"
        ) is False

    @pytest.mark.asyncio
    async def test_group_sessions_newest_first_with_counts(
        self, db_session, linked_session, group_with_players
    ):
        group_id = group_with_players["id"]
        ids = [p["id"] for p in linked_session["players"]]
        await data_service.create_game(db_session, linked_session["id"], ids[:2], ids[2:], "A")
        await data_service.create_game(db_session, linked_session["id"], ids[:2], ids[2:])
        older = await data_service.create_session(
            db_session,
            [{"name": "Erin"}, {"name": "Frank"}],
            game_mode="singles",
            group_id=group_id,
            date=utcnow() - timedelta(days=7),
        )
        await db_session.commit()

        sessions = await data_service.list_group_sessions(db_session, group_id)

        assert [s["id"] for s in sessions] == [linked_session["id"], older["id"]]
        assert (sessions[0]["total_games"], sessions[0]["completed_games"]) == (2, 1)
        assert len(sessions[0]["players"]) == 4
        assert (sessions[1]["total_games"], sessions[1]["completed_games"]) == (0, 0)

    @pytest.mark.asyncio
    async def test_group_sessions_empty(self, db_session, group_with_players):
        assert await data_service.list_group_sessions(db_session, group_with_players["id"]) == []


class TestGuests:
    async def _sessions(self, db_session, group):
        alice = group["players"][0]
        earlier = await data_service.create_session(
            db_session,
            [
                {"name": "Alice", "group_player_id": alice["id"]},
                {"name": "Erin"},
                {"name": "Frank"},
                {"name": "alice "},
            ],
            game_mode="singles",
            group_id=group["id"],
            date=utcnow() - timedelta(days=2),
        )
        latest = await data_service.create_session(
            db_session,
            [{"name": "erin"}, {"name": "Hank"}],
            game_mode="singles",
            group_id=group["id"],
            date=utcnow() - timedelta(days=1),
        )
        stale = await data_service.create_session(
            db_session,
            [{"name": "Old Timer"}, {"name": "Erin"}],
            game_mode="singles",
            group_id=group["id"],
            date=utcnow() - timedelta(days=45),
        )
        await db_session.commit()
        return earlier, latest, stale

    @pytest.mark.asyncio
    async def test_recent_guests_merged_by_name(self, db_session, group_with_players):
        earlier, latest, _ = await self._sessions(db_session, group_with_players)

        guests = await data_service.list_recent_guests(db_session, group_with_players["id"])
        by_name = {g["name"].lower(): g for g in guests}

        # Alice is a group player and Old Timer only played more than 30 days ago
        assert set(by_name) == {"erin", "frank", "hank"}
        assert by_name["erin"]["session_count"] == 2
        assert by_name["erin"]["last_session_id"] == latest["id"]
        assert by_name["frank"]["last_session_id"] == earlier["id"]
        assert guests[-1]["name"] == "Frank"

    @pytest.mark.asyncio
    async def test_no_recent_sessions(self, db_session, group_with_players):
        assert await data_service.list_recent_guests(db_session, group_with_players["id"]) == []

    @pytest.mark.asyncio
    async def test_promote_guest_links_past_players(self, db_session, group_with_players):
        earlier, latest, stale = await self._sessions(db_session, group_with_players)
        group_id = group_with_players["id"]

        promoted = await data_service.promote_guest(db_session, group_id, " Erin ")
        await db_session.commit()

        assert promoted["player"]["name"] == "Erin"
        assert promoted["linked_players"] == 3
        roster = await data_service.list_session_players(
            db_session, [earlier["id"], latest["id"], stale["id"]]
        )
        linked = [p for p in roster if p.group_player_id == promoted["player"]["id"]]
        assert sorted(p.session_id for p in linked) == sorted([earlier["id"], latest["id"], stale["id"]])

        guests = await data_service.list_recent_guests(db_session, group_id)
        assert {g["name"] for g in guests} == {"Frank", "Hank"}

        with pytest.raises(ValueError, match="already exists"):
            await data_service.promote_guest(db_session, group_id, "erin")
