"""
Tests for leaderboard and per-player stats aggregation.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from badminton.models.game_record import GameRecord
from badminton.services import data_service, stats_service
from badminton.services.round_robin_service import generate_round_robin_games
from badminton.services.stats_service import (
    build_group_players_stats,
    build_leaderboard,
    build_name_lookup,
    build_player_detailed_stats,
    classify_trend,
    is_close_game,
    StatsAggregationError,
)

BASE_TIME = datetime(2026, 3, 1, 18, 0, 0)


def _group_players(*names, elo=None):
    elo = elo or {}
    return [
        {"id": f"gp-{name.lower()}", "name": name, "elo_rating": elo.get(name, 1500)}
        for name in names
    ]


def _linked_roster(group_players, session_id="s1"):
    return [
        {
            "id": f"{session_id}-{gp['id']}",
            "session_id": session_id,
            "name": gp["name"],
            "group_player_id": gp["id"],
        }
        for gp in group_players
    ]


def _game(number, team_a, team_b, winner, score_a=None, score_b=None, session_id="s1"):
    return GameRecord(
        id=f"{session_id}-game-{number}",
        session_id=session_id,
        game_number=number,
        team_a=tuple(team_a),
        team_b=tuple(team_b),
        winning_team=winner,
        team_a_score=score_a,
        team_b_score=score_b,
        created_at=BASE_TIME + timedelta(minutes=number),
    )


def _newest_first(games):
    return sorted(games, key=lambda g: g.created_at, reverse=True)


@pytest.fixture
def foursome():
    group_players = _group_players("Alice", "Bob", "Carol", "Dave")
    roster = _linked_roster(group_players)
    ids = [p["id"] for p in roster]
    return group_players, roster, ids


class TestHelpers:
    @pytest.mark.parametrize("form,expected", [
        (["W", "W", "W", "L"], "up"),
        (["L", "L", "L", "W", "W"], "down"),
        (["W", "W"], "up"),
        # A margin of exactly one is not a trend
        (["W", "W", "W", "L", "L"], "stable"),
        (["W", "W", "L"], "stable"),
        (["L", "L", "W"], "stable"),
        (["W", "L"], "stable"),
        ([], "stable"),
    ])
    def test_classify_trend(self, form, expected):
        assert classify_trend(form) == expected

    @pytest.mark.parametrize("score_a,score_b,expected", [
        (21, 20, True),
        (21, 19, True),
        (21, 18, False),
        (21, 21, False),
        (21, None, False),
    ])
    def test_is_close_game(self, score_a, score_b, expected):
        assert is_close_game(_game(1, ["a"], ["b"], "A", score_a, score_b)) is expected

    def test_guest_names_come_from_session(self):
        group_players = _group_players("Alice")
        roster = _linked_roster(group_players) + [
            {"id": "guest", "session_id": "s1", "name": "Visitor", "group_player_id": None}
        ]
        names = build_name_lookup(group_players, roster)
        assert names == {"s1-gp-alice": "Alice", "guest": "Visitor"}


class TestLeaderboard:
    def test_ranks_by_elo_with_stable_ties(self):
        group_players = _group_players("Alice", "Bob", "Carol", elo={"Bob": 1600})
        board = build_leaderboard(group_players, [], [])

        assert [e["player_name"] for e in board] == ["Bob", "Alice", "Carol"]
        assert [e["rank"] for e in board] == [1, 2, 3]
        assert all(e["total_games"] == 0 and e["win_rate"] == 0.0 for e in board)

    def test_counts_from_games(self, foursome):
        group_players, roster, ids = foursome
        games = _newest_first([
            _game(1, ids[:2], ids[2:], "A", 21, 15),
            _game(2, [ids[0], ids[2]], [ids[1], ids[3]], "B", 18, 21),
        ])
        board = {e["player_name"]: e for e in build_leaderboard(group_players, roster, games)}

        assert (board["Alice"]["wins"], board["Alice"]["losses"]) == (1, 1)
        assert board["Alice"]["recent_form"] == ["L", "W"]
        assert (board["Bob"]["wins"], board["Bob"]["losses"]) == (2, 0)
        assert board["Bob"]["win_rate"] == 100.0
        assert (board["Carol"]["wins"], board["Carol"]["losses"]) == (0, 2)

    def test_duplicate_linkage_counts_once(self):
        group_players = _group_players("Alice", "Bob", "Carol")
        roster = [
            {"id": "sp1", "session_id": "s1", "name": "Alice", "group_player_id": "gp-alice"},
            {"id": "sp2", "session_id": "s1", "name": "Alice 2", "group_player_id": "gp-alice"},
            {"id": "sp3", "session_id": "s1", "name": "Bob", "group_player_id": "gp-bob"},
            {"id": "sp4", "session_id": "s1", "name": "Carol", "group_player_id": "gp-carol"},
        ]
        games = [_game(1, ["sp1", "sp2"], ["sp3", "sp4"], "A", 21, 10)]
        board = {e["group_player_id"]: e for e in build_leaderboard(group_players, roster, games)}

        assert board["gp-alice"]["wins"] == 1
        assert board["gp-alice"]["total_games"] == 1
        assert board["gp-alice"]["recent_form"] == ["W"]

    def test_guests_are_ignored(self, foursome):
        group_players, roster, ids = foursome
        roster = roster[:3] + [{"id": "guest", "session_id": "s1", "name": "G", "group_player_id": None}]
        games = [_game(1, [roster[0]["id"], "guest"], [roster[1]["id"], roster[2]["id"]], "A")]
        board = build_leaderboard(group_players, roster, games)

        assert len(board) == 4
        assert sum(e["total_games"] for e in board) == 3

    def test_recent_form_capped_at_five(self, foursome):
        group_players, roster, ids = foursome
        games = _newest_first([_game(n, ids[:2], ids[2:], "A") for n in range(1, 8)])
        board = {e["player_name"]: e for e in build_leaderboard(group_players, roster, games)}

        assert board["Alice"]["recent_form"] == ["W"] * 5
        assert board["Alice"]["wins"] == 7
        assert board["Alice"]["trend"] == "up"
        assert board["Carol"]["trend"] == "down"

    def test_idempotent(self, foursome):
        group_players, roster, ids = foursome
        games = _newest_first([
            _game(1, ids[:2], ids[2:], "A", 21, 19),
            _game(2, [ids[0], ids[3]], [ids[1], ids[2]], "B", 12, 21),
        ])
        first = build_leaderboard(group_players, roster, games)
        second = build_leaderboard(group_players, roster, games)
        assert first == second


class TestPlayerDetailedStats:
    def test_unknown_player(self, foursome):
        group_players, roster, _ = foursome
        assert build_player_detailed_stats("gp-nobody", group_players, roster, []) is None

    def test_player_without_games(self, foursome):
        group_players, roster, _ = foursome
        stats = build_player_detailed_stats("gp-bob", group_players, roster, [])

        assert stats["total_games"] == 0
        assert stats["current_streak"] == 0
        assert stats["partner_stats"] == []
        assert stats["total_players"] == 4
        assert stats["sessions_played"] == 1

    @pytest.mark.parametrize("results,expected_streak,expected_best", [
        (["L", "W", "W"], -1, 2),
        (["W", "W", "L"], 2, 2),
        (["W", "L", "W", "W", "W"], 1, 3),
        (["L", "L", "W"], -2, 1),
    ])
    def test_current_streak(self, foursome, results, expected_streak, expected_best):
        group_players, roster, ids = foursome
        # results are newest first; game numbers grow towards the newest
        count = len(results)
        games = _newest_first([
            _game(count - i, ids[:2], ids[2:], "A" if result == "W" else "B")
            for i, result in enumerate(results)
        ])
        stats = build_player_detailed_stats("gp-alice", group_players, roster, games)

        assert stats["recent_form"] == results[:5]
        assert stats["current_streak"] == expected_streak
        assert stats["best_win_streak"] == expected_best

    def test_unlucky_games(self, foursome):
        group_players, roster, ids = foursome
        games = _newest_first([
            _game(1, ids[:2], ids[2:], "B", 14, 15),
            _game(2, ids[:2], ids[2:], "B", 10, 15),
            _game(3, ids[:2], ids[2:], "A", 10, 15),
            _game(4, ids[:2], ids[2:], "A", 15, 14),
        ])
        stats = build_player_detailed_stats("gp-alice", group_players, roster, games)

        assert stats["unlucky_count"] == 1
        assert stats["unlucky_games"][0]["game_id"] == "s1-game-1"
        assert stats["unlucky_games"][0]["margin"] == 1

    def test_partners_and_opponents(self, foursome):
        group_players, roster, ids = foursome
        games = _newest_first([
            _game(1, [ids[0], ids[1]], [ids[2], ids[3]], "A", 21, 10),
            _game(2, [ids[0], ids[2]], [ids[1], ids[3]], "B", 15, 21),
            _game(3, [ids[0], ids[1]], [ids[2], ids[3]], "A", 21, 19),
        ])
        stats = build_player_detailed_stats("gp-alice", group_players, roster, games)

        partners = {p["partner_name"]: p for p in stats["partner_stats"]}
        assert set(partners) == {"Bob", "Carol"}
        assert (partners["Bob"]["wins"], partners["Bob"]["losses"]) == (2, 0)
        assert (partners["Carol"]["wins"], partners["Carol"]["losses"]) == (0, 1)
        assert stats["partner_stats"][0]["partner_name"] == "Bob"

        opponents = {o["opponent_name"]: o for o in stats["opponent_stats"]}
        assert opponents["Dave"]["games_played"] == 3
        assert (opponents["Bob"]["wins"], opponents["Bob"]["losses"]) == (0, 1)
        assert "Alice" not in opponents

        assert stats["points_scored"] == 57
        assert stats["points_conceded"] == 50
        assert stats["point_differential"] == 7

    def test_recent_games_limited_to_ten(self, foursome):
        group_players, roster, ids = foursome
        games = _newest_first([_game(n, ids[:2], ids[2:], "A") for n in range(1, 13)])
        stats = build_player_detailed_stats("gp-bob", group_players, roster, games)

        assert stats["total_games"] == 12
        assert len(stats["recent_games"]) == 10
        assert stats["recent_games"][0]["game_id"] == "s1-game-12"
        assert len(stats["recent_form"]) == 5

    def test_round_robin_scenario(self, foursome):
        group_players, roster, ids = foursome
        scheduled = generate_round_robin_games(ids)
        assert [set(g["team_a"]) for g in scheduled] == [
            {ids[0], ids[1]}, {ids[0], ids[2]}, {ids[0], ids[3]}
        ]

        first = scheduled[0]
        games = [_game(1, first["team_a"], first["team_b"], "A", 21, 15)]
        stats = build_player_detailed_stats("gp-alice", group_players, roster, games)

        assert stats["wins"] == 1
        assert stats["losses"] == 0
        assert stats["points_scored"] == 21
        assert stats["points_conceded"] == 15
        assert stats["current_streak"] == 1


def test_group_players_stats(foursome):
    group_players, roster, ids = foursome
    games = [
        _game(1, ids[:2], ids[2:], "A", 21, 15),
        _game(2, [ids[0], ids[2]], [ids[1], ids[3]], "A", 21, 17),
    ]
    totals = {e["player_name"]: e for e in build_group_players_stats(group_players, roster, games)}

    assert totals["Alice"]["wins"] == 2
    assert totals["Alice"]["points_scored"] == 42
    assert totals["Dave"]["losses"] == 2
    assert totals["Dave"]["sessions_played"] == 1


@pytest.mark.asyncio
async def test_leaderboard_from_database(db_session, linked_session, group_with_players):
    ids = [p["id"] for p in linked_session["players"]]
    await data_service.create_game(db_session, linked_session["id"], ids[:2], ids[2:], "A", 21, 15)
    await data_service.create_game(db_session, linked_session["id"], ids[:2], ids[2:])
    await db_session.commit()

    board = await stats_service.get_leaderboard(db_session, group_with_players["id"])
    by_name = {e["player_name"]: e for e in board}

    assert len(board) == 4
    assert by_name["Alice"]["wins"] == 1
    assert by_name["Carol"]["losses"] == 1
    # The unplayed game is not counted
    assert by_name["Alice"]["total_games"] == 1


@pytest.mark.asyncio
async def test_leaderboard_for_empty_group(db_session):
    group = await data_service.create_group(db_session, "Empty")
    assert await stats_service.get_leaderboard(db_session, group["id"]) == []


@pytest.mark.asyncio
async def test_detailed_stats_from_database(db_session, linked_session, group_with_players):
    ids = [p["id"] for p in linked_session["players"]]
    await data_service.create_game(db_session, linked_session["id"], ids[:2], ids[2:], "B", 19, 21)
    await db_session.commit()

    alice_id = group_with_players["players"][0]["id"]
    stats = await stats_service.get_player_detailed_stats(db_session, group_with_players["id"], alice_id)

    assert stats["losses"] == 1
    assert stats["unlucky_count"] == 1
    assert stats["current_streak"] == -1
    assert stats["skipped_games"] == 0


async def _failing_read(*args, **kwargs):
    raise SQLAlchemyError("connection reset")


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_leaderboard_read_failure_is_not_an_empty_board(
        self, db_session, group_with_players, monkeypatch
    ):
        monkeypatch.setattr(data_service, "list_sessions", _failing_read, raising=True)

        with pytest.raises(StatsAggregationError) as exc_info:
            await stats_service.get_leaderboard(db_session, group_with_players["id"])
        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)

    @pytest.mark.asyncio
    async def test_detailed_stats_read_failure(self, db_session, group_with_players, monkeypatch):
        monkeypatch.setattr(data_service, "list_sessions", _failing_read, raising=True)
        alice_id = group_with_players["players"][0]["id"]

        with pytest.raises(StatsAggregationError) as exc_info:
            await stats_service.get_player_detailed_stats(
                db_session, group_with_players["id"], alice_id
            )
        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)

    @pytest.mark.asyncio
    async def test_game_read_failure(self, db_session, linked_session, group_with_players, monkeypatch):
        monkeypatch.setattr(data_service, "list_completed_games", _failing_read, raising=True)

        with pytest.raises(StatsAggregationError):
            await stats_service.get_group_players_stats(db_session, group_with_players["id"])
