"""
Tests for parsing stored game rows into GameRecords.
"""

import pytest

from badminton.models.game_record import (
    GameRecord,
    MalformedTeamError,
    parse_team_ids,
    to_game_records,
)


def _row(**overrides):
    row = {
        "id": "s1-game-1",
        "session_id": "s1",
        "game_number": 1,
        "team_a": ["p1", "p2"],
        "team_b": ["p3", "p4"],
        "winning_team": "A",
        "team_a_score": 21,
        "team_b_score": 15,
    }
    row.update(overrides)
    return row


def test_parse_list_and_json_string_alike():
    assert parse_team_ids(["p1", "p2"]) == ("p1", "p2")
    assert parse_team_ids('["p1", "p2"]') == ("p1", "p2")


@pytest.mark.parametrize("value", ["not json", "{}", "[]", '["a", "b", "c"]', 42, None, [None]])
def test_parse_rejects_malformed_teams(value):
    with pytest.raises(MalformedTeamError):
        parse_team_ids(value)


def test_from_row_dict():
    record = GameRecord.from_row(_row())
    assert record.team_a == ("p1", "p2")
    assert record.is_played
    assert record.is_doubles
    assert record.has_scores


def test_singles_and_unscored():
    record = GameRecord.from_row(_row(team_a=["p1"], team_b=["p2"], team_a_score=None))
    assert not record.is_doubles
    assert not record.has_scores


def test_to_game_records_skips_and_counts_malformed():
    rows = [_row(), _row(id="bad", team_a="oops"), _row(id="s1-game-3", game_number=3)]
    records, skipped = to_game_records(rows)

    assert [r.id for r in records] == ["s1-game-1", "s1-game-3"]
    assert skipped == 1
