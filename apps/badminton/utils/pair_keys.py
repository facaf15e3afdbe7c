"""
Canonical ordering for unordered player pairs and team-vs-team matchups.

Partner rows are keyed by (player1_id, player2_id) with player1_id < player2_id,
and matchup rows order the two teams by their concatenated sorted ids, so that
(A, B) and (B, A), or {A,B} vs {C,D} and {C,D} vs {A,B}, always land on the
same key. Comparison is plain string comparison on the identifiers.
"""

from typing import Sequence, Tuple


def normalize_pair(id1: str, id2: str) -> Tuple[str, str]:
    """Return the two ids as (smaller, larger)."""
    return (id1, id2) if id1 < id2 else (id2, id1)


def normalize_team(team: Sequence[str]) -> Tuple[str, ...]:
    """Return a team's ids sorted."""
    return tuple(sorted(team))


def team_key(team: Sequence[str]) -> str:
    """
    Concatenated sorted ids, the value teams are ordered by.

    Ids are joined without a separator, so keys are only unambiguous for
    fixed-length ids. All stored ids are 32-char uuid4 hex (generate_id);
    ids of mixed lengths such as ("a", "bc") and ("ab", "c") would collide.
    """
    return "".join(sorted(team))


def normalize_teams(
    team1: Sequence[str], team2: Sequence[str]
) -> Tuple[Tuple[str, ...], Tuple[str, ...], bool]:
    """
    Sort each team's ids, then order the two teams by team_key.

    Returns:
        (first_team, second_team, swapped) where swapped is True when the
        original team2 became the first team.
    """
    sorted1 = normalize_team(team1)
    sorted2 = normalize_team(team2)
    if team_key(sorted1) < team_key(sorted2):
        return sorted1, sorted2, False
    return sorted2, sorted1, True


def pair_key(id1: str, id2: str) -> str:
    """Map key for an unordered pair."""
    first, second = normalize_pair(id1, id2)
    return f"{first}|{second}"


def split_pair_key(key: str) -> Tuple[str, str]:
    """Inverse of pair_key."""
    first, second = key.split("|", 1)
    return first, second
