"""
ELO rating service.

- Starting rating: 1500
- K-factor: 32
- Doubles: team rating is the average of both players' ratings, and each
  player receives the team's rating change on top of their own rating
- Ratings never drop below 100
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.database.models import GroupPlayer, Player
from badminton.models.game_record import to_game_records
from badminton.services import data_service
from badminton.utils.constants import DEFAULT_ELO, K_FACTOR, MIN_RATING

logger = logging.getLogger(__name__)


# ============================================================================
# Helper Functions (ELO Calculations)
# ============================================================================

def round_half_up(value: float) -> int:
    """Round .5 towards positive infinity (1500.5 -> 1501, -0.5 -> 0)."""
    return int(math.floor(value + 0.5))


def expected_score(rating: float, opponent_rating: float) -> float:
    """
    Probability that a player rated `rating` beats one rated `opponent_rating`.

    Formula: E = 1 / (1 + 10^((opponent - rating) / 400))
    """
    return 1 / (1 + 10 ** ((opponent_rating - rating) / 400))


def calculate_new_rating(current_rating: float, opponent_rating: float, won: bool) -> int:
    """New rating after one game, rounded and floored at MIN_RATING."""
    actual = 1.0 if won else 0.0
    new_rating = round_half_up(
        current_rating + K_FACTOR * (actual - expected_score(current_rating, opponent_rating))
    )
    return max(MIN_RATING, new_rating)


def calculate_team_rating(ratings: Sequence[float]) -> float:
    """Average rating of a team, DEFAULT_ELO for an empty team."""
    if not ratings:
        return DEFAULT_ELO
    return sum(ratings) / len(ratings)


def compute_rating_updates(
    team_a_ratings: Dict[str, int],
    team_b_ratings: Dict[str, int],
    winning_team: str,
) -> List[Dict]:
    """
    Compute new personal ratings for every player in a game.

    Args:
        team_a_ratings: Group player id -> current rating, team A
        team_b_ratings: Group player id -> current rating, team B
        winning_team: "A" or "B"

    Returns:
        List of {"group_player_id", "old_rating", "new_rating", "change", "won"}
    """
    team_a_rating = calculate_team_rating(list(team_a_ratings.values()))
    team_b_rating = calculate_team_rating(list(team_b_ratings.values()))

    updates = []
    for ratings, own, other, won in (
        (team_a_ratings, team_a_rating, team_b_rating, winning_team == "A"),
        (team_b_ratings, team_b_rating, team_a_rating, winning_team == "B"),
    ):
        team_change = calculate_new_rating(own, other, won) - own
        for player_id, old_rating in ratings.items():
            new_rating = max(MIN_RATING, round_half_up(old_rating + team_change))
            updates.append({
                "group_player_id": player_id,
                "old_rating": old_rating,
                "new_rating": new_rating,
                "change": new_rating - old_rating,
                "won": won,
            })
    return updates


def _unique_ids(ids: Iterable[Optional[str]]) -> List[str]:
    return list(dict.fromkeys(player_id for player_id in ids if player_id))


def _apply_game(
    players_by_id: Dict[str, GroupPlayer],
    team_a_ids: Sequence[str],
    team_b_ids: Sequence[str],
    winning_team: str,
) -> List[Dict]:
    """Apply a result to loaded GroupPlayer rows in place."""
    def ratings_for(ids):
        return {
            player_id: (players_by_id[player_id].elo_rating or DEFAULT_ELO)
            for player_id in ids
            if player_id in players_by_id
        }

    updates = compute_rating_updates(ratings_for(team_a_ids), ratings_for(team_b_ids), winning_team)
    for item in updates:
        player = players_by_id[item["group_player_id"]]
        player.elo_rating = item["new_rating"]
        if item["won"]:
            player.wins = (player.wins or 0) + 1
        else:
            player.losses = (player.losses or 0) + 1
        player.total_games = (player.wins or 0) + (player.losses or 0)
    return updates


# ============================================================================
# Persisted updates
# ============================================================================

async def _load_players(session: AsyncSession, ids: Sequence[str]) -> Dict[str, GroupPlayer]:
    if not ids:
        return {}
    result = await session.execute(select(GroupPlayer).where(GroupPlayer.id.in_(ids)))
    return {player.id: player for player in result.scalars().all()}


async def process_game_result(
    session: AsyncSession,
    team_a_ids: Sequence[Optional[str]],
    team_b_ids: Sequence[Optional[str]],
    winning_team: str,
) -> List[Dict]:
    """
    Update ratings and stored W/L counters for the group players in a game.

    Args:
        team_a_ids: Group player ids on team A (None entries are ignored)
        team_b_ids: Group player ids on team B
        winning_team: "A" or "B"

    Returns:
        Rating updates, one per group player
    """
    valid_a = _unique_ids(team_a_ids)
    valid_b = _unique_ids(team_b_ids)
    if not valid_a and not valid_b:
        return []

    players_by_id = await _load_players(session, valid_a + valid_b)
    updates = _apply_game(players_by_id, valid_a, valid_b, winning_team)
    await session.flush()

    for item in updates:
        logger.debug(
            f"ELO {item['group_player_id']}: {item['old_rating']} -> {item['new_rating']} "
            f"(won={item['won']})"
        )
    return updates


async def reverse_game_result(
    session: AsyncSession,
    team_a_ids: Sequence[Optional[str]],
    team_b_ids: Sequence[Optional[str]],
    was_winning_team: str,
) -> None:
    """
    Undo the stored W/L counters of a removed result.

    Ratings are path dependent and are left untouched; recalculate_group_elo
    restores them.
    """
    valid_a = _unique_ids(team_a_ids)
    valid_b = _unique_ids(team_b_ids)
    players_by_id = await _load_players(session, valid_a + valid_b)

    for ids, was_win in ((valid_a, was_winning_team == "A"), (valid_b, was_winning_team == "B")):
        for player_id in ids:
            player = players_by_id.get(player_id)
            if player is None:
                continue
            if was_win:
                player.wins = max(0, (player.wins or 0) - 1)
            else:
                player.losses = max(0, (player.losses or 0) - 1)
            player.total_games = max(0, (player.total_games or 0) - 1)
    await session.flush()


async def recalculate_group_elo(session: AsyncSession, group_id: str) -> Dict:
    """
    Reset every group player and replay all completed games oldest first.

    Unlinked session players whose name matches a group player (case
    insensitive, trimmed) are linked to that group player along the way.

    Returns:
        Dict with players_reset, players_auto_linked, games_processed,
        skipped_games and players_updated (names)
    """
    logger.info(f"Starting ELO recalculation for group {group_id}")

    await session.execute(
        update(GroupPlayer)
        .where(GroupPlayer.group_id == group_id)
        .values(elo_rating=DEFAULT_ELO, wins=0, losses=0, total_games=0)
        .execution_options(synchronize_session="fetch")
    )
    group_players = await data_service.list_group_players(session, group_id)
    players_by_id = {player.id: player for player in group_players}
    by_name = {player.name.lower().strip(): player.id for player in group_players}

    result = {
        "players_reset": len(group_players),
        "players_auto_linked": 0,
        "games_processed": 0,
        "skipped_games": 0,
        "players_updated": [],
    }

    sessions = await data_service.list_sessions(session, group_id)
    session_ids = [s.id for s in sessions]
    if not session_ids:
        logger.info(f"Group {group_id} has no sessions, recalculation complete")
        return result

    player_to_group: Dict[str, str] = {}
    for player in await data_service.list_session_players(session, session_ids):
        if player.group_player_id:
            player_to_group[player.id] = player.group_player_id
            continue
        matched = by_name.get(player.name.lower().strip())
        if matched:
            player_to_group[player.id] = matched
            await session.execute(
                update(Player).where(Player.id == player.id).values(group_player_id=matched)
            )
            result["players_auto_linked"] += 1
    if result["players_auto_linked"]:
        logger.info(f"Auto-linked {result['players_auto_linked']} session players by name")

    rows = await data_service.list_completed_games(session, session_ids, newest_first=False)
    games, result["skipped_games"] = to_game_records(rows)

    updated = set()
    for game in games:
        team_a_ids = _unique_ids(player_to_group.get(pid) for pid in game.team_a)
        team_b_ids = _unique_ids(player_to_group.get(pid) for pid in game.team_b)
        if not team_a_ids and not team_b_ids:
            continue
        _apply_game(players_by_id, team_a_ids, team_b_ids, game.winning_team)
        result["games_processed"] += 1
        updated.update(team_a_ids)
        updated.update(team_b_ids)

    await session.flush()
    result["players_updated"] = [
        players_by_id[player_id].name for player_id in players_by_id if player_id in updated
    ]
    logger.info(
        f"ELO recalculation for group {group_id} complete: {result['games_processed']} games, "
        f"{len(result['players_updated'])} players updated"
    )
    return result
