"""
Pairing statistics for doubles: how two group players do as partners, and
how one pairing does against another.

Partner and matchup rows are stored aggregates kept for cheap reads; game
history is the source of truth and recalculate_pairing_stats rebuilds both
tables from it.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.models.game_record import GameRecord
from badminton.services import data_service
from badminton.services.elo_service import calculate_new_rating
from badminton.services.stats_service import (
    UNKNOWN_PLAYER,
    StatsAggregationError,
    build_name_lookup,
    build_player_to_group,
    game_detail,
    game_margin,
    is_close_game,
    load_group_context,
    win_rate,
)
from badminton.utils.constants import (
    DEFAULT_ELO,
    DETAILED_HISTORY_LENGTH,
    LEADERBOARD_FORM_LENGTH,
    PAIRING_MIN_GAMES_QUALIFIED,
)
from badminton.utils.pair_keys import normalize_pair, normalize_teams, pair_key, split_pair_key

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]


def resolve_team(team: Sequence[str], player_to_group: Dict[str, str]) -> List[str]:
    """Distinct group player ids of a team's linked members, in team order."""
    resolved = (player_to_group.get(player_id) for player_id in team)
    return list(dict.fromkeys(gp_id for gp_id in resolved if gp_id))


# ============================================================================
# Accumulators
# ============================================================================

class PartnerRecord:
    """Running record of one pair of partners."""

    def __init__(self, pair: Pair):
        self.pair = pair
        self.wins = 0
        self.losses = 0
        self.elo_rating = DEFAULT_ELO
        self.current_streak = 0
        self.best_win_streak = 0
        self.points_for = 0
        self.points_against = 0

    @property
    def total_games(self) -> int:
        return self.wins + self.losses

    def record(
        self,
        won: bool,
        opponent_elo: Optional[int] = None,
        points_for: Optional[int] = None,
        points_against: Optional[int] = None,
    ) -> None:
        """Apply one game. opponent_elo is the opposing pair's rating before the game."""
        if won:
            self.wins += 1
            self.current_streak = self.current_streak + 1 if self.current_streak >= 0 else 1
        else:
            self.losses += 1
            self.current_streak = self.current_streak - 1 if self.current_streak <= 0 else -1
        self.best_win_streak = max(self.best_win_streak, self.current_streak)
        if opponent_elo is not None:
            self.elo_rating = calculate_new_rating(self.elo_rating, opponent_elo, won)
        self.points_for += points_for or 0
        self.points_against += points_against or 0

    def as_row_values(self) -> Dict:
        return {
            "elo_rating": self.elo_rating,
            "current_streak": self.current_streak,
            "best_win_streak": self.best_win_streak,
            "points_for": self.points_for,
            "points_against": self.points_against,
        }


def build_pairing_aggregates(
    games: Sequence[GameRecord],
    player_to_group: Dict[str, str],
) -> Tuple[Dict[str, PartnerRecord], Dict[Tuple[Pair, Pair], Dict[str, int]], int]:
    """
    Replay completed games into partner and matchup aggregates.

    Only doubles games where each team resolves to two distinct group players
    are counted.

    Args:
        games: Completed games, oldest first
        player_to_group: Session player id -> group player id

    Returns:
        Tuple of (partners by pair key, matchups by (team1, team2), games processed)
    """
    partners: Dict[str, PartnerRecord] = {}
    matchups: Dict[Tuple[Pair, Pair], Dict[str, int]] = {}
    processed = 0

    for game in games:
        if not game.is_doubles:
            continue
        team_a = resolve_team(game.team_a, player_to_group)
        team_b = resolve_team(game.team_b, player_to_group)
        if len(team_a) != 2 or len(team_b) != 2 or set(team_a) & set(team_b):
            continue

        key_a = pair_key(*team_a)
        key_b = pair_key(*team_b)
        record_a = partners.setdefault(key_a, PartnerRecord(normalize_pair(*team_a)))
        record_b = partners.setdefault(key_b, PartnerRecord(normalize_pair(*team_b)))
        elo_a, elo_b = record_a.elo_rating, record_b.elo_rating
        record_a.record(game.winning_team == "A", elo_b, game.team_a_score, game.team_b_score)
        record_b.record(game.winning_team == "B", elo_a, game.team_b_score, game.team_a_score)

        team1, team2, swapped = normalize_teams(team_a, team_b)
        team1_won = game.winning_team == ("B" if swapped else "A")
        matchup = matchups.setdefault((team1, team2), {"team1_wins": 0, "team1_losses": 0})
        if team1_won:
            matchup["team1_wins"] += 1
        else:
            matchup["team1_losses"] += 1
        processed += 1

    return partners, matchups, processed


# ============================================================================
# Full rebuild
# ============================================================================

async def recalculate_pairing_stats(session: AsyncSession, group_id: str) -> Dict:
    """
    Rebuild partner stats and pairing matchups for a group from game history.

    Existing rows for the group are cleared first. Safe to call repeatedly;
    callers are expected to throttle it.

    Returns:
        Dict with partners_updated, matchups_updated, games_processed, skipped_games
    """
    logger.info(f"Recalculating pairing stats for group {group_id}")
    await data_service.clear_partner_stats(session, group_id)
    await data_service.clear_pairing_matchups(session, group_id)

    context = await load_group_context(session, group_id, newest_first=False)
    partners, matchups, processed = build_pairing_aggregates(
        context.games, build_player_to_group(context.session_players)
    )

    for record in partners.values():
        await data_service.upsert_partner_stats(
            session,
            group_id,
            record.pair,
            record.wins,
            record.losses,
            record.total_games,
            **record.as_row_values(),
        )
    for (team1, team2), counts in matchups.items():
        await data_service.upsert_pairing_matchup(
            session,
            group_id,
            team1,
            team2,
            counts["team1_wins"],
            counts["team1_losses"],
            counts["team1_wins"] + counts["team1_losses"],
        )

    result = {
        "partners_updated": len(partners),
        "matchups_updated": len(matchups),
        "games_processed": processed,
        "skipped_games": context.skipped_games,
    }
    logger.info(
        f"Pairing stats for group {group_id}: {processed} games, "
        f"{len(partners)} partner rows, {len(matchups)} matchup rows"
    )
    return result


# ============================================================================
# Incremental updates
# ============================================================================

async def record_game_result(
    session: AsyncSession,
    group_id: str,
    team_a_ids: Sequence[str],
    team_b_ids: Sequence[str],
    winning_team: str,
    team_a_score: Optional[int] = None,
    team_b_score: Optional[int] = None,
) -> bool:
    """
    Fold one new result into the stored partner and matchup rows.

    Args:
        team_a_ids: Distinct group player ids of team A
        team_b_ids: Distinct group player ids of team B

    Returns:
        True if the game was counted (two group players on each side)
    """
    if len(team_a_ids) != 2 or len(team_b_ids) != 2 or set(team_a_ids) & set(team_b_ids):
        return False

    records = {}
    for side, ids in (("A", team_a_ids), ("B", team_b_ids)):
        pair = normalize_pair(*ids)
        row = await data_service.get_partner_stats(session, group_id, *pair)
        record = PartnerRecord(pair)
        if row is not None:
            record.wins = row.wins
            record.losses = row.losses
            record.elo_rating = row.elo_rating if row.elo_rating is not None else DEFAULT_ELO
            record.current_streak = row.current_streak or 0
            record.best_win_streak = row.best_win_streak or 0
            record.points_for = row.points_for or 0
            record.points_against = row.points_against or 0
        records[side] = record

    elo_a, elo_b = records["A"].elo_rating, records["B"].elo_rating
    records["A"].record(winning_team == "A", elo_b, team_a_score, team_b_score)
    records["B"].record(winning_team == "B", elo_a, team_b_score, team_a_score)
    for record in records.values():
        await data_service.upsert_partner_stats(
            session,
            group_id,
            record.pair,
            record.wins,
            record.losses,
            record.total_games,
            **record.as_row_values(),
        )

    team1, team2, swapped = normalize_teams(team_a_ids, team_b_ids)
    team1_won = winning_team == ("B" if swapped else "A")
    existing = await data_service.get_pairing_matchup(session, group_id, team1, team2)
    team1_wins = (existing.team1_wins if existing else 0) + (1 if team1_won else 0)
    team1_losses = (existing.team1_losses if existing else 0) + (0 if team1_won else 1)
    await data_service.upsert_pairing_matchup(
        session, group_id, team1, team2, team1_wins, team1_losses, team1_wins + team1_losses
    )
    return True


async def reverse_game_result(
    session: AsyncSession,
    group_id: str,
    team_a_ids: Sequence[str],
    team_b_ids: Sequence[str],
    was_winning_team: str,
) -> bool:
    """
    Remove one result from the stored partner and matchup counters.

    Pairing ELO and streaks are left as they are; a full rebuild restores them.
    """
    if len(team_a_ids) != 2 or len(team_b_ids) != 2 or set(team_a_ids) & set(team_b_ids):
        return False

    for ids, was_win in ((team_a_ids, was_winning_team == "A"), (team_b_ids, was_winning_team == "B")):
        row = await data_service.get_partner_stats(session, group_id, *ids)
        if row is None:
            continue
        if was_win:
            row.wins = max(0, row.wins - 1)
        else:
            row.losses = max(0, row.losses - 1)
        row.total_games = max(0, row.total_games - 1)

    team1, team2, swapped = normalize_teams(team_a_ids, team_b_ids)
    team1_won = was_winning_team == ("B" if swapped else "A")
    matchup = await data_service.get_pairing_matchup(session, group_id, team1, team2)
    if matchup is not None:
        if team1_won:
            matchup.team1_wins = max(0, matchup.team1_wins - 1)
        else:
            matchup.team1_losses = max(0, matchup.team1_losses - 1)
        matchup.total_games = max(0, matchup.total_games - 1)
    await session.flush()
    return True


# ============================================================================
# Reads
# ============================================================================

async def get_pairing_leaderboard(session: AsyncSession, group_id: str) -> List[Dict]:
    """
    Stored matchup rows with player names, most team1 wins first.

    Raises:
        StatsAggregationError: If the underlying reads fail
    """
    try:
        players = await data_service.list_group_players(session, group_id)
        rows = await data_service.list_pairing_matchups(session, group_id)
    except SQLAlchemyError as e:
        raise StatsAggregationError(f"Failed to load pairing matchups for group {group_id}") from e

    names = {p.id: p.name for p in players}
    entries = []
    for row in rows:
        entries.append({
            "team1_player1_id": row.team1_player1_id,
            "team1_player1_name": names.get(row.team1_player1_id, UNKNOWN_PLAYER),
            "team1_player2_id": row.team1_player2_id,
            "team1_player2_name": names.get(row.team1_player2_id, UNKNOWN_PLAYER),
            "team2_player1_id": row.team2_player1_id,
            "team2_player1_name": names.get(row.team2_player1_id, UNKNOWN_PLAYER),
            "team2_player2_id": row.team2_player2_id,
            "team2_player2_name": names.get(row.team2_player2_id, UNKNOWN_PLAYER),
            "team1_wins": row.team1_wins,
            "team1_losses": row.team1_losses,
            "total_games": row.total_games,
            "team1_win_rate": win_rate(row.team1_wins, row.total_games),
        })
    return sorted(entries, key=lambda e: (-e["team1_wins"], -e["total_games"]))


def build_partner_leaderboard(
    group_players: Sequence[Dict],
    session_players: Sequence[Dict],
    games: Sequence[GameRecord],
    stored_elo: Dict[str, int],
) -> List[Dict]:
    """
    Partner pairs computed from doubles games.

    Each team with two distinct group players counts for its pair, whatever
    the other team looks like. Qualified pairs come first, then win rate,
    then games played.
    """
    player_to_group = build_player_to_group(session_players)
    names = {gp["id"]: gp["name"] for gp in group_players}
    records: Dict[str, Dict[str, int]] = {}

    for game in games:
        if not game.is_doubles:
            continue
        for team, side in ((game.team_a, "A"), (game.team_b, "B")):
            ids = resolve_team(team, player_to_group)
            if len(ids) != 2:
                continue
            record = records.setdefault(pair_key(*ids), {"wins": 0, "losses": 0})
            if game.winning_team == side:
                record["wins"] += 1
            else:
                record["losses"] += 1

    entries = []
    for key, record in records.items():
        player1_id, player2_id = split_pair_key(key)
        games_played = record["wins"] + record["losses"]
        entries.append({
            "player1_id": player1_id,
            "player1_name": names.get(player1_id, UNKNOWN_PLAYER),
            "player2_id": player2_id,
            "player2_name": names.get(player2_id, UNKNOWN_PLAYER),
            "games_played": games_played,
            "wins": record["wins"],
            "losses": record["losses"],
            "win_rate": win_rate(record["wins"], games_played),
            "elo_rating": stored_elo.get(key, DEFAULT_ELO),
            "is_qualified": games_played >= PAIRING_MIN_GAMES_QUALIFIED,
        })
    return sorted(
        entries, key=lambda e: (not e["is_qualified"], -e["win_rate"], -e["games_played"])
    )


async def get_partner_leaderboard(session: AsyncSession, group_id: str) -> List[Dict]:
    """
    Best partner pairs in a group.

    Raises:
        StatsAggregationError: If the underlying reads fail
    """
    context = await load_group_context(session, group_id)
    if not context.group_players:
        return []
    try:
        stored = await data_service.list_partner_stats(session, group_id)
    except SQLAlchemyError as e:
        raise StatsAggregationError(f"Failed to load partner stats for group {group_id}") from e
    stored_elo = {pair_key(row.player1_id, row.player2_id): row.elo_rating for row in stored}
    return build_partner_leaderboard(
        context.group_players, context.session_players, context.games, stored_elo
    )


def build_pairing_detailed_stats(
    player1_id: str,
    player2_id: str,
    group_players: Sequence[Dict],
    session_players: Sequence[Dict],
    games: Sequence[GameRecord],
    partner_row: Optional[Dict] = None,
    matchup_rows: Sequence[Dict] = (),
) -> Optional[Dict]:
    """
    Detailed record of one pairing from loaded rows.

    Args:
        games: Completed games, newest first
        partner_row: Stored partner row values (elo_rating), if any
        matchup_rows: Stored matchup rows involving this pairing

    Returns:
        Detail dict, or None if either id is not a group player or both are equal
    """
    names_by_gp = {gp["id"]: gp["name"] for gp in group_players}
    if player1_id == player2_id or player1_id not in names_by_gp or player2_id not in names_by_gp:
        return None
    first, second = normalize_pair(player1_id, player2_id)
    own_key = pair_key(first, second)

    player_to_group = build_player_to_group(session_players)
    names = build_name_lookup(group_players, session_players)

    # Opponents seeded from stored rows, re-expressed from this pairing's side
    matchups: Dict[str, Dict] = {}
    for row in matchup_rows:
        if (row["team1_player1_id"], row["team1_player2_id"]) == (first, second):
            opponent = (row["team2_player1_id"], row["team2_player2_id"])
            wins, losses = row["team1_wins"], row["team1_losses"]
        else:
            opponent = (row["team1_player1_id"], row["team1_player2_id"])
            wins, losses = row["team1_losses"], row["team1_wins"]
        matchups[pair_key(*opponent)] = {
            "stored": True, "wins": wins, "losses": losses,
            "game_wins": 0, "game_losses": 0,
            "points_for": 0, "points_against": 0, "games": [],
        }

    wins = losses = points_for = points_against = 0
    recent_form: List[str] = []
    recent_games: List[Dict] = []
    unlucky_games: List[Dict] = []
    clutch_games: List[Dict] = []
    current_streak = 0
    streak_broken = False
    best_win_streak = 0
    running_wins = 0

    for game in games:
        team_a = set(resolve_team(game.team_a, player_to_group))
        team_b = set(resolve_team(game.team_b, player_to_group))
        if {first, second} <= team_a:
            side, other = "A", game.team_b
        elif {first, second} <= team_b:
            side, other = "B", game.team_a
        else:
            continue

        won = game.winning_team == side
        own_score = (game.team_a_score if side == "A" else game.team_b_score) or 0
        their_score = (game.team_b_score if side == "A" else game.team_a_score) or 0
        if won:
            wins += 1
        else:
            losses += 1
        points_for += own_score
        points_against += their_score

        detail = game_detail(game, names, won)
        if is_close_game(game):
            (clutch_games if won else unlucky_games).append({**detail, "margin": game_margin(game)})
        if len(recent_form) < DETAILED_HISTORY_LENGTH:
            recent_form.append("W" if won else "L")
        if len(recent_games) < DETAILED_HISTORY_LENGTH:
            recent_games.append(detail)

        if current_streak == 0 and not streak_broken:
            current_streak = 1 if won else -1
        elif not streak_broken:
            if won == (current_streak > 0):
                current_streak += 1 if won else -1
            else:
                streak_broken = True

        if won:
            running_wins += 1
            best_win_streak = max(best_win_streak, running_wins)
        else:
            running_wins = 0

        opponent_ids = resolve_team(other, player_to_group)
        if not game.is_doubles or len(opponent_ids) != 2:
            continue
        entry = matchups.setdefault(pair_key(*opponent_ids), {
            "stored": False, "wins": 0, "losses": 0,
            "game_wins": 0, "game_losses": 0,
            "points_for": 0, "points_against": 0, "games": [],
        })
        if won:
            entry["game_wins"] += 1
        else:
            entry["game_losses"] += 1
        entry["points_for"] += own_score
        entry["points_against"] += their_score
        entry["games"].append(detail)

    matchup_list = []
    for key, entry in matchups.items():
        if key == own_key:
            continue
        opp1, opp2 = split_pair_key(key)
        m_wins = entry["wins"] if entry["stored"] else entry["game_wins"]
        m_losses = entry["losses"] if entry["stored"] else entry["game_losses"]
        games_played = m_wins + m_losses
        matchup_list.append({
            "opponent_player1_id": opp1,
            "opponent_player1_name": names_by_gp.get(opp1, UNKNOWN_PLAYER),
            "opponent_player2_id": opp2,
            "opponent_player2_name": names_by_gp.get(opp2, UNKNOWN_PLAYER),
            "games_played": games_played,
            "wins": m_wins,
            "losses": m_losses,
            "win_rate": win_rate(m_wins, games_played),
            "points_for": entry["points_for"],
            "points_against": entry["points_against"],
            "point_differential": entry["points_for"] - entry["points_against"],
            "games": entry["games"],
        })
    matchup_list.sort(key=lambda m: -m["games_played"])

    games_played = wins + losses
    elo_rating = DEFAULT_ELO
    if partner_row and partner_row.get("elo_rating") is not None:
        elo_rating = partner_row["elo_rating"]

    return {
        "player1_id": first,
        "player1_name": names_by_gp[first],
        "player2_id": second,
        "player2_name": names_by_gp[second],
        "games_played": games_played,
        "wins": wins,
        "losses": losses,
        "win_rate": win_rate(wins, games_played),
        "elo_rating": elo_rating,
        "points_for": points_for,
        "points_against": points_against,
        "point_differential": points_for - points_against,
        "current_streak": current_streak,
        "best_win_streak": best_win_streak,
        "recent_form": recent_form[:LEADERBOARD_FORM_LENGTH],
        "recent_games": recent_games,
        "matchups": matchup_list,
        "unlucky_games": unlucky_games,
        "unlucky_count": len(unlucky_games),
        "clutch_games": clutch_games,
        "clutch_count": len(clutch_games),
    }


def _matchup_row_to_dict(row) -> Dict:
    return {
        "team1_player1_id": row.team1_player1_id,
        "team1_player2_id": row.team1_player2_id,
        "team2_player1_id": row.team2_player1_id,
        "team2_player2_id": row.team2_player2_id,
        "team1_wins": row.team1_wins,
        "team1_losses": row.team1_losses,
        "total_games": row.total_games,
    }


async def get_pairing_detailed_stats(
    session: AsyncSession, group_id: str, player1_id: str, player2_id: str
) -> Optional[Dict]:
    """
    Detailed record and head-to-head breakdown for one pairing.

    Returns:
        Detail dict, or None if either player is not in the group or both ids match

    Raises:
        StatsAggregationError: If the underlying reads fail
    """
    if player1_id == player2_id:
        return None
    context = await load_group_context(session, group_id)
    known = {gp["id"] for gp in context.group_players}
    if player1_id not in known or player2_id not in known:
        return None

    try:
        partner = await data_service.get_partner_stats(session, group_id, player1_id, player2_id)
        rows = await data_service.list_pairing_matchups(
            session, group_id, pair=(player1_id, player2_id)
        )
    except SQLAlchemyError as e:
        raise StatsAggregationError(f"Failed to load pairing rows for group {group_id}") from e

    return build_pairing_detailed_stats(
        player1_id,
        player2_id,
        context.group_players,
        context.session_players,
        context.games,
        partner_row={"elo_rating": partner.elo_rating} if partner else None,
        matchup_rows=[_matchup_row_to_dict(row) for row in rows],
    )
