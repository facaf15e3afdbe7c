"""
Player statistics aggregated across a group's sessions.

Win/loss figures are always recomputed from game history; the counters
stored on group players may be stale and are never read here. Ranking is by
stored ELO rating.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.models.game_record import GameRecord, to_game_records
from badminton.services import data_service
from badminton.utils.constants import (
    CLOSE_GAME_MAX_MARGIN,
    DETAILED_HISTORY_LENGTH,
    LEADERBOARD_FORM_LENGTH,
)

logger = logging.getLogger(__name__)

UNKNOWN_PLAYER = "Unknown"


class StatsAggregationError(Exception):
    """Raised when the data needed for an aggregate could not be loaded."""


# ============================================================================
# Loading
# ============================================================================

@dataclass
class GroupContext:
    """Everything the aggregations need for one group, already normalised."""

    group_players: List[Dict] = field(default_factory=list)
    session_ids: List[str] = field(default_factory=list)
    session_players: List[Dict] = field(default_factory=list)
    games: List[GameRecord] = field(default_factory=list)
    skipped_games: int = 0


async def load_group_context(
    session: AsyncSession,
    group_id: str,
    newest_first: bool = True,
) -> GroupContext:
    """
    Load group players, sessions, session players and completed games.

    Raises:
        StatsAggregationError: If any read fails
    """
    try:
        group_players = await data_service.list_group_players(session, group_id)
        context = GroupContext(
            group_players=[data_service.group_player_to_dict(p) for p in group_players]
        )
        if not context.group_players:
            return context

        sessions = await data_service.list_sessions(session, group_id)
        context.session_ids = [s.id for s in sessions]
        if not context.session_ids:
            return context

        players = await data_service.list_session_players(session, context.session_ids)
        context.session_players = [data_service.session_player_to_dict(p) for p in players]
        rows = await data_service.list_completed_games(
            session, context.session_ids, newest_first=newest_first
        )
    except SQLAlchemyError as e:
        logger.error(f"Error loading stats data for group {group_id}: {e}")
        raise StatsAggregationError(f"Failed to load stats data for group {group_id}") from e

    context.games, context.skipped_games = to_game_records(rows)
    return context


# ============================================================================
# Shared helpers
# ============================================================================

def build_player_to_group(session_players: Sequence[Dict]) -> Dict[str, str]:
    """Session player id -> group player id, linked players only."""
    return {
        p["id"]: p["group_player_id"] for p in session_players if p.get("group_player_id")
    }


def build_name_lookup(group_players: Sequence[Dict], session_players: Sequence[Dict]) -> Dict[str, str]:
    """
    Session player id -> display name.

    Linked players show their group name; guests show their session name.
    """
    group_names = {gp["id"]: gp["name"] for gp in group_players}
    names = {}
    for p in session_players:
        gp_id = p.get("group_player_id")
        names[p["id"]] = group_names.get(gp_id) or p.get("name") or UNKNOWN_PLAYER
    return names


def win_rate(wins: int, games: int) -> float:
    """Win percentage, 0 when no games."""
    return (wins / games) * 100 if games > 0 else 0.0


def classify_trend(recent_form: Sequence[str]) -> str:
    """'up' if wins exceed losses by more than 1, 'down' for the reverse."""
    recent_wins = sum(1 for result in recent_form if result == "W")
    recent_losses = sum(1 for result in recent_form if result == "L")
    if recent_wins > recent_losses + 1:
        return "up"
    if recent_losses > recent_wins + 1:
        return "down"
    return "stable"


def game_margin(game: GameRecord) -> Optional[int]:
    """Absolute score difference, None unless both scores are recorded."""
    if not game.has_scores:
        return None
    return abs(game.team_a_score - game.team_b_score)


def is_close_game(game: GameRecord) -> bool:
    margin = game_margin(game)
    return margin is not None and 1 <= margin <= CLOSE_GAME_MAX_MARGIN


def game_detail(game: GameRecord, names: Dict[str, str], won: bool) -> Dict:
    """A game as shown in recent games and partner/opponent histories."""
    return {
        "game_id": game.id,
        "session_id": game.session_id,
        "team_a_names": [names.get(pid, UNKNOWN_PLAYER) for pid in game.team_a],
        "team_b_names": [names.get(pid, UNKNOWN_PLAYER) for pid in game.team_b],
        "team_a_score": game.team_a_score,
        "team_b_score": game.team_b_score,
        "won": won,
        "date": game.created_at.isoformat() if game.created_at else None,
    }


def rank_by_elo(group_players: Sequence[Dict]) -> List[Dict]:
    """Stable sort by ELO descending; input order breaks ties."""
    return sorted(group_players, key=lambda gp: -gp["elo_rating"])


# ============================================================================
# Leaderboard
# ============================================================================

def build_leaderboard(
    group_players: Sequence[Dict],
    session_players: Sequence[Dict],
    games: Sequence[GameRecord],
) -> List[Dict]:
    """
    Build leaderboard entries from loaded rows.

    Args:
        group_players: Group player dicts (id, name, elo_rating)
        session_players: Session player dicts (id, group_player_id)
        games: Completed games, newest first

    Returns:
        Entries sorted by ELO descending with sequential 1-based ranks
    """
    player_to_group = build_player_to_group(session_players)
    stats = {gp["id"]: {"wins": 0, "losses": 0, "recent_form": []} for gp in group_players}

    for game in games:
        # A group player linked to several session players still counts once per game
        counted: Set[str] = set()
        for team, side in ((game.team_a, "A"), (game.team_b, "B")):
            won = game.winning_team == side
            for player_id in team:
                gp_id = player_to_group.get(player_id)
                if not gp_id or gp_id not in stats or gp_id in counted:
                    continue
                counted.add(gp_id)
                entry = stats[gp_id]
                if won:
                    entry["wins"] += 1
                else:
                    entry["losses"] += 1
                if len(entry["recent_form"]) < LEADERBOARD_FORM_LENGTH:
                    entry["recent_form"].append("W" if won else "L")

    leaderboard = []
    for rank, gp in enumerate(rank_by_elo(group_players), start=1):
        entry = stats[gp["id"]]
        total_games = entry["wins"] + entry["losses"]
        leaderboard.append({
            "group_player_id": gp["id"],
            "player_name": gp["name"],
            "elo_rating": gp["elo_rating"],
            "rank": rank,
            "total_games": total_games,
            "wins": entry["wins"],
            "losses": entry["losses"],
            "win_rate": win_rate(entry["wins"], total_games),
            "recent_form": entry["recent_form"],
            "trend": classify_trend(entry["recent_form"]),
        })
    return leaderboard


async def get_leaderboard(session: AsyncSession, group_id: str) -> List[Dict]:
    """
    Leaderboard for a group, [] if the group has no players.

    Raises:
        StatsAggregationError: If the underlying reads fail
    """
    context = await load_group_context(session, group_id)
    return build_leaderboard(context.group_players, context.session_players, context.games)


# ============================================================================
# Player detailed stats
# ============================================================================

class OpponentRecord:
    """Wins/losses and game history against, or alongside, one group player."""

    def __init__(self, group_player_id: str):
        self.group_player_id = group_player_id
        self.wins = 0
        self.losses = 0
        self.games: List[Dict] = []

    @property
    def games_played(self) -> int:
        return self.wins + self.losses

    @property
    def win_rate(self) -> float:
        return win_rate(self.wins, self.games_played)

    def record(self, won: bool, detail: Dict) -> None:
        if won:
            self.wins += 1
        else:
            self.losses += 1
        self.games.append(detail)

    def to_dict(self, id_key: str, name_key: str, name: str) -> Dict:
        return {
            id_key: self.group_player_id,
            name_key: name,
            "games_played": self.games_played,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": self.win_rate,
            "games": self.games,
        }


def _sorted_records(records: Dict[str, OpponentRecord]) -> List[OpponentRecord]:
    return sorted(records.values(), key=lambda r: (-r.win_rate, -r.games_played))


def empty_player_stats(player: Dict, rank: int, total_players: int) -> Dict:
    """Fully zeroed stats for a player without games."""
    return {
        "group_player_id": player["id"],
        "player_name": player["name"],
        "elo_rating": player["elo_rating"],
        "rank": rank,
        "total_players": total_players,
        "total_games": 0,
        "wins": 0,
        "losses": 0,
        "win_rate": 0.0,
        "points_scored": 0,
        "points_conceded": 0,
        "point_differential": 0,
        "sessions_played": 0,
        "recent_form": [],
        "trend": "stable",
        "current_streak": 0,
        "best_win_streak": 0,
        "partner_stats": [],
        "opponent_stats": [],
        "recent_games": [],
        "unlucky_games": [],
        "unlucky_count": 0,
        "skipped_games": 0,
    }


def build_player_detailed_stats(
    group_player_id: str,
    group_players: Sequence[Dict],
    session_players: Sequence[Dict],
    games: Sequence[GameRecord],
    skipped_games: int = 0,
) -> Optional[Dict]:
    """
    Detailed stats for one group player from loaded rows.

    Args:
        group_player_id: Player to build stats for
        group_players: All group player dicts in the group
        session_players: All session player dicts of the group's sessions
        games: Completed games, newest first

    Returns:
        Stats dict, or None if the player is not in group_players
    """
    ranked = rank_by_elo(group_players)
    position = next((i for i, gp in enumerate(ranked) if gp["id"] == group_player_id), None)
    if position is None:
        return None
    player = ranked[position]
    stats = empty_player_stats(player, position + 1, len(ranked))
    stats["skipped_games"] = skipped_games

    player_to_group = build_player_to_group(session_players)
    group_names = {gp["id"]: gp["name"] for gp in group_players}
    names = build_name_lookup(group_players, session_players)
    stats["sessions_played"] = len({
        p["session_id"] for p in session_players if p.get("group_player_id") == group_player_id
    })

    wins = losses = points_scored = points_conceded = 0
    recent_form: List[str] = []
    recent_games: List[Dict] = []
    unlucky_games: List[Dict] = []
    partners: Dict[str, OpponentRecord] = {}
    opponents: Dict[str, OpponentRecord] = {}
    current_streak = 0
    streak_broken = False
    best_win_streak = 0
    running_wins = 0

    for game in games:
        own_id = next(
            (pid for pid in game.team_a + game.team_b if player_to_group.get(pid) == group_player_id),
            None,
        )
        if own_id is None:
            continue

        on_team_a = own_id in game.team_a
        own_team, other_team = (game.team_a, game.team_b) if on_team_a else (game.team_b, game.team_a)
        won = game.winning_team == ("A" if on_team_a else "B")
        score_a = game.team_a_score or 0
        score_b = game.team_b_score or 0

        if won:
            wins += 1
        else:
            losses += 1
        points_scored += score_a if on_team_a else score_b
        points_conceded += score_b if on_team_a else score_a

        detail = game_detail(game, names, won)
        if not won and is_close_game(game):
            unlucky_games.append({**detail, "margin": game_margin(game)})

        if len(recent_form) < DETAILED_HISTORY_LENGTH:
            recent_form.append("W" if won else "L")
        if len(recent_games) < DETAILED_HISTORY_LENGTH:
            recent_games.append(detail)

        # Only the unbroken run ending at the most recent game counts
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

        for teammate_id in own_team:
            if teammate_id == own_id:
                continue
            partner_gp = player_to_group.get(teammate_id)
            if partner_gp and partner_gp != group_player_id:
                partners.setdefault(partner_gp, OpponentRecord(partner_gp)).record(won, detail)
        for opponent_id in other_team:
            opponent_gp = player_to_group.get(opponent_id)
            if opponent_gp:
                opponents.setdefault(opponent_gp, OpponentRecord(opponent_gp)).record(won, detail)

    total_games = wins + losses
    stats.update({
        "total_games": total_games,
        "wins": wins,
        "losses": losses,
        "win_rate": win_rate(wins, total_games),
        "points_scored": points_scored,
        "points_conceded": points_conceded,
        "point_differential": points_scored - points_conceded,
        "recent_form": recent_form[:LEADERBOARD_FORM_LENGTH],
        "trend": classify_trend(recent_form[:LEADERBOARD_FORM_LENGTH]),
        "current_streak": current_streak,
        "best_win_streak": best_win_streak,
        "partner_stats": [
            r.to_dict("partner_id", "partner_name", group_names.get(r.group_player_id, UNKNOWN_PLAYER))
            for r in _sorted_records(partners)
        ],
        "opponent_stats": [
            r.to_dict("opponent_id", "opponent_name", group_names.get(r.group_player_id, UNKNOWN_PLAYER))
            for r in _sorted_records(opponents)
        ],
        "recent_games": recent_games,
        "unlucky_games": unlucky_games,
        "unlucky_count": len(unlucky_games),
    })
    return stats


async def get_player_detailed_stats(
    session: AsyncSession, group_id: str, group_player_id: str
) -> Optional[Dict]:
    """
    Detailed stats for a group player, None if the player is not in the group.

    Raises:
        StatsAggregationError: If the underlying reads fail
    """
    context = await load_group_context(session, group_id)
    return build_player_detailed_stats(
        group_player_id,
        context.group_players,
        context.session_players,
        context.games,
        context.skipped_games,
    )


# ============================================================================
# Per-player totals
# ============================================================================

def build_group_players_stats(
    group_players: Sequence[Dict],
    session_players: Sequence[Dict],
    games: Sequence[GameRecord],
) -> List[Dict]:
    """Games, W/L, points and sessions per group player, best win rate first."""
    player_to_group = build_player_to_group(session_players)
    sessions_by_player: Dict[str, Set[str]] = {}
    for p in session_players:
        if p.get("group_player_id"):
            sessions_by_player.setdefault(p["group_player_id"], set()).add(p["session_id"])

    totals = {
        gp["id"]: {
            "group_player_id": gp["id"],
            "player_name": gp["name"],
            "total_games": 0,
            "wins": 0,
            "losses": 0,
            "win_rate": 0.0,
            "points_scored": 0,
            "points_conceded": 0,
            "sessions_played": len(sessions_by_player.get(gp["id"], ())),
        }
        for gp in group_players
    }

    for game in games:
        counted: Set[str] = set()
        score_a = game.team_a_score or 0
        score_b = game.team_b_score or 0
        for team, side, scored, conceded in (
            (game.team_a, "A", score_a, score_b),
            (game.team_b, "B", score_b, score_a),
        ):
            for player_id in team:
                gp_id = player_to_group.get(player_id)
                if not gp_id or gp_id not in totals or gp_id in counted:
                    continue
                counted.add(gp_id)
                entry = totals[gp_id]
                entry["total_games"] += 1
                if game.winning_team == side:
                    entry["wins"] += 1
                else:
                    entry["losses"] += 1
                entry["points_scored"] += scored
                entry["points_conceded"] += conceded

    results = list(totals.values())
    for entry in results:
        entry["win_rate"] = win_rate(entry["wins"], entry["total_games"])
    return sorted(results, key=lambda e: (-e["win_rate"], -e["total_games"]))


async def get_group_players_stats(session: AsyncSession, group_id: str) -> List[Dict]:
    """
    Aggregate totals for every group player.

    Raises:
        StatsAggregationError: If the underlying reads fail
    """
    context = await load_group_context(session, group_id)
    return build_group_players_stats(context.group_players, context.session_players, context.games)
