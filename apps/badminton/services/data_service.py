"""
Data service layer for database operations.

Holds the bulk reads the stats services aggregate over, the writes for the
persisted pairing aggregates, and CRUD for groups, sessions and games.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.database.models import (
    GameMode,
    Game,
    Group,
    GroupPlayer,
    PairingMatchup,
    PartnerStats,
    Player,
    Session,
    WinningTeam,
)
from badminton.models.game_record import parse_team_ids
from badminton.services import round_robin_service
from badminton.utils.constants import (
    DEFAULT_ELO,
    GUEST_LOOKBACK_DAYS,
    MAX_SESSION_PLAYERS,
    MIN_DOUBLES_PLAYERS,
    MIN_SINGLES_PLAYERS,
)
from badminton.utils.datetime_utils import format_session_date, utcnow
from badminton.utils.pair_keys import normalize_pair, normalize_teams

logger = logging.getLogger(__name__)


# ============================================================================
# Serialisation helpers
# ============================================================================

def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def group_player_to_dict(player: GroupPlayer) -> Dict:
    return {
        "id": player.id,
        "group_id": player.group_id,
        "name": player.name,
        "elo_rating": player.elo_rating if player.elo_rating is not None else DEFAULT_ELO,
        "wins": player.wins or 0,
        "losses": player.losses or 0,
        "total_games": player.total_games or 0,
    }


def session_player_to_dict(player: Player) -> Dict:
    return {
        "id": player.id,
        "session_id": player.session_id,
        "name": player.name,
        "group_player_id": player.group_player_id,
    }


def game_to_dict(game: Game) -> Dict:
    return {
        "id": game.id,
        "session_id": game.session_id,
        "game_number": game.game_number,
        "team_a": list(parse_team_ids(game.team_a)),
        "team_b": list(parse_team_ids(game.team_b)),
        "winning_team": game.winning_team,
        "team_a_score": game.team_a_score,
        "team_b_score": game.team_b_score,
        "created_at": _isoformat(game.created_at),
        "updated_at": _isoformat(game.updated_at),
    }


def _generate_shareable_link() -> str:
    return secrets.token_urlsafe(12)


# ============================================================================
# Bulk reads used by the aggregation services
# ============================================================================

async def list_group_players(session: AsyncSession, group_id: str) -> List[GroupPlayer]:
    """All group players in insertion order."""
    result = await session.execute(
        select(GroupPlayer)
        .where(GroupPlayer.group_id == group_id)
        .order_by(GroupPlayer.created_at.asc(), GroupPlayer.id.asc())
    )
    return list(result.scalars().all())


async def list_sessions(session: AsyncSession, group_id: str) -> List[Session]:
    result = await session.execute(
        select(Session).where(Session.group_id == group_id).order_by(Session.date.asc())
    )
    return list(result.scalars().all())


async def list_session_players(session: AsyncSession, session_ids: Sequence[str]) -> List[Player]:
    """Session players for the given sessions, in roster order."""
    if not session_ids:
        return []
    result = await session.execute(
        select(Player)
        .where(Player.session_id.in_(session_ids))
        .order_by(Player.created_at.asc(), Player.id.asc())
    )
    return list(result.scalars().all())


async def list_completed_games(
    session: AsyncSession,
    session_ids: Sequence[str],
    newest_first: bool = True,
) -> List[Game]:
    """Played games (winning_team set), newest first by creation time by default."""
    if not session_ids:
        return []
    if newest_first:
        order = (Game.created_at.desc(), Game.game_number.desc())
    else:
        order = (Game.created_at.asc(), Game.game_number.asc())
    result = await session.execute(
        select(Game)
        .where(and_(Game.session_id.in_(session_ids), Game.winning_team.is_not(None)))
        .order_by(*order)
    )
    return list(result.scalars().all())


async def list_all_games(session: AsyncSession, session_ids: Sequence[str]) -> List[Game]:
    """All games, including unplayed scheduled ones."""
    if not session_ids:
        return []
    result = await session.execute(
        select(Game)
        .where(Game.session_id.in_(session_ids))
        .order_by(Game.session_id.asc(), Game.game_number.asc())
    )
    return list(result.scalars().all())


# ============================================================================
# Persisted pairing aggregates
# ============================================================================

async def clear_partner_stats(session: AsyncSession, group_id: str) -> None:
    await session.execute(delete(PartnerStats).where(PartnerStats.group_id == group_id))


async def clear_pairing_matchups(session: AsyncSession, group_id: str) -> None:
    await session.execute(delete(PairingMatchup).where(PairingMatchup.group_id == group_id))


async def get_partner_stats(
    session: AsyncSession, group_id: str, player1_id: str, player2_id: str
) -> Optional[PartnerStats]:
    first, second = normalize_pair(player1_id, player2_id)
    result = await session.execute(
        select(PartnerStats).where(
            and_(
                PartnerStats.group_id == group_id,
                PartnerStats.player1_id == first,
                PartnerStats.player2_id == second,
            )
        )
    )
    return result.scalar_one_or_none()


async def list_partner_stats(session: AsyncSession, group_id: str) -> List[PartnerStats]:
    result = await session.execute(
        select(PartnerStats).where(PartnerStats.group_id == group_id)
    )
    return list(result.scalars().all())


async def upsert_partner_stats(
    session: AsyncSession,
    group_id: str,
    pair: Tuple[str, str],
    wins: int,
    losses: int,
    total_games: int,
    **extra,
) -> PartnerStats:
    """
    Insert or overwrite the partner row for an unordered pair.

    The pair is normalised so player1_id < player2_id. Extra keyword arguments
    (elo_rating, current_streak, best_win_streak, points_for, points_against)
    are written as-is.
    """
    first, second = normalize_pair(*pair)
    row = await get_partner_stats(session, group_id, first, second)
    if row is None:
        row = PartnerStats(group_id=group_id, player1_id=first, player2_id=second)
        session.add(row)
    row.wins = wins
    row.losses = losses
    row.total_games = total_games
    for key, value in extra.items():
        setattr(row, key, value)
    await session.flush()
    return row


async def get_pairing_matchup(
    session: AsyncSession,
    group_id: str,
    team1: Sequence[str],
    team2: Sequence[str],
) -> Optional[PairingMatchup]:
    first, second, _ = normalize_teams(team1, team2)
    result = await session.execute(
        select(PairingMatchup).where(
            and_(
                PairingMatchup.group_id == group_id,
                PairingMatchup.team1_player1_id == first[0],
                PairingMatchup.team1_player2_id == first[1],
                PairingMatchup.team2_player1_id == second[0],
                PairingMatchup.team2_player2_id == second[1],
            )
        )
    )
    return result.scalar_one_or_none()


async def upsert_pairing_matchup(
    session: AsyncSession,
    group_id: str,
    team1: Sequence[str],
    team2: Sequence[str],
    team1_wins: int,
    team1_losses: int,
    total_games: int,
) -> PairingMatchup:
    """
    Insert or overwrite a matchup row.

    team1/team2 must already be in canonical order (see normalize_teams);
    counts are from team1's perspective.
    """
    first, second, swapped = normalize_teams(team1, team2)
    if swapped:
        raise ValueError("Teams must be passed in canonical order")
    row = await get_pairing_matchup(session, group_id, first, second)
    if row is None:
        row = PairingMatchup(
            group_id=group_id,
            team1_player1_id=first[0],
            team1_player2_id=first[1],
            team2_player1_id=second[0],
            team2_player2_id=second[1],
        )
        session.add(row)
    row.team1_wins = team1_wins
    row.team1_losses = team1_losses
    row.total_games = total_games
    await session.flush()
    return row


async def list_pairing_matchups(
    session: AsyncSession,
    group_id: str,
    pair: Optional[Tuple[str, str]] = None,
) -> List[PairingMatchup]:
    """
    Matchup rows for a group, optionally only those involving one pairing
    (as either team1 or team2).
    """
    query = select(PairingMatchup).where(PairingMatchup.group_id == group_id)
    if pair is not None:
        first, second = normalize_pair(*pair)
        query = query.where(
            or_(
                and_(
                    PairingMatchup.team1_player1_id == first,
                    PairingMatchup.team1_player2_id == second,
                ),
                and_(
                    PairingMatchup.team2_player1_id == first,
                    PairingMatchup.team2_player2_id == second,
                ),
            )
        )
    result = await session.execute(query)
    return list(result.scalars().all())


# ============================================================================
# Groups
# ============================================================================

async def create_group(
    session: AsyncSession, name: str, player_names: Iterable[str] = ()
) -> Dict:
    """
    Create a group with an optional initial player pool.

    Returns:
        Dict with group info and its players
    """
    group = Group(name=name.strip(), shareable_link=_generate_shareable_link())
    session.add(group)
    await session.flush()

    players = []
    for player_name in player_names:
        player = GroupPlayer(group_id=group.id, name=player_name.strip(), elo_rating=DEFAULT_ELO)
        session.add(player)
        players.append(player)
    await session.flush()

    logger.info(f"Created group {group.id} with {len(players)} players")
    return {
        "id": group.id,
        "name": group.name,
        "shareable_link": group.shareable_link,
        "players": [group_player_to_dict(p) for p in players],
    }


async def get_group(session: AsyncSession, group_id: str) -> Optional[Dict]:
    group = await session.get(Group, group_id)
    if not group:
        return None
    return {
        "id": group.id,
        "name": group.name,
        "shareable_link": group.shareable_link,
        "created_at": _isoformat(group.created_at),
    }


async def get_group_by_shareable_link(session: AsyncSession, link: str) -> Optional[Dict]:
    result = await session.execute(select(Group).where(Group.shareable_link == link))
    group = result.scalar_one_or_none()
    if not group:
        return None
    return await get_group(session, group.id)


async def delete_group(session: AsyncSession, group_id: str) -> bool:
    """
    Delete a group and everything it owns.

    Returns:
        True if deleted, False if the group was not found
    """
    group = await session.get(Group, group_id)
    if not group:
        return False

    session_ids = select(Session.id).where(Session.group_id == group_id)
    await session.execute(delete(Game).where(Game.session_id.in_(session_ids)))
    await session.execute(delete(Player).where(Player.session_id.in_(session_ids)))
    await session.execute(delete(Session).where(Session.group_id == group_id))
    await clear_partner_stats(session, group_id)
    await clear_pairing_matchups(session, group_id)
    await session.execute(delete(GroupPlayer).where(GroupPlayer.group_id == group_id))
    await session.execute(delete(Group).where(Group.id == group_id))
    await session.flush()
    logger.info(f"Deleted group {group_id}")
    return True


async def add_group_player(session: AsyncSession, group_id: str, name: str) -> Dict:
    """
    Add a player to a group's pool.

    Raises:
        ValueError: If a player with the same name (case-insensitive) exists
    """
    normalized = name.strip()
    result = await session.execute(
        select(GroupPlayer).where(
            and_(
                GroupPlayer.group_id == group_id,
                func.lower(GroupPlayer.name) == normalized.lower(),
            )
        )
    )
    if result.scalar_one_or_none():
        raise ValueError(f"Player '{normalized}' already exists in this group")

    player = GroupPlayer(group_id=group_id, name=normalized, elo_rating=DEFAULT_ELO)
    session.add(player)
    await session.flush()
    return group_player_to_dict(player)


async def get_group_player(
    session: AsyncSession, group_id: str, group_player_id: str
) -> Optional[GroupPlayer]:
    result = await session.execute(
        select(GroupPlayer).where(
            and_(GroupPlayer.id == group_player_id, GroupPlayer.group_id == group_id)
        )
    )
    return result.scalar_one_or_none()


async def remove_group_player(session: AsyncSession, group_id: str, group_player_id: str) -> bool:
    """
    Remove a player from a group's pool.

    Session players linked to it become guests, and its partner and matchup
    rows are deleted. Game history is kept.

    Returns:
        True if removed, False if the player is not in the group
    """
    player = await get_group_player(session, group_id, group_player_id)
    if not player:
        return False

    await session.execute(
        update(Player)
        .where(Player.group_player_id == group_player_id)
        .values(group_player_id=None)
        .execution_options(synchronize_session="fetch")
    )
    await session.execute(
        delete(PartnerStats).where(
            and_(
                PartnerStats.group_id == group_id,
                or_(
                    PartnerStats.player1_id == group_player_id,
                    PartnerStats.player2_id == group_player_id,
                ),
            )
        )
    )
    await session.execute(
        delete(PairingMatchup).where(
            and_(
                PairingMatchup.group_id == group_id,
                or_(
                    PairingMatchup.team1_player1_id == group_player_id,
                    PairingMatchup.team1_player2_id == group_player_id,
                    PairingMatchup.team2_player1_id == group_player_id,
                    PairingMatchup.team2_player2_id == group_player_id,
                ),
            )
        )
    )
    await session.execute(delete(GroupPlayer).where(GroupPlayer.id == group_player_id))
    await session.flush()
    logger.info(f"Removed group player {group_player_id} from group {group_id}")
    return True


async def list_group_sessions(session: AsyncSession, group_id: str) -> List[Dict]:
    """
    Sessions in a group, newest first, with rosters and game counts.

    Returns:
        List of session dicts with players, total_games and completed_games
    """
    result = await session.execute(
        select(Session)
        .where(Session.group_id == group_id)
        .order_by(Session.date.desc(), Session.created_at.desc())
    )
    sessions = list(result.scalars().all())
    session_ids = [s.id for s in sessions]

    players_by_session: Dict[str, List[Dict]] = {}
    for player in await list_session_players(session, session_ids):
        players_by_session.setdefault(player.session_id, []).append(session_player_to_dict(player))

    total_games: Dict[str, int] = {}
    completed_games: Dict[str, int] = {}
    for game in await list_all_games(session, session_ids):
        total_games[game.session_id] = total_games.get(game.session_id, 0) + 1
        if game.winning_team is not None:
            completed_games[game.session_id] = completed_games.get(game.session_id, 0) + 1

    return [
        {
            "id": s.id,
            "name": s.name,
            "date": _isoformat(s.date),
            "game_mode": s.game_mode,
            "group_id": s.group_id,
            "round_robin_count": s.round_robin_count,
            "players": players_by_session.get(s.id, []),
            "total_games": total_games.get(s.id, 0),
            "completed_games": completed_games.get(s.id, 0),
        }
        for s in sessions
    ]


async def list_recent_guests(
    session: AsyncSession,
    group_id: str,
    days: int = GUEST_LOOKBACK_DAYS,
) -> List[Dict]:
    """
    Unlinked session players from the group's recent sessions.

    Guests are merged by name (case-insensitive, trimmed), and names that
    already belong to a group player are left out. Most recently seen first.
    """
    cutoff = utcnow() - timedelta(days=days)
    result = await session.execute(
        select(Session)
        .where(and_(Session.group_id == group_id, Session.date >= cutoff))
        .order_by(Session.date.desc(), Session.created_at.desc())
    )
    sessions = list(result.scalars().all())
    if not sessions:
        return []
    session_order = {s.id: index for index, s in enumerate(sessions)}
    sessions_by_id = {s.id: s for s in sessions}

    result = await session.execute(
        select(Player)
        .where(and_(Player.session_id.in_(list(session_order)), Player.group_player_id.is_(None)))
        .order_by(Player.created_at.asc(), Player.id.asc())
    )
    players = sorted(result.scalars().all(), key=lambda p: session_order[p.session_id])

    existing = {p.name.lower().strip() for p in await list_group_players(session, group_id)}
    guests: Dict[str, Dict] = {}
    for player in players:
        key = player.name.lower().strip()
        if key in existing:
            continue
        if key in guests:
            guests[key]["session_count"] += 1
            continue
        last_session = sessions_by_id[player.session_id]
        guests[key] = {
            "name": player.name.strip(),
            "session_count": 1,
            "last_session_id": last_session.id,
            "last_session_name": last_session.name,
            "last_session_date": _isoformat(last_session.date),
        }
    return list(guests.values())


async def promote_guest(session: AsyncSession, group_id: str, name: str) -> Dict:
    """
    Add a guest to the group's pool and link their past session players.

    Ratings and pairing rows are not replayed; recalculate the group to
    fold the linked games in.

    Raises:
        ValueError: If a player with the same name already exists
    """
    player = await add_group_player(session, group_id, name)
    key = player["name"].lower()

    result = await session.execute(
        select(Player)
        .join(Session, Player.session_id == Session.id)
        .where(and_(Session.group_id == group_id, Player.group_player_id.is_(None)))
    )
    matching = [p.id for p in result.scalars().all() if p.name.lower().strip() == key]
    if matching:
        await session.execute(
            update(Player)
            .where(Player.id.in_(matching))
            .values(group_player_id=player["id"])
            .execution_options(synchronize_session="fetch")
        )
        await session.flush()

    logger.info(f"Promoted guest '{player['name']}' in group {group_id}, linked {len(matching)} players")
    return {"player": player, "linked_players": len(matching)}


# ============================================================================
# Sessions
# ============================================================================

def _validate_roster_size(game_mode: str, player_count: int) -> None:
    min_players = MIN_SINGLES_PLAYERS if game_mode == GameMode.SINGLES.value else MIN_DOUBLES_PLAYERS
    if player_count < min_players:
        raise ValueError(f"{game_mode.capitalize()} sessions need at least {min_players} players")
    if player_count > MAX_SESSION_PLAYERS:
        raise ValueError(f"Sessions support at most {MAX_SESSION_PLAYERS} players")


async def create_session(
    session: AsyncSession,
    players: Sequence[Dict],
    game_mode: str = GameMode.DOUBLES.value,
    group_id: Optional[str] = None,
    name: Optional[str] = None,
    date: Optional[datetime] = None,
    round_robin: bool = False,
    round_robin_count: Optional[int] = None,
) -> Dict:
    """
    Create a session with its roster and, optionally, a pre-generated round robin.

    Args:
        players: List of {"name": str, "group_player_id": Optional[str]}
        game_mode: "doubles" or "singles"
        group_id: Optional group the session belongs to
        round_robin: Pre-generate unplayed round robin games
        round_robin_count: Optional cap on the number of round robin games

    Returns:
        Dict with session info, players and games

    Raises:
        ValueError: If the roster is invalid or linked players are not in the group
    """
    if game_mode not in (GameMode.DOUBLES.value, GameMode.SINGLES.value):
        raise ValueError(f"Unknown game mode: {game_mode}")
    _validate_roster_size(game_mode, len(players))

    if group_id is not None and not await session.get(Group, group_id):
        raise ValueError(f"Group {group_id} not found")

    linked_ids = [p.get("group_player_id") for p in players if p.get("group_player_id")]
    if linked_ids:
        if group_id is None:
            raise ValueError("Players can only be linked to group players in a group session")
        result = await session.execute(
            select(GroupPlayer.id).where(
                and_(GroupPlayer.group_id == group_id, GroupPlayer.id.in_(linked_ids))
            )
        )
        known = set(result.scalars().all())
        unknown = [gp_id for gp_id in linked_ids if gp_id not in known]
        if unknown:
            raise ValueError(f"Group players not in group: {', '.join(unknown)}")
        if len(set(linked_ids)) != len(linked_ids):
            raise ValueError("A group player can only appear once per session")

    session_date = date or utcnow()
    new_session = Session(
        name=name or format_session_date(session_date),
        date=session_date,
        game_mode=game_mode,
        group_id=group_id,
        round_robin_count=round_robin_count if round_robin else None,
    )
    session.add(new_session)
    await session.flush()

    roster = []
    for player_data in players:
        player = Player(
            session_id=new_session.id,
            name=player_data["name"].strip(),
            group_player_id=player_data.get("group_player_id"),
        )
        session.add(player)
        roster.append(player)
    await session.flush()

    games = []
    if round_robin:
        schedule = round_robin_service.build_round_robin_schedule(
            [p.id for p in roster], round_robin_count, game_mode
        )
        for scheduled in round_robin_service.to_scheduled_games(schedule.games):
            game = Game(
                id=f"{new_session.id}-game-{scheduled['game_number']}",
                session_id=new_session.id,
                game_number=scheduled["game_number"],
                team_a=scheduled["team_a"],
                team_b=scheduled["team_b"],
                winning_team=None,
            )
            session.add(game)
            games.append(game)
        await session.flush()
        logger.info(
            f"Session {new_session.id}: generated {len(games)} round robin games"
            + (" (fallback schedule)" if schedule.used_fallback else "")
        )

    return {
        "id": new_session.id,
        "name": new_session.name,
        "date": _isoformat(new_session.date),
        "game_mode": new_session.game_mode,
        "group_id": new_session.group_id,
        "round_robin_count": new_session.round_robin_count,
        "players": [session_player_to_dict(p) for p in roster],
        "games": [game_to_dict(g) for g in games],
    }


async def get_session_row(session: AsyncSession, session_id: str) -> Optional[Session]:
    return await session.get(Session, session_id)


async def get_session(session: AsyncSession, session_id: str) -> Optional[Dict]:
    """Session with roster and games, or None."""
    session_obj = await session.get(Session, session_id)
    if not session_obj:
        return None
    players = await list_session_players(session, [session_id])
    games = await list_session_games(session, session_id)
    return {
        "id": session_obj.id,
        "name": session_obj.name,
        "date": _isoformat(session_obj.date),
        "game_mode": session_obj.game_mode,
        "group_id": session_obj.group_id,
        "round_robin_count": session_obj.round_robin_count,
        "players": [session_player_to_dict(p) for p in players],
        "games": [game_to_dict(g) for g in games],
    }


async def delete_session(session: AsyncSession, session_id: str) -> bool:
    session_obj = await session.get(Session, session_id)
    if not session_obj:
        return False
    await session.execute(delete(Game).where(Game.session_id == session_id))
    await session.execute(delete(Player).where(Player.session_id == session_id))
    await session.execute(delete(Session).where(Session.id == session_id))
    await session.flush()
    return True


# ============================================================================
# Games
# ============================================================================

async def list_session_games(session: AsyncSession, session_id: str) -> List[Game]:
    result = await session.execute(
        select(Game).where(Game.session_id == session_id).order_by(Game.game_number.asc())
    )
    return list(result.scalars().all())


async def get_game(session: AsyncSession, session_id: str, game_id: str) -> Optional[Game]:
    result = await session.execute(
        select(Game).where(and_(Game.id == game_id, Game.session_id == session_id))
    )
    return result.scalar_one_or_none()


async def _next_game_number(session: AsyncSession, session_id: str) -> int:
    result = await session.execute(
        select(func.max(Game.game_number)).where(Game.session_id == session_id)
    )
    return (result.scalar() or 0) + 1


def validate_game_fields(
    session_obj: Session,
    roster_ids: Iterable[str],
    team_a: Sequence[str],
    team_b: Sequence[str],
    winning_team: Optional[str],
    team_a_score: Optional[int],
    team_b_score: Optional[int],
) -> None:
    """
    Check a game against its session.

    Raises:
        ValueError: If teams, result or scores are inconsistent
    """
    team_size = 1 if session_obj.game_mode == GameMode.SINGLES.value else 2
    if len(team_a) != team_size or len(team_b) != team_size:
        raise ValueError(f"Each team must have {team_size} player(s) in {session_obj.game_mode}")

    all_ids = list(team_a) + list(team_b)
    if len(set(all_ids)) != len(all_ids):
        raise ValueError("A player cannot appear twice in the same game")

    roster = set(roster_ids)
    missing = [player_id for player_id in all_ids if player_id not in roster]
    if missing:
        raise ValueError(f"Players not in session: {', '.join(missing)}")

    if winning_team is not None and winning_team not in (WinningTeam.A.value, WinningTeam.B.value):
        raise ValueError("winning_team must be 'A', 'B' or null")
    if winning_team is None and (team_a_score is not None or team_b_score is not None):
        raise ValueError("An unplayed game cannot have scores")


async def create_game(
    session: AsyncSession,
    session_id: str,
    team_a: Sequence[str],
    team_b: Sequence[str],
    winning_team: Optional[str] = None,
    team_a_score: Optional[int] = None,
    team_b_score: Optional[int] = None,
    game_number: Optional[int] = None,
) -> Game:
    """
    Insert a game. game_number defaults to the next number in the session.

    Raises:
        ValueError: If the session does not exist or the game is invalid
    """
    session_obj = await session.get(Session, session_id)
    if not session_obj:
        raise ValueError(f"Session {session_id} not found")
    roster = await list_session_players(session, [session_id])
    validate_game_fields(
        session_obj, [p.id for p in roster], team_a, team_b, winning_team, team_a_score, team_b_score
    )

    number = game_number or await _next_game_number(session, session_id)
    game = Game(
        id=f"{session_id}-game-{number}",
        session_id=session_id,
        game_number=number,
        team_a=list(team_a),
        team_b=list(team_b),
        winning_team=winning_team,
        team_a_score=team_a_score,
        team_b_score=team_b_score,
    )
    session.add(game)
    await session.flush()
    return game


async def update_game(session: AsyncSession, game: Game, updates: Dict) -> Game:
    """
    Apply field updates to a game.

    Raises:
        ValueError: If the resulting game is invalid
    """
    session_obj = await session.get(Session, game.session_id)
    roster = await list_session_players(session, [game.session_id])

    team_a = list(updates.get("team_a", parse_team_ids(game.team_a)))
    team_b = list(updates.get("team_b", parse_team_ids(game.team_b)))
    winning_team = updates.get("winning_team", game.winning_team)
    team_a_score = updates.get("team_a_score", game.team_a_score)
    team_b_score = updates.get("team_b_score", game.team_b_score)
    if "winning_team" in updates and winning_team is None:
        # Clearing a result also clears its scores
        team_a_score = updates.get("team_a_score")
        team_b_score = updates.get("team_b_score")

    validate_game_fields(
        session_obj, [p.id for p in roster], team_a, team_b, winning_team, team_a_score, team_b_score
    )

    game.team_a = team_a
    game.team_b = team_b
    game.winning_team = winning_team
    game.team_a_score = team_a_score
    game.team_b_score = team_b_score
    game.updated_at = utcnow()
    await session.flush()
    return game


async def delete_game(session: AsyncSession, game: Game) -> None:
    await session.execute(delete(Game).where(Game.id == game.id))
    await session.flush()
