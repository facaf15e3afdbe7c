"""
Game service: recording, changing and removing game results.

Every write keeps player ELO/counters and the stored pairing aggregates in
step with the games table. A result that is set is processed, a result that
is cleared is reversed, and a result that flips is reversed then processed.
"""

import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.database.models import Game, GroupPlayer, Player, Session
from badminton.models.game_record import parse_team_ids
from badminton.services import data_service, elo_service, pairing_stats_service
from badminton.services.pairing_stats_service import resolve_team

logger = logging.getLogger(__name__)


async def _group_player_mapping(
    session: AsyncSession,
    group_id: str,
    player_ids: Sequence[str],
    auto_link: bool,
) -> Dict[str, str]:
    """
    Map the given session players to group players.

    With auto_link, unlinked players whose name matches a group player
    (case insensitive, trimmed) are linked to it.
    """
    result = await session.execute(select(Player).where(Player.id.in_(player_ids)))
    players = result.scalars().all()

    by_name = {}
    if auto_link and any(not p.group_player_id for p in players):
        gp_result = await session.execute(
            select(GroupPlayer).where(GroupPlayer.group_id == group_id)
        )
        by_name = {gp.name.lower().strip(): gp.id for gp in gp_result.scalars().all()}

    mapping = {}
    for player in players:
        if player.group_player_id:
            mapping[player.id] = player.group_player_id
            continue
        matched = by_name.get(player.name.lower().strip())
        if matched:
            logger.info(f"Auto-linking player '{player.name}' to group player {matched}")
            await session.execute(
                update(Player).where(Player.id == player.id).values(group_player_id=matched)
            )
            mapping[player.id] = matched
    return mapping


async def apply_result(session: AsyncSession, session_obj: Session, game: Game) -> None:
    """Process a played game's result for ELO and pairing stats."""
    if not game.winning_team or not session_obj.group_id:
        return
    team_a = parse_team_ids(game.team_a)
    team_b = parse_team_ids(game.team_b)
    mapping = await _group_player_mapping(
        session, session_obj.group_id, list(team_a) + list(team_b), auto_link=True
    )
    team_a_ids = resolve_team(team_a, mapping)
    team_b_ids = resolve_team(team_b, mapping)
    if not team_a_ids and not team_b_ids:
        logger.warning(f"No group player mappings for game {game.id}, skipping ELO update")
        return

    await elo_service.process_game_result(session, team_a_ids, team_b_ids, game.winning_team)
    await pairing_stats_service.record_game_result(
        session,
        session_obj.group_id,
        team_a_ids,
        team_b_ids,
        game.winning_team,
        game.team_a_score,
        game.team_b_score,
    )


async def reverse_result(
    session: AsyncSession,
    session_obj: Session,
    team_a: Sequence[str],
    team_b: Sequence[str],
    winning_team: Optional[str],
) -> None:
    """Undo the counters of a result that is being cleared, changed or deleted."""
    if not winning_team or not session_obj.group_id:
        return
    mapping = await _group_player_mapping(
        session, session_obj.group_id, list(team_a) + list(team_b), auto_link=False
    )
    team_a_ids = resolve_team(team_a, mapping)
    team_b_ids = resolve_team(team_b, mapping)
    if not team_a_ids and not team_b_ids:
        return

    await elo_service.reverse_game_result(session, team_a_ids, team_b_ids, winning_team)
    await pairing_stats_service.reverse_game_result(
        session, session_obj.group_id, team_a_ids, team_b_ids, winning_team
    )


async def create_game(session: AsyncSession, session_id: str, game_data: Dict) -> Dict:
    """
    Create a game and apply its result if it has one.

    Raises:
        ValueError: If the session does not exist or the game is invalid
    """
    game = await data_service.create_game(
        session,
        session_id,
        game_data["team_a"],
        game_data["team_b"],
        winning_team=game_data.get("winning_team"),
        team_a_score=game_data.get("team_a_score"),
        team_b_score=game_data.get("team_b_score"),
    )
    session_obj = await data_service.get_session_row(session, session_id)
    await apply_result(session, session_obj, game)
    return data_service.game_to_dict(game)


async def update_game(
    session: AsyncSession, session_id: str, game_id: str, updates: Dict
) -> Optional[Dict]:
    """
    Update a game, keeping stats in step with result changes.

    Returns:
        Updated game dict, or None if the game is not in the session

    Raises:
        ValueError: If there is nothing to update or the result is invalid
    """
    if not updates:
        raise ValueError("No fields to update")
    game = await data_service.get_game(session, session_id, game_id)
    if not game:
        return None
    session_obj = await data_service.get_session_row(session, session_id)

    previous_team_a = parse_team_ids(game.team_a)
    previous_team_b = parse_team_ids(game.team_b)
    previous_winner = game.winning_team

    game = await data_service.update_game(session, game, updates)

    # Score-only edits leave stored aggregates alone until the next rebuild
    result_changed = (
        previous_winner != game.winning_team
        or (previous_team_a, previous_team_b) != (parse_team_ids(game.team_a), parse_team_ids(game.team_b))
    )
    if result_changed:
        await reverse_result(session, session_obj, previous_team_a, previous_team_b, previous_winner)
        await apply_result(session, session_obj, game)
    return data_service.game_to_dict(game)


async def delete_game(session: AsyncSession, session_id: str, game_id: str) -> bool:
    """
    Delete a game, reversing its result first.

    Returns:
        True if deleted, False if the game is not in the session
    """
    game = await data_service.get_game(session, session_id, game_id)
    if not game:
        return False
    session_obj = await data_service.get_session_row(session, session_id)
    await reverse_result(
        session,
        session_obj,
        parse_team_ids(game.team_a),
        parse_team_ids(game.team_b),
        game.winning_team,
    )
    await data_service.delete_game(session, game)
    return True


async def list_games(session: AsyncSession, session_id: str) -> List[Dict]:
    """Games of a session in game number order."""
    games = await data_service.list_session_games(session, session_id)
    return [data_service.game_to_dict(game) for game in games]
