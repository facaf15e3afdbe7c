"""Group statistics and ELO route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.api.routes import STATS_UNAVAILABLE_DETAIL, no_store
from badminton.database.db import get_db_session
from badminton.models.schemas import EloRecalculationResponse, LeaderboardEntryResponse
from badminton.services import data_service, elo_service, stats_service
from badminton.services.stats_service import StatsAggregationError

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(no_store)])


@router.get("/api/groups/{group_id}/stats", response_model=List[LeaderboardEntryResponse])
async def get_group_leaderboard(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """
    Leaderboard for a group, ranked by stored ELO rating.

    Returns:
        list: Leaderboard entries with W/L, win rate, recent form and trend
    """
    try:
        return await stats_service.get_leaderboard(session, group_id)
    except StatsAggregationError as e:
        logger.error(f"Leaderboard unavailable for group {group_id}: {e}")
        raise HTTPException(status_code=500, detail=STATS_UNAVAILABLE_DETAIL)
    except Exception as e:
        logger.error(f"Error loading leaderboard for group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading leaderboard: {str(e)}")


@router.get("/api/groups/{group_id}/stats/players")
async def get_group_players_stats(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """Games, W/L, points and sessions played for every group player."""
    try:
        return await stats_service.get_group_players_stats(session, group_id)
    except StatsAggregationError as e:
        logger.error(f"Player totals unavailable for group {group_id}: {e}")
        raise HTTPException(status_code=500, detail=STATS_UNAVAILABLE_DETAIL)
    except Exception as e:
        logger.error(f"Error loading player totals for group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading player stats: {str(e)}")


@router.get("/api/groups/{group_id}/players/{group_player_id}/stats")
async def get_player_stats(
    group_id: str,
    group_player_id: str,
    session: AsyncSession = Depends(get_db_session),
):
    """Detailed stats for one group player."""
    try:
        stats = await stats_service.get_player_detailed_stats(session, group_id, group_player_id)
        if stats is None:
            raise HTTPException(status_code=404, detail="Player not found in group")
        return stats
    except HTTPException:
        raise
    except StatsAggregationError as e:
        logger.error(f"Player stats unavailable for {group_player_id}: {e}")
        raise HTTPException(status_code=500, detail=STATS_UNAVAILABLE_DETAIL)
    except Exception as e:
        logger.error(f"Error loading stats for player {group_player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading player stats: {str(e)}")


@router.post("/api/groups/{group_id}/elo/recalculate", response_model=EloRecalculationResponse)
async def recalculate_elo(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """
    Reset every player in the group and replay all completed games in order.

    Returns:
        dict: Counts of players reset and linked, games processed and skipped
    """
    try:
        if not await data_service.get_group(session, group_id):
            raise HTTPException(status_code=404, detail="Group not found")
        return await elo_service.recalculate_group_elo(session, group_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error recalculating ELO for group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error recalculating ELO: {str(e)}")
