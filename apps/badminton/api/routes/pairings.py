"""Pairing (partner and matchup) route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.api.routes import STATS_UNAVAILABLE_DETAIL, no_store
from badminton.database.db import get_db_session
from badminton.models.schemas import (
    PairingMatchupResponse,
    PairingRecalculationResponse,
    PartnerLeaderboardEntryResponse,
)
from badminton.services import data_service, pairing_stats_service
from badminton.services.rate_limiting_service import (
    check_recalculation_cooldown,
    clear_recalculation_cooldown,
)
from badminton.services.stats_service import StatsAggregationError

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(no_store)])


@router.get(
    "/api/groups/{group_id}/pairings",
    response_model=List[PartnerLeaderboardEntryResponse],
)
async def get_partner_leaderboard(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """Partner pairs, qualified pairs first, then by win rate."""
    try:
        return await pairing_stats_service.get_partner_leaderboard(session, group_id)
    except StatsAggregationError as e:
        logger.error(f"Partner leaderboard unavailable for group {group_id}: {e}")
        raise HTTPException(status_code=500, detail=STATS_UNAVAILABLE_DETAIL)
    except Exception as e:
        logger.error(f"Error loading partner leaderboard for group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading pairings: {str(e)}")


@router.get(
    "/api/groups/{group_id}/pairings/matchups",
    response_model=List[PairingMatchupResponse],
)
async def get_matchup_leaderboard(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """Stored pairing-vs-pairing records."""
    try:
        return await pairing_stats_service.get_pairing_leaderboard(session, group_id)
    except StatsAggregationError as e:
        logger.error(f"Matchup leaderboard unavailable for group {group_id}: {e}")
        raise HTTPException(status_code=500, detail=STATS_UNAVAILABLE_DETAIL)
    except Exception as e:
        logger.error(f"Error loading matchups for group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading matchups: {str(e)}")


@router.post("/api/groups/{group_id}/pairings", response_model=PairingRecalculationResponse)
async def recalculate_pairings(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """
    Rebuild partner stats and pairing matchups from game history.

    Limited to one rebuild per group every 5 minutes.

    Raises:
        HTTPException: 404 if the group does not exist, 429 inside the cooldown
    """
    if not await data_service.get_group(session, group_id):
        raise HTTPException(status_code=404, detail="Group not found")

    await check_recalculation_cooldown(group_id)
    try:
        return await pairing_stats_service.recalculate_pairing_stats(session, group_id)
    except Exception as e:
        await clear_recalculation_cooldown(group_id)
        logger.error(f"Error recalculating pairing stats for group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error recalculating pairings: {str(e)}")


@router.get("/api/groups/{group_id}/pairings/{player1_id}/{player2_id}")
async def get_pairing_detail(
    group_id: str,
    player1_id: str,
    player2_id: str,
    session: AsyncSession = Depends(get_db_session),
):
    """Detailed record for two group players as partners."""
    try:
        stats = await pairing_stats_service.get_pairing_detailed_stats(
            session, group_id, player1_id, player2_id
        )
        if stats is None:
            raise HTTPException(status_code=404, detail="Pairing not found")
        return stats
    except HTTPException:
        raise
    except StatsAggregationError as e:
        logger.error(f"Pairing detail unavailable for {player1_id}/{player2_id}: {e}")
        raise HTTPException(status_code=500, detail=STATS_UNAVAILABLE_DETAIL)
    except Exception as e:
        logger.error(f"Error loading pairing {player1_id}/{player2_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading pairing: {str(e)}")
