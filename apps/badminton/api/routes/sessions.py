"""Session and round robin route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.api.routes import limiter
from badminton.database.db import get_db_session
from badminton.models.schemas import (
    CreateSessionRequest,
    RoundRobinPreviewRequest,
    RoundRobinPreviewResponse,
)
from badminton.services import data_service, round_robin_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/sessions")
@limiter.limit("30/minute")
async def create_session(
    request: Request,
    payload: CreateSessionRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a session, optionally pre-generating a round robin.

    Request body:
        {
            "players": [{"name": "Alice", "group_player_id": "..."}],
            "game_mode": "doubles",
            "group_id": "...",           // optional
            "round_robin": true,         // optional
            "round_robin_count": 10      // optional cap
        }

    Returns:
        dict: Session with players and games
    """
    try:
        return await data_service.create_session(
            session,
            [p.model_dump() for p in payload.players],
            game_mode=payload.game_mode,
            group_id=payload.group_id,
            name=payload.name,
            date=payload.date,
            round_robin=payload.round_robin,
            round_robin_count=payload.round_robin_count,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating session: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating session: {str(e)}")


@router.get("/api/sessions/{session_id}")
async def get_session(session_id: str, session: AsyncSession = Depends(get_db_session)):
    """Get a session with its roster and games."""
    try:
        result = await data_service.get_session(session, session_id)
        if not result:
            raise HTTPException(status_code=404, detail="Session not found")
        return result
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error loading session: {str(e)}")


@router.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str, session: AsyncSession = Depends(get_db_session)):
    """
    Delete a session and its games.

    Stored ratings and pairing aggregates are not adjusted; recalculate the
    group afterwards.
    """
    try:
        deleted = await data_service.delete_session(session, session_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Session not found")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting session {session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting session: {str(e)}")


@router.post("/api/round-robin/preview", response_model=RoundRobinPreviewResponse)
async def preview_round_robin(payload: RoundRobinPreviewRequest):
    """Preview the first games of a round robin for a roster."""
    try:
        schedule = round_robin_service.build_round_robin_schedule(
            payload.player_ids, payload.max_games, payload.game_mode
        )
        games = round_robin_service.to_scheduled_games(schedule.games[: payload.limit])
        return {
            "games": games,
            "total_games": len(schedule.games),
            "used_fallback": schedule.used_fallback,
        }
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
