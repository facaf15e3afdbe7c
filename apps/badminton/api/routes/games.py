"""Game route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.api.routes import limiter
from badminton.database.db import get_db_session
from badminton.models.schemas import CreateGameRequest, GameResponse, UpdateGameRequest
from badminton.services import data_service, game_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/sessions/{session_id}/games")
async def list_games(session_id: str, session: AsyncSession = Depends(get_db_session)):
    """List a session's games in game number order."""
    try:
        if not await data_service.get_session_row(session, session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        return await game_service.list_games(session, session_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error loading games: {str(e)}")


@router.post("/api/sessions/{session_id}/games", response_model=GameResponse)
@limiter.limit("60/minute")
async def create_game(
    request: Request,
    session_id: str,
    payload: CreateGameRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Record a game; a result updates ratings and pairing stats."""
    try:
        if not await data_service.get_session_row(session, session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        return await game_service.create_game(session, session_id, payload.model_dump())
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating game in session {session_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating game: {str(e)}")


@router.put("/api/sessions/{session_id}/games/{game_id}", response_model=GameResponse)
async def update_game(
    session_id: str,
    game_id: str,
    payload: UpdateGameRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Update a game. Fields left out of the body are unchanged; sending
    "winning_team": null clears the result.
    """
    try:
        game = await game_service.update_game(
            session, session_id, game_id, payload.model_dump(exclude_unset=True)
        )
        if not game:
            raise HTTPException(status_code=404, detail="Game not found")
        return game
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating game {game_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating game: {str(e)}")


@router.delete("/api/sessions/{session_id}/games/{game_id}")
async def delete_game(session_id: str, game_id: str, session: AsyncSession = Depends(get_db_session)):
    """Delete a game, reversing its result first."""
    try:
        deleted = await game_service.delete_game(session, session_id, game_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Game not found")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting game {game_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting game: {str(e)}")
