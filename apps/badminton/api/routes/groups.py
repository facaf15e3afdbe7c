"""Group and group player route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.api.routes import limiter
from badminton.database.db import get_db_session
from badminton.models.schemas import (
    AddGroupPlayerRequest,
    CreateGroupRequest,
    GuestResponse,
    PromoteGuestResponse,
)
from badminton.services import data_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/groups")
@limiter.limit("20/minute")
async def create_group(
    request: Request,
    payload: CreateGroupRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a group with an optional initial player pool.

    Returns:
        dict: Group with shareable link and players
    """
    try:
        return await data_service.create_group(session, payload.name, payload.player_names)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating group: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating group: {str(e)}")


@router.get("/api/groups/shareable/{link}")
async def get_group_by_shareable_link(link: str, session: AsyncSession = Depends(get_db_session)):
    """Resolve a shareable link to its group."""
    try:
        group = await data_service.get_group_by_shareable_link(session, link)
        if not group:
            raise HTTPException(status_code=404, detail="Group not found")
        return group
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error loading group: {str(e)}")


@router.get("/api/groups/{group_id}")
async def get_group(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """Get a group by id."""
    try:
        group = await data_service.get_group(session, group_id)
        if not group:
            raise HTTPException(status_code=404, detail="Group not found")
        return group
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error loading group: {str(e)}")


@router.delete("/api/groups/{group_id}")
async def delete_group(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """Delete a group with its sessions, games and stored stats."""
    try:
        deleted = await data_service.delete_group(session, group_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Group not found")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting group: {str(e)}")


@router.get("/api/groups/{group_id}/players")
async def list_group_players(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """List a group's player pool."""
    try:
        if not await data_service.get_group(session, group_id):
            raise HTTPException(status_code=404, detail="Group not found")
        players = await data_service.list_group_players(session, group_id)
        return [data_service.group_player_to_dict(p) for p in players]
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error loading players: {str(e)}")


@router.post("/api/groups/{group_id}/players")
@limiter.limit("30/minute")
async def add_group_player(
    request: Request,
    group_id: str,
    payload: AddGroupPlayerRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Add a player to a group's pool."""
    try:
        if not await data_service.get_group(session, group_id):
            raise HTTPException(status_code=404, detail="Group not found")
        return await data_service.add_group_player(session, group_id, payload.name)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error adding player to group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error adding player: {str(e)}")


@router.delete("/api/groups/{group_id}/players/{group_player_id}")
async def remove_group_player(
    group_id: str, group_player_id: str, session: AsyncSession = Depends(get_db_session)
):
    """
    Remove a player from a group's pool.

    Their session players become guests; game history is kept.
    """
    try:
        removed = await data_service.remove_group_player(session, group_id, group_player_id)
        if not removed:
            raise HTTPException(status_code=404, detail="Player not found in group")
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error removing player {group_player_id} from group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error removing player: {str(e)}")


@router.get("/api/groups/{group_id}/sessions")
async def list_group_sessions(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """List a group's sessions, newest first, with rosters and game counts."""
    try:
        if not await data_service.get_group(session, group_id):
            raise HTTPException(status_code=404, detail="Group not found")
        return await data_service.list_group_sessions(session, group_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error loading sessions: {str(e)}")


@router.get("/api/groups/{group_id}/guests", response_model=List[GuestResponse])
async def list_group_guests(group_id: str, session: AsyncSession = Depends(get_db_session)):
    """Guests from the last 30 days who are not yet group players."""
    try:
        if not await data_service.get_group(session, group_id):
            raise HTTPException(status_code=404, detail="Group not found")
        return await data_service.list_recent_guests(session, group_id)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error loading guests: {str(e)}")


@router.post("/api/groups/{group_id}/guests", response_model=PromoteGuestResponse)
@limiter.limit("30/minute")
async def promote_guest(
    request: Request,
    group_id: str,
    payload: AddGroupPlayerRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Promote a guest to a group player and link their past session players."""
    try:
        if not await data_service.get_group(session, group_id):
            raise HTTPException(status_code=404, detail="Group not found")
        return await data_service.promote_guest(session, group_id, payload.name)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error promoting guest in group {group_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error promoting guest: {str(e)}")
