"""
Per-group cooldown for pairing stats recalculation.

A group may rebuild its pairing stats at most once per cooldown window. The
window is tracked in Redis (SET NX EX) when REDIS_URL is configured, so it
holds across instances; otherwise in a process-local dict that does not
survive restarts.
"""

import logging
import math
import time
from typing import Dict, Optional

from fastapi import HTTPException

from badminton.services import redis_service
from badminton.utils.constants import RECALCULATION_COOLDOWN_SECONDS

logger = logging.getLogger(__name__)

# In-memory storage: group_id -> timestamp of last recalculation
_recalculation_timestamps: Dict[str, float] = {}


def reset_recalculation_storage():
    """Reset the in-memory cooldown storage. Useful for testing."""
    _recalculation_timestamps.clear()


def get_recalculation_key(group_id: str) -> str:
    return f"pairing_recalc:{group_id}"


def _cooldown_exception(remaining_seconds: float) -> HTTPException:
    minutes = max(1, math.ceil(remaining_seconds / 60))
    return HTTPException(
        status_code=429,
        detail=f"Rate limited. Please wait {minutes} minute(s) before recalculating again.",
    )


def _check_local(group_id: str, now: float, cooldown: int) -> Optional[float]:
    """Claim the local slot; returns seconds remaining if it is taken."""
    last_run = _recalculation_timestamps.get(group_id)
    if last_run is not None and now - last_run < cooldown:
        return cooldown - (now - last_run)
    _recalculation_timestamps[group_id] = now
    return None


async def check_recalculation_cooldown(
    group_id: str, cooldown_seconds: int = RECALCULATION_COOLDOWN_SECONDS
) -> None:
    """
    Claim the recalculation slot for a group.

    Raises:
        HTTPException: With status code 429 if the group recalculated within
            the cooldown window
    """
    now = time.time()
    key = get_recalculation_key(group_id)

    claimed = await redis_service.redis_set_if_absent(key, str(now), cooldown_seconds)
    if claimed is None:
        remaining = _check_local(group_id, now, cooldown_seconds)
    elif claimed:
        remaining = None
    else:
        remaining = await redis_service.redis_ttl(key) or cooldown_seconds

    if remaining is not None:
        logger.info(f"Pairing recalculation for group {group_id} throttled ({remaining:.0f}s left)")
        raise _cooldown_exception(remaining)


async def clear_recalculation_cooldown(group_id: str) -> None:
    """Release the slot, e.g. after a failed recalculation."""
    _recalculation_timestamps.pop(group_id, None)
    await redis_service.redis_delete(get_recalculation_key(group_id))
