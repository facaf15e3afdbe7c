"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, response helpers) lives here; every
sub-router imports what it needs from this package.
"""

import os

from fastapi import APIRouter, Response
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Shared dependencies
# ---------------------------------------------------------------------------
async def no_store(response: Response):
    """Stats are recomputed per request; never cache them."""
    response.headers["Cache-Control"] = "no-store"


STATS_UNAVAILABLE_DETAIL = "Stats are temporarily unavailable. Please try again."

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from badminton.api.routes.health import router as health_router  # noqa: E402
from badminton.api.routes.groups import router as groups_router  # noqa: E402
from badminton.api.routes.sessions import router as sessions_router  # noqa: E402
from badminton.api.routes.games import router as games_router  # noqa: E402
from badminton.api.routes.stats import router as stats_router  # noqa: E402
from badminton.api.routes.pairings import router as pairings_router  # noqa: E402

router = APIRouter()
router.include_router(health_router)
router.include_router(groups_router)
router.include_router(sessions_router)
router.include_router(games_router)
router.include_router(stats_router)
router.include_router(pairings_router)
