"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. Health and auth are open; everything else needs
a valid JWT, and the connection tools additionally need an admin.
"""

from fastapi import APIRouter, Depends

from displayhub.api.auth import router as auth_router
from displayhub.api.connections import router as connections_router
from displayhub.api.health import router as health_router
from displayhub.api.locations import router as locations_router
from displayhub.api.spotify import router as spotify_router
from displayhub.api.users import router as users_router
from displayhub.auth.dependencies import get_current_user, require_admin

_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes
api_router.include_router(users_router, tags=["users"], dependencies=_auth)
api_router.include_router(locations_router, tags=["locations"], dependencies=_auth)
api_router.include_router(spotify_router, tags=["spotify"], dependencies=_auth)
api_router.include_router(
    connections_router, tags=["connections"], dependencies=[Depends(require_admin)]
)
