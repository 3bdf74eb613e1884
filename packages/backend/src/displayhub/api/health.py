"""Health check endpoint.

Learn: Reports whether the database and Redis answer, plus how many
keys each poll engine is currently running. Redis is optional, so an
unreachable Redis degrades the status but never fails the check.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from displayhub import __version__
from displayhub.db.engine import engine
from displayhub.db.redis_pool import get_redis
from displayhub.runtime import Runtime, get_runtime

router = APIRouter()


@router.get("/health")
async def health_check(runtime: Runtime = Depends(get_runtime)):
    checks = {"server": "ok", "database": "ok", "redis": "ok"}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = f"error: {e}"

    try:
        await get_redis().ping()
    except Exception as e:
        checks["redis"] = f"error: {e}"

    status = "healthy" if all(v == "ok" for v in checks.values()) else "degraded"
    return {
        "status": status,
        "version": __version__,
        **checks,
        "polls": {
            "music": len(runtime.music.active_keys()),
            "weather": len(runtime.weather.active_keys()),
        },
        "connections": len(runtime.connections),
    }
