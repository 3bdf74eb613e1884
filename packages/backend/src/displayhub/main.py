"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance with its Runtime (event bus, poll engines, upstream clients)
already attached to app.state. Lifespan only connects Redis at startup
and tears everything down at shutdown: running polls are cancelled
before their HTTP clients are closed.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from displayhub import __version__
from displayhub.api import api_router
from displayhub.config import settings
from displayhub.db.engine import async_session_factory, engine
from displayhub.db.redis_pool import close_redis, init_redis
from displayhub.middleware.rate_limit import RateLimitMiddleware
from displayhub.middleware.request_id import RequestIdMiddleware
from displayhub.middleware.security import SecurityHeadersMiddleware
from displayhub.realtime.websocket import router as ws_router
from displayhub.runtime import build_runtime

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "displayhub.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    try:
        await init_redis()
        logger.info("displayhub.redis_connected", url=settings.redis_url)
    except Exception as e:
        # Redis only backs rate limiting; run without it.
        logger.warning("displayhub.redis_unavailable", error=str(e))

    yield

    logger.info("displayhub.shutdown")
    await app.state.runtime.aclose()
    await close_redis()
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="displayhub",
        description="Backend for smart displays: live music and weather over WebSocket",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = build_runtime(settings, async_session_factory)

    # ── Middleware stack ──────────────────────────────────────
    # Starlette runs middleware in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: displayhub.main:app)
app = create_app()
