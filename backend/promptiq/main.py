"""
FastAPI application entrypoint.

create_app(settings) builds the auth components ONCE from the given
Settings and stores them on app.state:
  • settings             — for routes that issue tokens
  • token_authenticator  — bearer-token resolution
  • rate_limiter         — process-local API-key counters

Lifespan:
  • On startup: verify DB connectivity, start the counter sweeper.
  • On shutdown: stop the sweeper, dispose the engine cleanly.

Routers:
  • /auth   — local accounts
  • /agents — agent + API-key management
  • /embed  — API-key authenticated widget endpoints
  • /admin  — role management
  • /health — shallow liveness probe
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from promptiq.auth.authenticator import TokenAuthenticator
from promptiq.auth.errors import AuthError, auth_error_handler
from promptiq.core.config import Settings, settings
from promptiq.core.database import engine
from promptiq.routers.admin import router as admin_router
from promptiq.routers.agents import router as agents_router
from promptiq.routers.auth import router as auth_router
from promptiq.routers.embed import router as embed_router
from promptiq.services.rate_limiter import FixedWindowRateLimiter

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def _sweep_counters(limiter: FixedWindowRateLimiter, interval: int) -> None:
    """Drop expired rate-limit windows so the counter map stays bounded."""
    while True:
        await asyncio.sleep(interval)
        try:
            limiter.sweep()
        except Exception:
            logger.exception("Rate-limit sweep failed (non-fatal)")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    # Startup — verify DB is reachable
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified ✓")
    except Exception:
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    sweeper = asyncio.create_task(
        _sweep_counters(app.state.rate_limiter, app.state.settings.RATE_LIMIT_SWEEP_SECONDS)
    )

    yield  # ← application runs here

    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper

    # Shutdown — clean up connection pool
    await engine.dispose()
    logger.info("Database engine disposed ✓")


def create_app(app_settings: Settings) -> FastAPI:
    app = FastAPI(
        title=app_settings.APP_NAME,
        version="0.1.0",
        description="PromptIQ API — accounts, agents and API-key access.",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.debug = app_settings.DEBUG
    app.state.token_authenticator = TokenAuthenticator.from_settings(app_settings)
    app.state.rate_limiter = FixedWindowRateLimiter()
    logger.info("Auth configured for %s mode", app_settings.deployment_mode.value)

    app.add_exception_handler(AuthError, auth_error_handler)

    app.include_router(auth_router, prefix="/auth")
    app.include_router(agents_router, prefix="/agents")
    app.include_router(embed_router, prefix="/embed")
    app.include_router(admin_router, prefix="/admin")

    @app.get(
        "/health",
        tags=["System"],
        summary="Liveness probe",
    )
    async def health_check() -> dict[str, str]:
        """Shallow health check — confirms the process is alive."""
        return {"status": "healthy"}

    return app


app = create_app(settings)
