"""Ceylon Smart Citizen auth service: application factory and lifespan."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from citizen_auth.api.auth import router as auth_router
from citizen_auth.api.health import router as health_router
from citizen_auth.core import engine, session_scope, settings, setup_logging
from citizen_auth.core.logging import get_logger
from citizen_auth.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Registers the tables on Base.metadata
from citizen_auth.models import BlacklistedToken, User  # noqa: F401
from citizen_auth.services.revocation import RevocationRegistry

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Surface a background task that died instead of letting it vanish."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


async def purge_expired_blacklist_entries() -> int:
    """Delete blacklist rows whose token has expired anyway."""
    async with session_scope() as db:
        removed = await RevocationRegistry(db).cleanup_expired()
    if removed:
        logger.info(f"Purged {removed} expired blacklist entries")
    return removed


async def _token_blacklist_cleanup_loop() -> None:
    while True:
        await asyncio.sleep(settings.blacklist_cleanup_interval_seconds)
        try:
            await purge_expired_blacklist_entries()
        except Exception:
            logger.exception("Blacklist cleanup run failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging(level=settings.log_level, format_type="dev" if settings.debug else "structured")
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    cleanup_task = asyncio.create_task(
        _token_blacklist_cleanup_loop(), name="token-blacklist-cleanup"
    )
    cleanup_task.add_done_callback(task_done_callback)

    yield

    logger.info(f"Stopping {settings.app_name}")
    cleanup_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await cleanup_task
    await engine.dispose()


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware and routers."""
    app = FastAPI(
        title=settings.app_name,
        description="Citizen registration, login and token lifecycle",
        version=settings.app_version,
        lifespan=lifespan,
        # Interactive docs only in debug mode
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    # Added last so it is outermost: 401 and 500 responses still get CORS headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Accept-Language"],
    )

    app.include_router(health_router)
    app.include_router(auth_router)

    @app.get("/")
    async def root() -> dict[str, object]:
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "endpoints": {
                "health": "/health",
                "register": "/auth/register",
                "login": "/auth/login",
                "refreshToken": "/auth/refresh-token",
                "forgotPassword": "/auth/forgot-password",
                "resetPassword": "/auth/reset-password",
                "profile": "/auth/profile",
                "logout": "/auth/logout",
                "logoutAllSessions": "/auth/logout-all-sessions",
            },
        }

    return app


app = create_app()
