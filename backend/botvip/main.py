"""BOTVIP — FastAPI application entry point."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from botvip.api.v1.telegram import router as telegram_router
from botvip.api.v1.webhooks import router as webhooks_router
from botvip.config import settings
from botvip.errors import UpstreamUnavailable

# Configure root logger so all botvip.* loggers output to stderr.
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    from botvip.database import async_session_factory, create_tables, engine
    from botvip.runtime import build_services
    from botvip.telegram.polling import run_polling

    # Startup
    await create_tables(engine)
    services = build_services(settings, async_session_factory)
    app.state.services = services

    polling_task: asyncio.Task | None = None
    webhook_url = settings.telegram_webhook_url
    try:
        if webhook_url:
            await services.telegram.set_webhook(webhook_url, settings.telegram_webhook_secret)
        else:
            await services.telegram.delete_webhook()
    except UpstreamUnavailable as e:
        logger.error("Could not configure Telegram update delivery: %s", e)
    if not webhook_url:
        polling_task = asyncio.create_task(
            run_polling(services.telegram, services.handlers), name="telegram-polling"
        )

    yield

    # Shutdown — stop polling, cancel follow-ups, close clients and engine
    if polling_task is not None:
        polling_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await polling_task
    await services.close()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Telegram VIP subscription bot backed by Stripe.",
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)

# Routers
app.include_router(webhooks_router)
app.include_router(telegram_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "Bot ativo e rodando!",
    }
