"""FastAPI application factory — entry point for the API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from learngate.config import get_settings
from learngate.errors import SubscriptionError
from learngate.routers import access, subscriptions, webhooks
from learngate.utils import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    # Auto-create tables for SQLite (dev mode); PostgreSQL uses Alembic
    from learngate.db.session import async_session_factory, engine
    from learngate.models import Base
    from learngate.services.plan_service import ensure_default_plans

    settings = get_settings()
    if settings.database_url.startswith("sqlite"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        await ensure_default_plans(db)

    if not settings.razorpay_configured:
        logger.warning("Razorpay keys not set; payment endpoints will answer 503")

    # Shared httpx client for connection pooling
    from learngate.http_client import init_http_client, close_http_client
    await init_http_client()

    yield

    await close_http_client()
    await engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.debug)

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )
    app.state.settings = settings

    # --- Error handlers ---
    @app.exception_handler(SubscriptionError)
    async def subscription_error_handler(request: Request, exc: SubscriptionError):
        if exc.status_code >= 500:
            logger.warning("%s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # --- Routers ---
    app.include_router(subscriptions.router)
    app.include_router(access.router)
    app.include_router(webhooks.router)

    return app


app = create_app()
