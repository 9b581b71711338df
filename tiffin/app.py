"""FastAPI application factory: entry point for the billing service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tiffin.config import get_settings
from tiffin.errors import AppError
from tiffin.routers import cron, orders, plans, subscription, webhooks
from tiffin.utils import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    # Auto-create tables for SQLite (dev mode); PostgreSQL uses Alembic
    from tiffin.cache import close_cache
    from tiffin.db.session import engine
    from tiffin.models import Base

    settings = get_settings()
    if settings.database_url.startswith("sqlite"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    if settings.stripe_secret_key:
        from tiffin.services.payment_processor import init_stripe
        init_stripe()
    else:
        logger.warning("STRIPE_SECRET_KEY not set; checkout will fail")

    yield

    await close_cache()
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
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "code": exc.code, "details": exc.details},
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # --- Routers ---
    app.include_router(plans.router)
    app.include_router(subscription.router)
    app.include_router(orders.router)
    app.include_router(cron.router)
    app.include_router(webhooks.router)

    return app


app = create_app()
