"""FastAPI application for the survey bot.

Serves the Telegram webhook, the Mini App endpoints and the admin API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import admin_router, surveys_router, telegram_router
from src.config.settings import get_settings
from src.core.logging_config import setup_logging
from src.core.request_context import request_context

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown events."""
    setup_logging(settings.logging.level, settings.logging.format)
    logger.info(
        "Starting survey bot API",
        extra={"environment": settings.environment, "release": settings.release_version},
    )
    yield
    logger.info("Shutting down survey bot API")


app = FastAPI(
    title="Survey Bot API",
    description="Telegram survey bot: webhook, Mini App and admin endpoints",
    version="0.4.0",
    lifespan=lifespan,
)

if settings.api.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    with request_context(request_id=request.headers.get("X-Request-ID")) as request_id:
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(surveys_router)
app.include_router(admin_router)
app.include_router(telegram_router)


@app.get("/api/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "version": settings.release_version,
    }
