"""API routes."""

from src.api.routes.admin import router as admin_router
from src.api.routes.surveys import router as surveys_router
from src.api.routes.telegram import router as telegram_router

__all__ = [
    "admin_router",
    "surveys_router",
    "telegram_router",
]
