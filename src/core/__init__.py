"""Core infrastructure: database, logging and request context."""

from src.core.database import get_db, get_db_session, init_db
from src.core.logging_config import setup_logging
from src.core.request_context import request_context

__all__ = [
    # Database
    "get_db",
    "get_db_session",
    "init_db",
    # Logging
    "setup_logging",
    "request_context",
]
