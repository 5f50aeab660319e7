"""Database connection and session management.

Supports two backends:
- PostgreSQL: staging and production (DATABASE_URL or DB_* variables)
- SQLite: local development and tests
"""
import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


def _get_database_url() -> str:
    """
    Determine database URL based on environment.

    Priority:
    1. DATABASE_URL environment variable (explicit override)
    2. DB_HOST / DB_PORT / DB_NAME / DB_USER / DB_PWD / DB_SSL_MODE
    3. Default local PostgreSQL

    Returns:
        Database connection URL string
    """
    explicit_url = os.getenv("DATABASE_URL")
    if explicit_url:
        return explicit_url

    db_host = os.getenv("DB_HOST")
    if db_host:
        query = {}
        if ssl_mode := os.getenv("DB_SSL_MODE"):
            query["sslmode"] = ssl_mode
        url = URL.create(
            "postgresql+psycopg2",
            username=os.getenv("DB_USER"),
            password=os.getenv("DB_PWD"),
            host=db_host,
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "survey_bot"),
            query=query,
        )
        return url.render_as_string(hide_password=False)

    return "postgresql://localhost/survey_bot"


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """Create SQLAlchemy engine for the given or configured database URL.

    SQLite engines skip the connection pool sizing options, which only
    apply to server databases.
    """
    database_url = database_url or _get_database_url()
    sql_echo = os.getenv("SQL_ECHO", "false").lower() == "true"

    if database_url.startswith("sqlite"):
        logger.info("Configuring SQLite database connection")
        return create_engine(
            database_url,
            echo=sql_echo,
            connect_args={"check_same_thread": False},
        )

    logger.info("Configuring PostgreSQL database connection")
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=sql_echo,
    )


# Create engine (lazy initialization to allow environment setup)
_engine = None


def get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


# Session factory (lazy initialization)
_session_local = None


def get_session_local() -> sessionmaker:
    """Get or create the session factory."""
    global _session_local
    if _session_local is None:
        _session_local = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_local


def reset_engine() -> None:
    """Drop the cached engine and session factory."""
    global _engine, _session_local
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_local = None


# Base class for models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI routes.
    Yields database session and ensures cleanup.
    """
    session_factory = get_session_local()
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.
    Use in standalone scripts.
    """
    session_factory = get_session_local()
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables in the database."""
    import src.database.models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
