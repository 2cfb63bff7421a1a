"""Database connection and session management."""

import logging
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from report_ingest.config import load_settings
from report_ingest.exceptions import ConfigurationError, DatabaseConnectionError

# Load settings
settings = load_settings()
logger = logging.getLogger(__name__)

# Create database engine (lazy initialization)
engine = None
SessionLocal = None

# Base class for all models
Base = declarative_base()


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"future": True}
    return {
        "future": True,
        "echo": settings.get("LOG_LEVEL") == "DEBUG",
        "pool_pre_ping": True,
        "pool_recycle": 1800,  # 30 minutes
        "pool_timeout": 20,
        "pool_size": 5,
        "max_overflow": 10,
        "connect_args": {
            "application_name": "report_ingest",
            "connect_timeout": 10,
            "options": "-c timezone=UTC",
        },
    }


def init_database(database_url: Optional[str] = None):
    """Initialize database connection."""
    global engine, SessionLocal

    if engine is None:
        database_url = database_url or settings.get("DATABASE_URL")
        if not database_url:
            raise ConfigurationError("DATABASE_URL", "not found in environment or config")

        logger.info(f"Using database URL format: {database_url.split('@')[0]}@[HIDDEN]")

        try:
            engine = create_engine(database_url, **_engine_kwargs(database_url))

            # Test the connection immediately
            with engine.connect() as test_conn:
                test_conn.execute(text("SELECT 1"))
                logger.info("Database connection test successful")

        except Exception as engine_error:
            engine = None
            logger.error(f"Database engine creation failed: {engine_error}")
            raise DatabaseConnectionError(database_url.split('@')[-1], str(engine_error)) from engine_error

        SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)

        logger.info("Database engine and session factory created successfully")

    return engine, SessionLocal


def init_schema(bind: Optional[Engine] = None) -> None:
    """Create all tables known to the metadata."""
    # models must be imported so their tables are registered on Base
    from report_ingest.database import models  # noqa: F401

    if bind is None:
        bind, _ = init_database()
    Base.metadata.create_all(bind)


@contextmanager
def session_scope(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    """Transactional scope: commit on success, rollback on error."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """Get the configured session factory."""
    _, factory = init_database()
    return factory
