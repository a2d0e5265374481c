"""
Database Configuration
SQLAlchemy engine and session management.
Supports both SQLite (local dev) and PostgreSQL (production).
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from studio.core.config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str) -> Engine:
    """Create an engine with settings appropriate for the backend."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},  # Needed for SQLite
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    """Session factory; objects stay readable after commit so callers can hand them on."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = build_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = build_session_factory(engine)

# Base class for models
Base = declarative_base()


def init_db(bind: Engine = None):
    """Initialize database tables."""
    from studio import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ready")
