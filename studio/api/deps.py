"""
API Dependencies
Common dependencies for FastAPI routes (database sessions, services).
"""

from functools import lru_cache
from typing import Generator

from studio.core.database import SessionLocal
from studio.services.analytics import DatabaseAnalyticsSink
from studio.services.orchestrator import JobOrchestrator, build_orchestrator
from studio.services.storage import StorageService


def get_db() -> Generator:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache()
def get_storage() -> StorageService:
    """Process-wide storage adapter."""
    return StorageService()


@lru_cache()
def get_orchestrator() -> JobOrchestrator:
    """Process-wide orchestrator; in-process job tasks live as long as it does."""
    return build_orchestrator(storage=get_storage())


def get_analytics() -> DatabaseAnalyticsSink:
    return DatabaseAnalyticsSink()
