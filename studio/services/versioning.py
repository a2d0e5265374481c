"""
Version Allocator
Assigns per-(product, intent) artifact versions: max + 1, starting at 1.

The unique constraint on (product_id, intent_id, version) is the actual guard;
a writer that read a stale max loses the insert, re-reads and tries again.
"""

import logging
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from studio.core.config import settings
from studio.models import GeneratedArtifact
from studio.workers.base import VersionConflictError

logger = logging.getLogger(__name__)


class VersionAllocator:
    def __init__(self, session_factory: sessionmaker, max_attempts: Optional[int] = None):
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.VERSION_ALLOCATION_ATTEMPTS

    @staticmethod
    def current_max(db: Session, product_id: str, intent_id: str) -> int:
        latest = (
            db.query(func.max(GeneratedArtifact.version))
            .filter(
                GeneratedArtifact.product_id == product_id,
                GeneratedArtifact.intent_id == intent_id,
            )
            .scalar()
        )
        return latest or 0

    def create_with_next_version(
        self,
        product_id: str,
        intent_id: str,
        build: Callable[[int], GeneratedArtifact],
    ) -> GeneratedArtifact:
        """
        Insert the record returned by `build(version)` under the next free version.

        Raises:
            VersionConflictError: every attempt collided with a concurrent writer
        """
        for attempt in range(1, self.max_attempts + 1):
            db = self.session_factory()
            try:
                version = self.current_max(db, product_id, intent_id) + 1
                artifact = build(version)
                db.add(artifact)
                db.commit()
                return artifact
            except IntegrityError:
                db.rollback()
                logger.warning(
                    f"[Version] Collision on {product_id}/{intent_id} v{version} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
            finally:
                db.close()

        raise VersionConflictError(
            f"Could not allocate a version for {product_id}/{intent_id} "
            f"after {self.max_attempts} attempts"
        )


__all__ = ["VersionAllocator"]
