"""
Reference Resolver
Decides which stored image a unit of work uses as visual reference, and
fetches its bytes for the duration of the unit.

Priority (first match wins):
    1. explicit reference asset id
    2. prior generated artifact used as the new base
    3. regeneration parent artifact
    4. the product's first reference asset by position
    5. nothing - text-only generation
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from sqlalchemy.orm import Session

from studio.models import GeneratedArtifact, ReferenceAsset
from studio.services.storage import (
    UNSET,
    Local,
    Remote,
    StorageLocation,
    StorageService,
    location_from_columns,
)
from studio.workers.base import ResolutionError

logger = logging.getLogger(__name__)


class ReferenceSource:
    EXPLICIT = "explicit_asset"
    BASE_ARTIFACT = "base_artifact"
    PARENT_ARTIFACT = "parent_artifact"
    FALLBACK = "first_asset"
    NONE = "none"


@dataclass(frozen=True)
class ReferenceHints:
    reference_asset_id: Optional[str] = None
    base_artifact_id: Optional[str] = None
    parent_artifact_id: Optional[str] = None


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolution: where the bytes live plus the lineage to record."""
    source: str
    location: StorageLocation = UNSET
    reference_asset_id: Optional[str] = None
    parent_artifact_id: Optional[str] = None

    @property
    def is_text_only(self) -> bool:
        return self.source == ReferenceSource.NONE


@dataclass
class MaterializedReference:
    resolution: Resolution
    data: Optional[bytes] = None


def _asset_location(asset: ReferenceAsset) -> StorageLocation:
    location = location_from_columns(asset.storage_kind, asset.storage_uri)
    if location is UNSET and asset.source_url:
        return Remote(asset.source_url)
    return location


class ReferenceResolver:
    """Resolves reference hints against the database and materializes the result."""

    def __init__(self, storage: StorageService):
        self.storage = storage

    def resolve(self, db: Session, product_id: str, hints: Optional[ReferenceHints] = None) -> Resolution:
        hints = hints or ReferenceHints()

        if hints.reference_asset_id:
            asset = db.get(ReferenceAsset, hints.reference_asset_id)
            if asset is None or asset.product_id != product_id:
                raise ResolutionError(
                    f"Reference asset {hints.reference_asset_id} not found for product {product_id}"
                )
            return self._from_asset(asset, ReferenceSource.EXPLICIT)

        if hints.base_artifact_id:
            artifact = self._stored_artifact(db, hints.base_artifact_id)
            return Resolution(
                source=ReferenceSource.BASE_ARTIFACT,
                location=location_from_columns(artifact.storage_kind, artifact.storage_uri),
                reference_asset_id=artifact.reference_asset_id,
            )

        if hints.parent_artifact_id:
            artifact = self._stored_artifact(db, hints.parent_artifact_id)
            return Resolution(
                source=ReferenceSource.PARENT_ARTIFACT,
                location=location_from_columns(artifact.storage_kind, artifact.storage_uri),
                reference_asset_id=artifact.reference_asset_id,
                parent_artifact_id=artifact.id,
            )

        asset = (
            db.query(ReferenceAsset)
            .filter(ReferenceAsset.product_id == product_id)
            .order_by(ReferenceAsset.position.asc(), ReferenceAsset.created_at.asc())
            .first()
        )
        if asset is not None:
            return self._from_asset(asset, ReferenceSource.FALLBACK)

        return Resolution(source=ReferenceSource.NONE)

    def _from_asset(self, asset: ReferenceAsset, source: str) -> Resolution:
        location = _asset_location(asset)
        if location is UNSET:
            raise ResolutionError(f"Reference asset {asset.id} has no stored image")
        return Resolution(source=source, location=location, reference_asset_id=asset.id)

    @staticmethod
    def _stored_artifact(db: Session, artifact_id: str) -> GeneratedArtifact:
        artifact = db.get(GeneratedArtifact, artifact_id)
        if artifact is None:
            raise ResolutionError(f"Artifact {artifact_id} not found")
        if location_from_columns(artifact.storage_kind, artifact.storage_uri) is UNSET:
            raise ResolutionError(f"Artifact {artifact_id} has no stored media")
        return artifact

    async def materialize(self, resolution: Resolution) -> MaterializedReference:
        """Fetch the bytes behind a resolution."""
        location = resolution.location
        if isinstance(location, Local):
            try:
                data = await self.storage.get_file(location.path)
            except (OSError, ValueError) as e:
                raise ResolutionError(f"Could not read reference {location.path}: {e}")
            return MaterializedReference(resolution=resolution, data=data)

        if isinstance(location, Remote):
            try:
                data = await self.storage.download_bytes(location.url)
            except Exception as e:
                raise ResolutionError(f"Could not download reference {location.url}: {e}")
            return MaterializedReference(resolution=resolution, data=data)

        return MaterializedReference(resolution=resolution)

    @staticmethod
    def release(reference: MaterializedReference) -> None:
        reference.data = None

    @asynccontextmanager
    async def acquire(
        self,
        session_factory,
        product_id: str,
        hints: Optional[ReferenceHints] = None,
    ) -> AsyncIterator[MaterializedReference]:
        """Resolve and materialize; the fetched bytes are dropped on exit."""
        db = session_factory()
        try:
            resolution = self.resolve(db, product_id, hints)
        finally:
            db.close()

        reference = await self.materialize(resolution)
        logger.debug(f"[Resolver] {product_id}: {resolution.source} {resolution.location}")
        try:
            yield reference
        finally:
            self.release(reference)


__all__ = [
    "ReferenceSource",
    "ReferenceHints",
    "Resolution",
    "MaterializedReference",
    "ReferenceResolver",
]
