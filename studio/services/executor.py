"""
Unit-of-Work Executor
Runs one (product, intent) generation end to end and reports the outcome.

The single path used by batch jobs and single generations alike:
resolve reference -> render prompt -> allocate version + pending record ->
generate -> store -> finalize -> analytics. `execute` never raises; every
failure comes back as a UnitResult and, where a record exists, a REJECTED row.
"""

import asyncio
import logging
import re
import uuid
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from studio.core.config import settings
from studio.models import ArtifactStatus, GeneratedArtifact, MediaType, Product, ProductStatus
from studio.schemas.unit import UnitOfWork, UnitResult
from studio.services.gemini_image import GeneratedMedia
from studio.services.prompt_renderer import RenderedPrompt, render_prompt
from studio.services.reference_resolver import Resolution, ReferenceResolver
from studio.services.storage import StorageLocation, StorageService, location_to_columns
from studio.services.versioning import VersionAllocator
from studio.workers.base import (
    FailureKind,
    GenerationFailure,
    GenerationTimeout,
    StorageFailure,
    UnitFailure,
)

logger = logging.getLogger(__name__)

METRIC_BY_MEDIA = {
    MediaType.IMAGE: "images_generated",
    MediaType.VIDEO: "videos_generated",
}


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug[:40] or "intent"


def artifact_key(unit: UnitOfWork, version: int, extension: str) -> str:
    """generated/<product>/<identifier>_<intent-slug>_v<version>_<suffix>.<ext>"""
    suffix = uuid.uuid4().hex[:8]
    name = f"{unit.label}_{slugify(unit.intent_name or unit.intent_id)}_v{version}_{suffix}.{extension}"
    return f"generated/{unit.product_id}/{name}"


class UnitOfWorkExecutor:
    def __init__(
        self,
        session_factory: sessionmaker,
        resolver: ReferenceResolver,
        generators: Dict[str, object],
        store: StorageService,
        sink=None,
        allocator: Optional[VersionAllocator] = None,
        timeout: Optional[float] = None,
        video_timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.resolver = resolver
        self.generators = generators
        self.store = store
        self.sink = sink
        self.allocator = allocator or VersionAllocator(session_factory)
        # Veo polls for up to VEO_MAX_WAIT_TIME, so videos get their own bound
        self.timeouts = {
            MediaType.IMAGE: timeout if timeout is not None else settings.GENERATION_TIMEOUT_SECONDS,
            MediaType.VIDEO: video_timeout if video_timeout is not None else settings.VIDEO_GENERATION_TIMEOUT_SECONDS,
        }

    async def execute(self, unit: UnitOfWork) -> UnitResult:
        try:
            return await self._execute(unit)
        except Exception as e:
            # Anything that escaped the typed handling below
            logger.exception(f"[Unit {unit.label}/{unit.intent_id}] Internal error: {e}")
            return self._failed(unit, FailureKind.INTERNAL, str(e) or type(e).__name__, "execute")

    async def _execute(self, unit: UnitOfWork) -> UnitResult:
        rendered = render_prompt(
            unit.prompt_template,
            unit.variable_values,
            unit.facts(),
            unit.variable_specs(),
            unit.custom_instructions,
        )
        if rendered.missing:
            logger.warning(
                f"[Unit {unit.label}] Required variables empty: {', '.join(rendered.missing_labels)}"
            )

        artifact: Optional[GeneratedArtifact] = None
        try:
            async with self.resolver.acquire(self.session_factory, unit.product_id, unit.hints()) as reference:
                artifact = self._create_pending(unit, rendered, reference.resolution)
                self._advance_product(unit.product_id)

                media = await self._generate(unit, rendered.text, reference.data)
                location = await self._persist(unit, artifact, media)
                try:
                    self._complete(artifact, media, location)
                except StorageFailure:
                    # Stored bytes without a completed record are unreachable
                    await self.store.delete(location)
                    raise

        except UnitFailure as failure:
            logger.warning(f"[Unit {unit.label}] {failure.step} failed ({failure.kind.value}): {failure}")
            if artifact is None:
                artifact = self._create_rejected(unit, rendered, failure)
                if artifact is not None:
                    self._advance_product(unit.product_id)
            else:
                self._reject(artifact.id, failure.kind, str(failure))
            return self._failed(
                unit,
                failure.kind,
                str(failure),
                failure.step,
                artifact_id=artifact.id if artifact else None,
                version=artifact.version if artifact else None,
            )

        except Exception as e:
            if artifact is not None:
                self._reject(artifact.id, FailureKind.INTERNAL, str(e))
            raise

        await self._emit_metric(unit.media_type)
        logger.info(f"[Unit {unit.label}] Artifact {artifact.id} v{artifact.version} completed")
        return UnitResult(
            ok=True,
            product_id=unit.product_id,
            intent_id=unit.intent_id,
            label=unit.label,
            artifact_id=artifact.id,
            version=artifact.version,
        )

    # ------------------------------------------------------------- records

    def _new_artifact(self, unit: UnitOfWork, rendered: RenderedPrompt, version: int, **fields) -> GeneratedArtifact:
        generator = self.generators.get(unit.media_type)
        return GeneratedArtifact(
            product_id=unit.product_id,
            intent_id=unit.intent_id,
            job_id=unit.job_id,
            version=version,
            media_type=unit.media_type,
            prompt_used=rendered.text,
            ai_model=getattr(generator, "model_name", None),
            generation_params={
                "variables": rendered.values,
                "missing_variables": rendered.missing_labels,
            },
            generated_by=unit.actor_id,
            **fields,
        )

    def _create_pending(self, unit: UnitOfWork, rendered: RenderedPrompt, resolution: Resolution) -> GeneratedArtifact:
        return self.allocator.create_with_next_version(
            unit.product_id,
            unit.intent_id,
            lambda version: self._new_artifact(
                unit,
                rendered,
                version,
                status=ArtifactStatus.GENERATING,
                reference_asset_id=resolution.reference_asset_id,
                parent_artifact_id=resolution.parent_artifact_id,
            ),
        )

    def _create_rejected(self, unit: UnitOfWork, rendered: RenderedPrompt, failure: UnitFailure) -> Optional[GeneratedArtifact]:
        """Audit row for a unit that failed before its pending record existed."""
        try:
            return self.allocator.create_with_next_version(
                unit.product_id,
                unit.intent_id,
                lambda version: self._new_artifact(
                    unit,
                    rendered,
                    version,
                    status=ArtifactStatus.REJECTED,
                    parent_artifact_id=unit.parent_artifact_id,
                    failure_kind=failure.kind.value,
                    failure_reason=str(failure),
                    completed_at=datetime.utcnow(),
                ),
            )
        except Exception as e:
            logger.error(f"[Unit {unit.label}] Could not record rejected artifact: {e}")
            return None

    def _reject(self, artifact_id: str, kind: FailureKind, reason: str) -> None:
        db = self.session_factory()
        try:
            db.execute(
                update(GeneratedArtifact)
                .where(GeneratedArtifact.id == artifact_id)
                .values(
                    status=ArtifactStatus.REJECTED,
                    failure_kind=kind.value,
                    failure_reason=reason,
                    completed_at=datetime.utcnow(),
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[Artifact {artifact_id}] Could not mark rejected: {e}")
        finally:
            db.close()

    def _advance_product(self, product_id: str) -> None:
        """NOT_STARTED -> IN_PROGRESS once the product has an artifact; never regresses."""
        db = self.session_factory()
        try:
            db.execute(
                update(Product)
                .where(Product.id == product_id, Product.status == ProductStatus.NOT_STARTED)
                .values(status=ProductStatus.IN_PROGRESS, updated_at=datetime.utcnow())
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[Product {product_id}] Could not advance status: {e}")
        finally:
            db.close()

    # ---------------------------------------------------------- generation

    async def _generate(self, unit: UnitOfWork, prompt: str, reference_bytes: Optional[bytes]) -> GeneratedMedia:
        generator = self.generators.get(unit.media_type)
        if generator is None:
            raise GenerationFailure(f"No generator configured for {unit.media_type}")

        timeout = self.timeouts.get(unit.media_type, self.timeouts[MediaType.IMAGE])
        try:
            media = await asyncio.wait_for(generator.generate(prompt, reference_bytes), timeout=timeout)
        except asyncio.TimeoutError:
            raise GenerationTimeout(f"Generation timed out after {timeout:g}s")
        except UnitFailure:
            raise
        except Exception as e:
            raise GenerationFailure(f"Generation failed: {e}")

        if media is None or not media.data:
            raise GenerationFailure("Generator returned no media")
        return media

    async def _persist(self, unit: UnitOfWork, artifact: GeneratedArtifact, media: GeneratedMedia) -> StorageLocation:
        key = artifact_key(unit, artifact.version, media.extension)
        try:
            return await self.store.save(media.data, key, media.mime_type)
        except Exception as e:
            raise StorageFailure(f"Could not store artifact: {e}")

    def _complete(self, artifact: GeneratedArtifact, media: GeneratedMedia, location: StorageLocation) -> None:
        storage_kind, storage_uri = location_to_columns(location)
        db = self.session_factory()
        try:
            db.execute(
                update(GeneratedArtifact)
                .where(GeneratedArtifact.id == artifact.id)
                .values(
                    status=ArtifactStatus.COMPLETED,
                    storage_kind=storage_kind,
                    storage_uri=storage_uri,
                    mime_type=media.mime_type,
                    width=media.width,
                    height=media.height,
                    file_size=len(media.data),
                    ai_model=media.model or artifact.ai_model,
                    completed_at=datetime.utcnow(),
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageFailure(f"Could not record stored artifact: {e}")
        finally:
            db.close()

    async def _emit_metric(self, media_type: str) -> None:
        if self.sink is None:
            return
        try:
            await self.sink.increment_daily(METRIC_BY_MEDIA.get(media_type, "images_generated"), 1)
        except Exception as e:
            logger.warning(f"[Analytics] Could not record generation: {e}")

    @staticmethod
    def _failed(unit: UnitOfWork, kind: FailureKind, reason: str, step: str, artifact_id=None, version=None) -> UnitResult:
        return UnitResult(
            ok=False,
            product_id=unit.product_id,
            intent_id=unit.intent_id,
            label=unit.label,
            artifact_id=artifact_id,
            version=version,
            failure_kind=kind.value,
            reason=reason,
            step=step,
        )


__all__ = ["UnitOfWorkExecutor", "artifact_key", "slugify"]
