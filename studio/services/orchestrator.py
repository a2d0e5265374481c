"""
Job Orchestrator
Expands batch submissions into units of work, runs them with bounded
concurrency and keeps the job row's counters current.

Job lifecycle:
    submit_job  -> row created PROCESSING with the unit snapshot, dispatched
    process_job -> units run through the executor; counters updated per unit
                -> FAILED if every unit failed, else COMPLETED
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import case, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from studio.core.config import settings
from studio.models import (
    GeneratedArtifact,
    GenerationJob,
    JobState,
    Product,
    PromptOverride,
    ReferenceAsset,
    RenderingIntent,
)
from studio.schemas.generate import SingleGenerationRequest
from studio.schemas.job import JobAcceptance, JobSubmission
from studio.schemas.unit import UnitOfWork, UnitResult, VariableSnapshot
from studio.services.errors import IntentNotFoundError, JobNotFoundError, ProductNotFoundError
from studio.services.executor import UnitOfWorkExecutor
from studio.workers.base import FailureKind, JobProgressError

logger = logging.getLogger(__name__)

HALTED_REASON = "job halted before dispatch"


def best_variant_asset(product: Product, variant: str) -> Optional[ReferenceAsset]:
    """Highest-resolution reference photo of the variant; ties go to the lowest position."""
    matches = [asset for asset in product.reference_assets if asset.variant == variant]
    if not matches:
        return None
    return max(matches, key=lambda asset: (asset.resolution, -(asset.position or 0)))


def build_unit(
    product: Product,
    intent: RenderingIntent,
    override: Optional[str] = None,
    custom_instructions: Optional[str] = None,
    variable_values: Optional[Dict[str, str]] = None,
    actor_id: str = "system",
    **hints,
) -> UnitOfWork:
    """Snapshot product and intent into a unit of work."""
    return UnitOfWork(
        product_id=product.id,
        intent_id=intent.id,
        intent_name=intent.name,
        media_type=intent.media,
        prompt_template=override or intent.prompt_template,
        custom_instructions=custom_instructions,
        variables=[VariableSnapshot.from_model(v) for v in intent.variables],
        variable_values=dict(variable_values or {}),
        product_title=product.title,
        product_category=product.category,
        product_external_id=product.external_id,
        actor_id=actor_id,
        **hints,
    )


def halted_result(unit: UnitOfWork) -> UnitResult:
    return UnitResult(
        ok=False,
        product_id=unit.product_id,
        intent_id=unit.intent_id,
        label=unit.label,
        failure_kind=FailureKind.INTERNAL.value,
        reason=HALTED_REASON,
        step="dispatch",
    )


def load_overrides(db: Session, product_ids: List[str], intent_ids: List[str]) -> Dict[Tuple[str, str], str]:
    if not product_ids or not intent_ids:
        return {}
    rows = (
        db.query(PromptOverride)
        .filter(PromptOverride.product_id.in_(product_ids), PromptOverride.intent_id.in_(intent_ids))
        .all()
    )
    return {(row.product_id, row.intent_id): row.custom_prompt for row in rows}


class JobOrchestrator:
    def __init__(
        self,
        session_factory: sessionmaker,
        executor: UnitOfWorkExecutor,
        max_concurrency: Optional[int] = None,
        dispatch_mode: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.executor = executor
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENT_UNITS
        self.dispatch_mode = dispatch_mode or settings.JOB_DISPATCH_MODE
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------ accept

    async def submit_job(self, submission: JobSubmission, actor_id: Optional[str] = None) -> JobAcceptance:
        """
        Accept a batch job and dispatch it.

        Raises:
            IntentNotFoundError: an intent id does not exist
        """
        job_id, acceptance = self._accept(submission, actor_id or submission.actor_id)
        logger.info(
            f"[Job {job_id}] Accepted: {acceptance.total_units} units, "
            f"{acceptance.skipped_count} products skipped"
        )
        if acceptance.total_units:
            self._dispatch(job_id)
        return acceptance

    def _accept(self, submission: JobSubmission, actor_id: str) -> Tuple[str, JobAcceptance]:
        product_ids = list(dict.fromkeys(submission.product_ids))
        intent_ids = list(dict.fromkeys(submission.intent_ids))

        db = self.session_factory()
        try:
            intents = {i.id: i for i in db.query(RenderingIntent).filter(RenderingIntent.id.in_(intent_ids)).all()}
            for intent_id in intent_ids:
                if intent_id not in intents:
                    raise IntentNotFoundError(intent_id)

            products = {p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()}
            overrides = load_overrides(db, product_ids, intent_ids)

            units: List[UnitOfWork] = []
            skipped = 0
            for product_id in product_ids:
                product = products.get(product_id)
                if product is None:
                    skipped += 1
                    continue

                reference_asset_id = None
                if submission.variant:
                    asset = best_variant_asset(product, submission.variant)
                    if asset is None:
                        skipped += 1
                        continue
                    reference_asset_id = asset.id

                for intent_id in intent_ids:
                    units.append(build_unit(
                        product,
                        intents[intent_id],
                        override=overrides.get((product_id, intent_id)),
                        custom_instructions=submission.custom_instructions,
                        variable_values=submission.variable_values,
                        actor_id=actor_id,
                        reference_asset_id=reference_asset_id,
                    ))

            job_id = f"job_{uuid.uuid4().hex[:12]}"
            now = datetime.utcnow()
            for unit in units:
                unit.job_id = job_id

            job = GenerationJob(
                id=job_id,
                product_ids=product_ids,
                intent_ids=intent_ids,
                options={
                    "variant": submission.variant,
                    "custom_instructions": submission.custom_instructions,
                    "variable_values": submission.variable_values,
                    "units": [unit.model_dump() for unit in units],
                },
                submitted_by=actor_id,
                status=JobState.PROCESSING if units else JobState.COMPLETED,
                total_images=len(units),
                started_at=now,
                completed_at=None if units else now,
            )
            db.add(job)
            db.commit()
        finally:
            db.close()

        return job_id, JobAcceptance(job_id=job_id, total_units=len(units), skipped_count=skipped)

    def _dispatch(self, job_id: str) -> None:
        if self.dispatch_mode == "queue":
            from studio.workers.queue import get_queue_manager
            get_queue_manager().enqueue_batch_job(job_id)
            return

        task = asyncio.create_task(self._run_in_background(job_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_in_background(self, job_id: str) -> None:
        try:
            await self.process_job(job_id)
        except Exception as e:
            logger.exception(f"[Job {job_id}] Processing aborted: {e}")

    async def drain(self) -> None:
        """Wait for every in-process job task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ----------------------------------------------------------- process

    async def process_job(self, job_id: str) -> GenerationJob:
        """
        Run every unit of an accepted job.

        Raises:
            JobNotFoundError: unknown job id
            JobProgressError: job counters could not be written
        """
        job = self.get_job_status(job_id)
        if job.is_terminal:
            logger.info(f"[Job {job_id}] Already {job.status}, nothing to do")
            return job

        units = [UnitOfWork.model_validate(raw) for raw in (job.options or {}).get("units", [])]
        logger.info(f"[Job {job_id}] Processing {len(units)} units (concurrency {self.max_concurrency})")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(unit: UnitOfWork) -> UnitResult:
            async with semaphore:
                if self._is_halted(job_id):
                    result = halted_result(unit)
                else:
                    result = await self.executor.execute(unit)
                self._record_result(job_id, result)
                return result

        outcomes = await asyncio.gather(*(run(unit) for unit in units), return_exceptions=True)

        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            logger.error(f"[Job {job_id}] {len(errors)} units could not be recorded")
            raise errors[0]

        self._finish(job_id)
        job = self.get_job_status(job_id)
        logger.info(
            f"[Job {job_id}] {job.status}: {job.completed_images} completed, "
            f"{job.failed_images} failed of {job.total_images}"
        )
        return job

    def _is_halted(self, job_id: str) -> bool:
        db = self.session_factory()
        try:
            return bool(db.query(GenerationJob.halted).filter(GenerationJob.id == job_id).scalar())
        finally:
            db.close()

    def _record_result(self, job_id: str, result: UnitResult) -> None:
        """One atomic counter update per unit."""
        if result.ok:
            values = {"completed_images": GenerationJob.completed_images + 1}
        else:
            values = {
                "failed_images": GenerationJob.failed_images + 1,
                "error_log": func.coalesce(GenerationJob.error_log + "\n", "") + result.log_entry,
            }
        values["updated_at"] = datetime.utcnow()

        db = self.session_factory()
        try:
            db.execute(update(GenerationJob).where(GenerationJob.id == job_id).values(**values))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise JobProgressError(f"Could not update progress of job {job_id}: {e}")
        finally:
            db.close()

    def _finish(self, job_id: str) -> None:
        now = datetime.utcnow()
        db = self.session_factory()
        try:
            db.execute(
                update(GenerationJob)
                .where(GenerationJob.id == job_id)
                .values(
                    status=case(
                        (
                            (GenerationJob.total_images > 0)
                            & (GenerationJob.failed_images == GenerationJob.total_images),
                            JobState.FAILED,
                        ),
                        else_=JobState.COMPLETED,
                    ),
                    completed_at=now,
                    updated_at=now,
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise JobProgressError(f"Could not finish job {job_id}: {e}")
        finally:
            db.close()

    # ------------------------------------------------------------ observe

    def get_job_status(self, job_id: str) -> GenerationJob:
        db = self.session_factory()
        try:
            job = db.get(GenerationJob, job_id)
        finally:
            db.close()
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, status: Optional[str] = None, limit: int = 20, offset: int = 0) -> Tuple[List[GenerationJob], int]:
        db = self.session_factory()
        try:
            query = db.query(GenerationJob)
            if status:
                query = query.filter(GenerationJob.status == status)
            total = query.count()
            jobs = query.order_by(GenerationJob.created_at.desc()).offset(offset).limit(limit).all()
        finally:
            db.close()
        return jobs, total

    def list_job_artifacts(self, job_id: str) -> List[GeneratedArtifact]:
        self.get_job_status(job_id)
        db = self.session_factory()
        try:
            return (
                db.query(GeneratedArtifact)
                .filter(GeneratedArtifact.job_id == job_id)
                .order_by(GeneratedArtifact.created_at.asc(), GeneratedArtifact.version.asc())
                .all()
            )
        finally:
            db.close()

    def halt_job(self, job_id: str) -> GenerationJob:
        """
        Stop dispatching further units. Units already running finish normally.

        A queue-dispatched job that no worker has started is cancelled on the
        queue and settled here, since no worker will ever finish it.
        """
        db = self.session_factory()
        try:
            updated = db.execute(
                update(GenerationJob)
                .where(GenerationJob.id == job_id)
                .values(halted=True, updated_at=datetime.utcnow())
            ).rowcount
            db.commit()
        finally:
            db.close()
        if not updated:
            raise JobNotFoundError(job_id)
        logger.info(f"[Job {job_id}] Halt requested")

        job = self.get_job_status(job_id)
        if self.dispatch_mode == "queue" and not job.is_terminal:
            from studio.workers.queue import get_queue_manager
            if get_queue_manager().cancel_job(job_id):
                self._settle_cancelled(job)
                job = self.get_job_status(job_id)
        return job

    def _settle_cancelled(self, job: GenerationJob) -> None:
        units = [UnitOfWork.model_validate(raw) for raw in (job.options or {}).get("units", [])]
        for unit in units:
            self._record_result(job.id, halted_result(unit))
        self._finish(job.id)
        logger.info(f"[Job {job.id}] Cancelled before a worker picked it up ({len(units)} units)")

    # ------------------------------------------------------------- single

    async def generate_single(self, request: SingleGenerationRequest, actor_id: Optional[str] = None) -> UnitResult:
        """
        Run one unit outside of any job.

        Raises:
            ProductNotFoundError, IntentNotFoundError
        """
        db = self.session_factory()
        try:
            product = db.get(Product, request.product_id)
            if product is None:
                raise ProductNotFoundError(request.product_id)
            intent = db.get(RenderingIntent, request.intent_id)
            if intent is None:
                raise IntentNotFoundError(request.intent_id)

            overrides = load_overrides(db, [product.id], [intent.id])
            unit = build_unit(
                product,
                intent,
                override=overrides.get((product.id, intent.id)),
                custom_instructions=request.custom_instructions,
                variable_values=request.variable_values,
                actor_id=actor_id or request.actor_id,
                reference_asset_id=request.reference_asset_id,
                base_artifact_id=request.base_artifact_id,
                parent_artifact_id=request.parent_artifact_id,
            )
        finally:
            db.close()

        return await self.executor.execute(unit)


def build_orchestrator(session_factory: Optional[sessionmaker] = None, storage=None) -> JobOrchestrator:
    """Wire the production collaborators: Gemini, Veo, configured storage, database analytics."""
    from studio.core.database import SessionLocal
    from studio.services.analytics import DatabaseAnalyticsSink
    from studio.services.gemini_image import GeminiImageService
    from studio.services.reference_resolver import ReferenceResolver
    from studio.services.storage import StorageService
    from studio.services.veo_video import VeoVideoService
    from google import genai

    session_factory = session_factory or SessionLocal
    storage = storage or StorageService()
    client = genai.Client(api_key=settings.GEMINI_API_KEY)

    executor = UnitOfWorkExecutor(
        session_factory=session_factory,
        resolver=ReferenceResolver(storage),
        generators={
            "image": GeminiImageService(client),
            "video": VeoVideoService(client),
        },
        store=storage,
        sink=DatabaseAnalyticsSink(session_factory),
    )
    return JobOrchestrator(session_factory, executor)


__all__ = [
    "JobOrchestrator",
    "build_orchestrator",
    "build_unit",
    "best_variant_asset",
    "HALTED_REASON",
]
