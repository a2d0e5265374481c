"""
RQ Task Definitions
Functions executed by RQ workers.
"""

import logging
import asyncio
from typing import Any, Dict

logger = logging.getLogger(__name__)


def run_batch_job_task(job_id: str) -> Dict[str, Any]:
    """
    RQ task: process an accepted generation job in the worker process.

    Units are executed with the same executor and concurrency bound as
    in-process dispatch; the job row is the source of truth for progress.
    """
    from studio.services.orchestrator import build_orchestrator

    logger.info(f"[Task] Starting batch job: {job_id}")
    orchestrator = build_orchestrator()
    job = asyncio.run(orchestrator.process_job(job_id))

    logger.info(f"[Task] Batch job {job_id} finished: {job.status}")
    return {
        "job_id": job.id,
        "status": job.status,
        "completed_images": job.completed_images,
        "failed_images": job.failed_images,
        "total_images": job.total_images,
    }


__all__ = ["run_batch_job_task"]
