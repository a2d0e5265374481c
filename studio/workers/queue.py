"""
Queue Management Utilities
RQ queue wrappers used when batch jobs are dispatched out of process.
"""

import logging
from typing import Dict, Optional
from datetime import datetime

from redis.exceptions import RedisError
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus as RQJobStatus

from studio.core.redis import get_redis, Queues
from studio.core.config import settings

logger = logging.getLogger(__name__)


def rq_job_id(job_id: str) -> str:
    return f"batch_{job_id}"


class QueueManager:
    """
    Manages the RQ queue batch jobs are pushed to.

    Batch jobs are not retried by RQ: units already executed must not run
    twice, and the job row carries the progress a retry would need.
    """

    def __init__(self, connection=None):
        self._queues: Dict[str, Queue] = {}
        self._redis = connection

    @property
    def redis(self):
        """Lazy Redis connection."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def get_queue(self, queue_name: str = Queues.BATCH) -> Queue:
        """Get or create a queue by name."""
        if queue_name not in self._queues:
            self._queues[queue_name] = Queue(
                name=queue_name,
                connection=self.redis,
                default_timeout=settings.JOB_TIMEOUT_BATCH
            )
            logger.debug(f"Created queue: {queue_name}")

        return self._queues[queue_name]

    def enqueue_batch_job(self, job_id: str) -> Job:
        """
        Enqueue processing of an accepted generation job.

        Args:
            job_id: Generation job id (the row must already exist)

        Returns:
            RQ Job instance
        """
        from studio.workers.tasks import run_batch_job_task

        job = self.get_queue(Queues.BATCH).enqueue(
            run_batch_job_task,
            job_id,
            job_id=rq_job_id(job_id),
            job_timeout=settings.JOB_TIMEOUT_BATCH,
            meta={
                "type": "batch_generation",
                "generation_job_id": job_id,
                "created_at": datetime.utcnow().isoformat(),
            }
        )

        logger.info(f"Enqueued batch job: {job_id}")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Fetch the RQ job for a generation job id, or None."""
        try:
            return Job.fetch(rq_job_id(job_id), connection=self.redis)
        except NoSuchJobError:
            logger.debug(f"Job not found on queue: {job_id}")
            return None

    def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a dispatched job that no worker has picked up yet.

        Returns:
            True when the queued job was cancelled, False when it is unknown,
            already running or finished, or Redis is unreachable
        """
        try:
            job = self.get_job(job_id)
            if not job:
                return False

            status = job.get_status()
            if status in (RQJobStatus.QUEUED, RQJobStatus.DEFERRED, RQJobStatus.SCHEDULED):
                job.cancel()
                logger.info(f"Cancelled queued job: {job_id}")
                return True
        except RedisError as e:
            logger.error(f"Could not cancel job {job_id}: {e}")
            return False

        logger.info(f"Job {job_id} already {status}, leaving it to the worker")
        return False


# Singleton instance
_queue_manager: Optional[QueueManager] = None


def get_queue_manager() -> QueueManager:
    """Get singleton QueueManager instance."""
    global _queue_manager
    if _queue_manager is None:
        _queue_manager = QueueManager()
    return _queue_manager


__all__ = [
    "QueueManager",
    "get_queue_manager",
    "rq_job_id",
]
