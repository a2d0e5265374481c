import asyncio

import pytest
from rq.job import JobStatus as RQJobStatus

from studio.schemas.job import JobSubmission
from studio.services.orchestrator import HALTED_REASON, JobOrchestrator
from studio.workers import queue as queue_module
from studio.workers import tasks
from studio.workers.base import NonRetryableError, with_retry


class RecordingQueueManager:
    def __init__(self, cancellable=True):
        self.enqueued = []
        self.cancelled = []
        self.cancellable = cancellable

    def enqueue_batch_job(self, job_id):
        self.enqueued.append(job_id)

    def cancel_job(self, job_id):
        self.cancelled.append(job_id)
        return self.cancellable


def test_queue_dispatch_enqueues_instead_of_running(session_factory, executor, seed, monkeypatch):
    manager = RecordingQueueManager()
    monkeypatch.setattr(queue_module, "get_queue_manager", lambda: manager)
    orchestrator = JobOrchestrator(session_factory, executor, dispatch_mode="queue")
    intent_id = seed.intent("Photo of {{title}}")

    acceptance = asyncio.run(
        orchestrator.submit_job(JobSubmission(product_ids=[seed.product("Mug")], intent_ids=[intent_id]))
    )

    assert manager.enqueued == [acceptance.job_id]
    assert orchestrator.get_job_status(acceptance.job_id).status == "PROCESSING"


def test_batch_task_processes_the_job(session_factory, executor, seed, monkeypatch):
    orchestrator = JobOrchestrator(session_factory, executor, dispatch_mode="queue")
    monkeypatch.setattr(queue_module, "get_queue_manager", lambda: RecordingQueueManager())
    intent_id = seed.intent("Photo of {{title}}")
    acceptance = asyncio.run(
        orchestrator.submit_job(JobSubmission(product_ids=[seed.product("Mug")], intent_ids=[intent_id]))
    )

    import studio.services.orchestrator as orchestrator_module
    monkeypatch.setattr(orchestrator_module, "build_orchestrator", lambda: orchestrator)

    result = tasks.run_batch_job_task(acceptance.job_id)

    assert result["status"] == "COMPLETED"
    assert result["completed_images"] == 1


def test_rq_job_ids_are_namespaced():
    assert queue_module.rq_job_id("job_abc") == "batch_job_abc"


def submit_queued(orchestrator, seed, titles):
    intent_id = seed.intent("Photo of {{title}}")
    submission = JobSubmission(product_ids=[seed.product(t) for t in titles], intent_ids=[intent_id])
    return asyncio.run(orchestrator.submit_job(submission)).job_id


def test_halt_cancels_job_still_on_the_queue(session_factory, executor, seed, monkeypatch):
    manager = RecordingQueueManager(cancellable=True)
    monkeypatch.setattr(queue_module, "get_queue_manager", lambda: manager)
    orchestrator = JobOrchestrator(session_factory, executor, dispatch_mode="queue")
    job_id = submit_queued(orchestrator, seed, ["Mug", "Lamp"])

    job = orchestrator.halt_job(job_id)

    assert manager.cancelled == [job_id]
    assert job.status == "FAILED"
    assert job.failed_images == 2
    assert job.completed_at is not None
    assert job.error_log.count(HALTED_REASON) == 2
    assert executor.generators["image"].calls == []


def test_halt_leaves_started_job_to_the_worker(session_factory, executor, seed, monkeypatch):
    manager = RecordingQueueManager(cancellable=False)
    monkeypatch.setattr(queue_module, "get_queue_manager", lambda: manager)
    orchestrator = JobOrchestrator(session_factory, executor, dispatch_mode="queue")
    job_id = submit_queued(orchestrator, seed, ["Mug"])

    job = orchestrator.halt_job(job_id)

    assert manager.cancelled == [job_id]
    assert job.halted
    assert job.status == "PROCESSING"
    assert job.failed_images == 0


class StubRQJob:
    def __init__(self, status):
        self.status = status
        self.cancelled = False

    def get_status(self):
        return self.status

    def cancel(self):
        self.cancelled = True


def test_queue_manager_cancels_only_waiting_jobs(monkeypatch):
    jobs = {
        "batch_job_waiting": StubRQJob(RQJobStatus.QUEUED),
        "batch_job_running": StubRQJob(RQJobStatus.STARTED),
    }
    manager = queue_module.QueueManager(connection=object())
    monkeypatch.setattr(manager, "get_job", lambda job_id: jobs.get(queue_module.rq_job_id(job_id)))

    assert manager.cancel_job("job_waiting") is True
    assert jobs["batch_job_waiting"].cancelled
    assert manager.cancel_job("job_running") is False
    assert not jobs["batch_job_running"].cancelled
    assert manager.cancel_job("job_unknown") is False


def test_with_retry_retries_transient_errors():
    calls = []

    @with_retry(max_retries=2, retry_delay=0)
    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("try again")
        return "ok"

    assert asyncio.run(flaky()) == "ok"
    assert len(calls) == 3


def test_with_retry_gives_up_and_skips_non_retryable():
    calls = []

    @with_retry(max_retries=1, retry_delay=0)
    async def always_down():
        calls.append(1)
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        asyncio.run(always_down())
    assert len(calls) == 2

    @with_retry(max_retries=3, retry_delay=0)
    async def invalid():
        calls.append(1)
        raise NonRetryableError("bad input")

    with pytest.raises(NonRetryableError):
        asyncio.run(invalid())
    assert len(calls) == 3
