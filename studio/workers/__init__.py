# Workers package - batch dispatch through RQ and the shared error types
# Queue and task modules are imported lazily by callers; they pull in redis/rq.

from studio.workers.base import (
    FailureKind,
    WorkerException,
    NonRetryableError,
    UnitFailure,
    ResolutionError,
    GenerationFailure,
    GenerationTimeout,
    StorageFailure,
    VersionConflictError,
    JobProgressError,
    with_retry,
)

__all__ = [
    "FailureKind",
    "WorkerException",
    "NonRetryableError",
    "UnitFailure",
    "ResolutionError",
    "GenerationFailure",
    "GenerationTimeout",
    "StorageFailure",
    "VersionConflictError",
    "JobProgressError",
    "with_retry",
]
