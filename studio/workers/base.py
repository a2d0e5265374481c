"""
Worker Error Types and Retry Helpers
Exception hierarchy shared by the executor, orchestrator and RQ tasks.
"""

import asyncio
import logging
import traceback
from enum import Enum
from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class FailureKind(str, Enum):
    """Why a unit of work did not produce an artifact."""
    RESOLUTION = "resolution"
    GENERATION = "generation"
    TIMEOUT = "timeout"
    STORAGE = "storage"
    INTERNAL = "internal"


class WorkerException(Exception):
    """Base exception for worker errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


class NonRetryableError(WorkerException):
    """Error that should NOT be retried (e.g., invalid input)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, details=details)


class UnitFailure(NonRetryableError):
    """Terminal failure of a single unit of work. Never retried by this layer."""

    kind: FailureKind = FailureKind.INTERNAL
    step: str = "execute"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, details=details)


class ResolutionError(UnitFailure):
    """The reference hint could not be resolved or its bytes fetched."""
    kind = FailureKind.RESOLUTION
    step = "resolve_reference"


class GenerationFailure(UnitFailure):
    """The media generation capability returned an error or no media."""
    kind = FailureKind.GENERATION
    step = "generate"


class GenerationTimeout(UnitFailure):
    """The media generation capability did not answer in time."""
    kind = FailureKind.TIMEOUT
    step = "generate"


class StorageFailure(UnitFailure):
    """Media was generated but could not be persisted."""
    kind = FailureKind.STORAGE
    step = "persist"


class VersionConflictError(NonRetryableError):
    """Version allocation kept colliding with concurrent writers."""


class JobProgressError(NonRetryableError):
    """Job counters could not be written. Infrastructure-fatal for the job run."""


def with_retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    exponential_backoff: bool = True,
    retryable_exceptions: tuple = (TimeoutError, ConnectionError)
):
    """
    Decorator to add retry logic to async callables.

    Args:
        max_retries: Maximum number of retry attempts
        retry_delay: Base delay between retries (seconds)
        exponential_backoff: Whether to use exponential backoff
        retryable_exceptions: Tuple of exception types that should trigger retry
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except retryable_exceptions as e:
                    last_exception = e

                    if attempt < max_retries:
                        delay = retry_delay * (2 ** attempt if exponential_backoff else 1)
                        logger.warning(
                            f"[Retry {attempt + 1}/{max_retries}] {func.__name__} failed: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"[Failed] {func.__name__} exhausted all {max_retries} retries: {e}"
                        )

                except NonRetryableError as e:
                    logger.error(f"[Non-Retryable] {func.__name__}: {e}")
                    raise

                except Exception as e:
                    logger.error(f"[Unexpected] {func.__name__}: {e}\n{traceback.format_exc()}")
                    raise

            raise last_exception

        return wrapper

    return decorator


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
