"""
Jobs API Routes
Batch job submission, progress, results and halting.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status

from studio.api.deps import get_orchestrator, get_storage
from studio.api.generate import to_artifact_response
from studio.schemas.generate import ArtifactResponse
from studio.schemas.job import JobAcceptance, JobListResponse, JobStatusResponse, JobSubmission
from studio.services.errors import NotFoundError
from studio.services.orchestrator import JobOrchestrator
from studio.services.storage import StorageService

router = APIRouter()


@router.post("", response_model=JobAcceptance, status_code=status.HTTP_202_ACCEPTED)
async def submit_job(
    submission: JobSubmission,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """
    Submit a batch generation job.

    One unit of work is created per eligible product and intent. With a
    `variant`, products lacking a reference photo of that variant are skipped.
    Processing happens in the background; poll `GET /jobs/{job_id}`.
    """
    try:
        return await orchestrator.submit_job(submission, submission.actor_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Get job status and progress counters."""
    try:
        return orchestrator.get_job_status(job_id)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )


@router.get("", response_model=JobListResponse)
async def list_jobs(
    job_status: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """List jobs, newest first, with optional status filter."""
    jobs, total = orchestrator.list_jobs(job_status, limit, offset)
    return JobListResponse(
        jobs=[JobStatusResponse.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{job_id}/artifacts", response_model=List[ArtifactResponse])
async def list_job_artifacts(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    storage: StorageService = Depends(get_storage),
):
    """Artifacts produced (or rejected) by a job."""
    try:
        artifacts = orchestrator.list_job_artifacts(job_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return [to_artifact_response(artifact, storage) for artifact in artifacts]


@router.post("/{job_id}/halt", response_model=JobStatusResponse)
async def halt_job(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Stop dispatching the job's remaining units. Running units finish."""
    try:
        return orchestrator.halt_job(job_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
