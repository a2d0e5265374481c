"""
Generate API Routes
Single generations outside of batch jobs.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from studio.api.deps import get_db, get_orchestrator, get_storage
from studio.models import GeneratedArtifact
from studio.schemas.generate import ArtifactResponse, GenerationFailureResponse, SingleGenerationRequest
from studio.services.errors import NotFoundError
from studio.services.orchestrator import JobOrchestrator
from studio.services.storage import StorageService, location_from_columns

router = APIRouter()


def to_artifact_response(artifact: GeneratedArtifact, storage: StorageService) -> ArtifactResponse:
    response = ArtifactResponse.model_validate(artifact)
    response.url = storage.get_public_url(location_from_columns(artifact.storage_kind, artifact.storage_uri))
    return response


@router.post(
    "/generate",
    response_model=ArtifactResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": GenerationFailureResponse}},
)
async def generate_single(
    request: SingleGenerationRequest,
    db: Session = Depends(get_db),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    storage: StorageService = Depends(get_storage),
):
    """
    Generate one image or video for a product and rendering intent.

    Waits for the generation to finish. A failed generation answers 422 with
    the failing step and reason; the rejected artifact row (if any) is kept.
    """
    try:
        result = await orchestrator.generate_single(request, request.actor_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    if not result.ok:
        failure = GenerationFailureResponse(
            artifact_id=result.artifact_id,
            version=result.version,
            failure_kind=result.failure_kind,
            step=result.step,
            reason=result.reason,
        )
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=failure.model_dump())

    artifact = db.get(GeneratedArtifact, result.artifact_id)
    return to_artifact_response(artifact, storage)
