# Pydantic schemas package
from studio.schemas.job import JobSubmission, JobAcceptance, JobStatusResponse, JobListResponse
from studio.schemas.generate import (
    SingleGenerationRequest, ArtifactResponse, GenerationFailureResponse,
    PromptPreviewRequest, PromptPreviewResponse
)
from studio.schemas.unit import UnitOfWork, UnitResult, VariableSnapshot

__all__ = [
    "JobSubmission", "JobAcceptance", "JobStatusResponse", "JobListResponse",
    "SingleGenerationRequest", "ArtifactResponse", "GenerationFailureResponse",
    "PromptPreviewRequest", "PromptPreviewResponse",
    "UnitOfWork", "UnitResult", "VariableSnapshot",
]
