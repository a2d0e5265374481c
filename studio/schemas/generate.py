"""
Generate Schemas
Pydantic models for single generation requests, artifacts and prompt previews.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel


class SingleGenerationRequest(BaseModel):
    """One generation for one product and intent.

    Reference hints are tried in order: reference_asset_id, base_artifact_id,
    parent_artifact_id, then the product's first reference photo.
    """
    product_id: str
    intent_id: str
    reference_asset_id: Optional[str] = None
    base_artifact_id: Optional[str] = None
    parent_artifact_id: Optional[str] = None
    custom_instructions: Optional[str] = None
    variable_values: Dict[str, str] = {}
    actor_id: str = "system"


class ArtifactResponse(BaseModel):
    """Schema for a generated artifact."""
    id: str
    product_id: str
    intent_id: str
    job_id: Optional[str] = None
    reference_asset_id: Optional[str] = None
    parent_artifact_id: Optional[str] = None
    version: int
    status: str
    media_type: str
    prompt_used: str
    ai_model: Optional[str] = None
    storage_kind: str
    storage_uri: Optional[str] = None
    url: Optional[str] = None
    mime_type: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    file_size: Optional[int] = None
    failure_kind: Optional[str] = None
    failure_reason: Optional[str] = None
    generated_by: str
    generation_params: Dict[str, Any] = {}
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GenerationFailureResponse(BaseModel):
    """Body of a 422 when a single generation did not produce an artifact."""
    artifact_id: Optional[str] = None
    version: Optional[int] = None
    failure_kind: str
    step: str
    reason: str


class PromptPreviewRequest(BaseModel):
    product_id: Optional[str] = None
    variable_values: Dict[str, str] = {}
    custom_instructions: Optional[str] = None


class PromptPreviewResponse(BaseModel):
    prompt: str
    missing_variables: List[str] = []
    values: Dict[str, str] = {}
