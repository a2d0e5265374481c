"""
Job Schemas
Pydantic models for job API requests and responses.
"""

from datetime import datetime
from typing import Optional, Dict, List
from pydantic import BaseModel, Field


class JobSubmission(BaseModel):
    """Batch request: every eligible product x every intent."""
    product_ids: List[str] = []
    intent_ids: List[str] = Field(..., min_length=1)
    variant: Optional[str] = None  # only products with a reference photo of this variant
    custom_instructions: Optional[str] = None
    variable_values: Dict[str, str] = {}
    actor_id: str = "system"


class JobAcceptance(BaseModel):
    job_id: str
    total_units: int
    skipped_count: int


class JobStatusResponse(BaseModel):
    """Schema for job status."""
    id: str
    status: str
    halted: bool = False
    total_images: int
    completed_images: int
    failed_images: int
    error_log: Optional[str] = None
    product_ids: List[str] = []
    intent_ids: List[str] = []
    submitted_by: str
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    jobs: List[JobStatusResponse]
    total: int
    limit: int
    offset: int
