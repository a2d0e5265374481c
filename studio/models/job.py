"""
Job Model
Database model for batch generation jobs.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, JSON

from studio.core.database import Base


class JobState:
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class GenerationJob(Base):
    """Batch of units of work submitted and tracked together."""

    __tablename__ = "generation_jobs"

    id = Column(String, primary_key=True)  # job_xxxx format

    # Request
    product_ids = Column(JSON, default=list)
    intent_ids = Column(JSON, default=list)
    options = Column(JSON, default=dict)  # accept-time snapshot incl. expanded units
    submitted_by = Column(String, nullable=False, default="system")

    # Status: PROCESSING, COMPLETED, FAILED
    status = Column(String, default=JobState.PROCESSING, index=True)
    halted = Column(Boolean, default=False, nullable=False)

    # Progress
    total_images = Column(Integer, nullable=False, default=0)
    completed_images = Column(Integer, nullable=False, default=0)
    failed_images = Column(Integer, nullable=False, default=0)
    error_log = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobState.COMPLETED, JobState.FAILED)

    def __repr__(self):
        return f"<GenerationJob {self.id} {self.completed_images}+{self.failed_images}/{self.total_images} ({self.status})>"
