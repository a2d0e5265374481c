"""
Generated Artifact Model
Output of one unit of work, with lineage back to its reference photo.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey, JSON, UniqueConstraint

from studio.core.database import Base


class ArtifactStatus:
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class GeneratedArtifact(Base):
    """
    Generated image or video.

    `reference_asset_id`, `parent_artifact_id` and `job_id` are plain ids, not
    foreign keys: the rows they point at may be deleted or re-synced later and
    readers must tolerate that.
    """

    __tablename__ = "generated_artifacts"
    __table_args__ = (
        UniqueConstraint("product_id", "intent_id", "version", name="uq_artifact_version"),
    )

    id = Column(String, primary_key=True, default=lambda: f"art_{uuid.uuid4().hex[:12]}")
    product_id = Column(String, ForeignKey("products.id"), nullable=False, index=True)
    intent_id = Column(String, ForeignKey("rendering_intents.id"), nullable=False, index=True)

    # Lineage (weak references)
    reference_asset_id = Column(String, nullable=True)
    parent_artifact_id = Column(String, nullable=True)
    job_id = Column(String, nullable=True, index=True)

    version = Column(Integer, nullable=False)
    status = Column(String, default=ArtifactStatus.GENERATING, nullable=False, index=True)
    media_type = Column(String, nullable=False, default="image")

    prompt_used = Column(Text, nullable=False)
    ai_model = Column(String, nullable=True)
    generation_params = Column(JSON, default=dict)

    # Result
    storage_kind = Column(String, nullable=False, default="unset")
    storage_uri = Column(String, nullable=True)
    mime_type = Column(String, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    file_size = Column(Integer, nullable=True)

    # Audit of failed units
    failure_kind = Column(String, nullable=True)
    failure_reason = Column(Text, nullable=True)

    generated_by = Column(String, nullable=False, default="system")

    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<GeneratedArtifact {self.id} v{self.version} ({self.status})>"


__all__ = ["ArtifactStatus", "GeneratedArtifact"]
