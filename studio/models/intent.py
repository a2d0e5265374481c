"""
Rendering Intent Models
Image types, prompt templates with variable schemas, and per-product overrides.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from studio.core.database import Base


class IntentKind:
    IMAGE_TYPE = "image_type"  # name + default prompt, no variables
    TEMPLATE = "template"      # prompt with {{placeholders}} and variable definitions


class MediaType:
    IMAGE = "image"
    VIDEO = "video"


class VariableKind:
    TEXT = "text"
    CHOICE = "choice"
    AUTO = "auto"  # copied from a product fact


class RenderingIntent(Base):
    """What to render: a prompt template plus its variable schema."""

    __tablename__ = "rendering_intents"

    id = Column(String, primary_key=True, default=lambda: f"intent_{uuid.uuid4().hex[:12]}")
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    kind = Column(String, nullable=False, default=IntentKind.IMAGE_TYPE)
    media = Column(String, nullable=False, default=MediaType.IMAGE)
    prompt_template = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    variables = relationship(
        "TemplateVariable",
        back_populates="intent",
        cascade="all, delete-orphan",
        order_by="TemplateVariable.position",
    )

    def __repr__(self):
        return f"<RenderingIntent {self.id} {self.name!r} ({self.kind}/{self.media})>"


class TemplateVariable(Base):
    """One named placeholder of a template."""

    __tablename__ = "template_variables"

    id = Column(String, primary_key=True, default=lambda: f"var_{uuid.uuid4().hex[:12]}")
    intent_id = Column(String, ForeignKey("rendering_intents.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    label = Column(String, nullable=False)
    kind = Column(String, nullable=False, default=VariableKind.TEXT)
    required = Column(Boolean, default=True)
    default = Column(String, nullable=True)
    options = Column(JSON, default=list)
    auto_source = Column(String, nullable=True)  # product.title | product.category | product.external_id
    position = Column(Integer, default=0)

    intent = relationship("RenderingIntent", back_populates="variables")


class PromptOverride(Base):
    """Product-specific replacement for an intent's prompt template."""

    __tablename__ = "prompt_overrides"
    __table_args__ = (UniqueConstraint("product_id", "intent_id", name="uq_override_product_intent"),)

    id = Column(String, primary_key=True, default=lambda: f"ovr_{uuid.uuid4().hex[:12]}")
    product_id = Column(String, ForeignKey("products.id"), nullable=False)
    intent_id = Column(String, ForeignKey("rendering_intents.id"), nullable=False)
    custom_prompt = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)


__all__ = [
    "IntentKind",
    "MediaType",
    "VariableKind",
    "RenderingIntent",
    "TemplateVariable",
    "PromptOverride",
]
