# Database models package
from studio.models.product import Product, ProductStatus, ReferenceAsset
from studio.models.intent import (
    IntentKind,
    MediaType,
    VariableKind,
    RenderingIntent,
    TemplateVariable,
    PromptOverride,
)
from studio.models.artifact import ArtifactStatus, GeneratedArtifact
from studio.models.job import GenerationJob, JobState
from studio.models.analytics import DailyAnalytics

__all__ = [
    "Product",
    "ProductStatus",
    "ReferenceAsset",
    "IntentKind",
    "MediaType",
    "VariableKind",
    "RenderingIntent",
    "TemplateVariable",
    "PromptOverride",
    "ArtifactStatus",
    "GeneratedArtifact",
    "GenerationJob",
    "JobState",
    "DailyAnalytics",
]
