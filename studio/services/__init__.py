# Services package - generation pipeline and external integrations
# The executor and orchestrator are imported from their modules directly.
from studio.services.gemini_image import GeminiImageService, GeneratedMedia
from studio.services.veo_video import VeoVideoService
from studio.services.storage import StorageService
from studio.services.prompt_renderer import render_prompt

__all__ = [
    "GeminiImageService",
    "GeneratedMedia",
    "VeoVideoService",
    "StorageService",
    "render_prompt",
]
