"""
Gemini Image Generation Service
Product photography through native Gemini image models.
Documentation: https://ai.google.dev/gemini-api/docs/image-generation
"""

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Optional

from google import genai
from google.genai import types
from PIL import Image

from studio.core.config import settings
from studio.workers.base import GenerationFailure

logger = logging.getLogger(__name__)


# Share of the frame the product should fill
PRODUCT_SIZE_INSTRUCTIONS = {
    "small": "The product should occupy approximately 30-40% of the frame, with generous negative space around it.",
    "medium": "The product should occupy approximately 50-60% of the frame, balanced with its surroundings.",
    "large": "The product should occupy approximately 70-80% of the frame, filling most of the image.",
}

STYLE_SUFFIX = "Style: Professional product photography, clean composition, high resolution, Amazon listing quality."


@dataclass
class GeneratedMedia:
    """Bytes returned by a media generator, plus what the store needs to know."""
    data: bytes
    width: Optional[int] = None
    height: Optional[int] = None
    mime_type: str = "image/png"
    model: Optional[str] = None

    @property
    def extension(self) -> str:
        return {"image/png": "png", "image/jpeg": "jpg", "video/mp4": "mp4"}.get(self.mime_type, "bin")


def build_image_prompt(prompt: str, has_reference: bool, product_size: str = "medium") -> str:
    """Wrap a rendered prompt with reference and framing instructions."""
    sections = []
    if has_reference:
        sections.append(
            "Use the attached photo as the exact product reference. Keep the product's shape, "
            "colors, materials, labels and branding identical; change only the scene."
        )
    sections.append(prompt)
    sections.append(PRODUCT_SIZE_INSTRUCTIONS.get(product_size, PRODUCT_SIZE_INSTRUCTIONS["medium"]))
    sections.append(STYLE_SUFFIX)
    return "\n\n".join(sections)


def normalize_image(data: bytes, width: int, height: int) -> bytes:
    """Fit the image inside width x height on a white canvas, as PNG."""
    with Image.open(io.BytesIO(data)) as img:
        img = img.convert("RGBA")
        img.thumbnail((width, height), Image.LANCZOS)
        canvas = Image.new("RGB", (width, height), (255, 255, 255))
        offset = ((width - img.width) // 2, (height - img.height) // 2)
        canvas.paste(img, offset, mask=img)
        buf = io.BytesIO()
        canvas.save(buf, format="PNG")
        return buf.getvalue()


def sniff_image_mime(data: bytes) -> str:
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


class GeminiImageService:
    """Image generator backed by the Gemini image model."""

    def __init__(self, client: Optional[genai.Client] = None):
        self.client = client or genai.Client(api_key=settings.GEMINI_API_KEY)
        self.model_name = settings.GEMINI_IMAGE_MODEL
        self.width = settings.OUTPUT_WIDTH
        self.height = settings.OUTPUT_HEIGHT
        self.product_size = settings.PRODUCT_SIZE
        logger.info(f"[Gemini] Initialized with model: {self.model_name}")

    async def generate(self, prompt: str, reference_bytes: Optional[bytes] = None) -> GeneratedMedia:
        """
        Generate one product image.

        Args:
            prompt: Rendered prompt text
            reference_bytes: Reference photo, or None for text-only generation

        Raises:
            GenerationFailure: the model errored or returned no image
        """
        contents = []
        if reference_bytes:
            contents.append(
                types.Part.from_bytes(data=reference_bytes, mime_type=sniff_image_mime(reference_bytes))
            )
        contents.append(build_image_prompt(prompt, bool(reference_bytes), self.product_size))

        config = types.GenerateContentConfig(
            response_modalities=["TEXT", "IMAGE"] if reference_bytes else ["IMAGE"],
        )

        logger.info(f"[Gemini] Generating with {self.model_name} (reference: {reference_bytes is not None})")
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=config,
            )
        except Exception as e:
            raise GenerationFailure(f"Gemini image generation failed: {e}")

        raw = self._extract_image(response)
        try:
            data = await asyncio.to_thread(normalize_image, raw, self.width, self.height)
        except OSError as e:
            raise GenerationFailure(f"Gemini returned an unreadable image: {e}")

        return GeneratedMedia(
            data=data,
            width=self.width,
            height=self.height,
            mime_type="image/png",
            model=self.model_name,
        )

    @staticmethod
    def _extract_image(response) -> bytes:
        # Direct parts access first, candidates as fallback
        for part in getattr(response, "parts", None) or []:
            if part.inline_data is not None and part.inline_data.data:
                return part.inline_data.data

        candidates = getattr(response, "candidates", None) or []
        if candidates:
            candidate = candidates[0]
            content = getattr(candidate, "content", None)
            for part in (content.parts if content and content.parts else []):
                if part.inline_data is not None and part.inline_data.data:
                    return part.inline_data.data

            details = [
                f"{rating.category}={rating.probability}"
                for rating in (getattr(candidate, "safety_ratings", None) or [])
            ]
            message = f"No image generated. Finish Reason: {candidate.finish_reason}"
            if details:
                message += f" | Safety: {', '.join(details)}"
            raise GenerationFailure(message)

        raise GenerationFailure("No image generated. Empty response")


__all__ = [
    "GeneratedMedia",
    "GeminiImageService",
    "build_image_prompt",
    "normalize_image",
]
