"""
Veo Video Generation Service
Short product videos through Veo long-running operations.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx
from google import genai
from google.genai import types

from studio.core.config import settings
from studio.services.gemini_image import GeneratedMedia, sniff_image_mime
from studio.workers.base import GenerationFailure, GenerationTimeout

logger = logging.getLogger(__name__)


class VeoVideoService:
    """Video generator: submit, poll the operation, download the result."""

    def __init__(self, client: Optional[genai.Client] = None):
        self.client = client or genai.Client(api_key=settings.GEMINI_API_KEY)
        self.model_name = settings.VEO_MODEL
        self.poll_interval = settings.VEO_POLL_INTERVAL
        self.max_wait = settings.VEO_MAX_WAIT_TIME

    def _config(self) -> types.GenerateVideosConfig:
        return types.GenerateVideosConfig(
            aspect_ratio=settings.VIDEO_ASPECT_RATIO,
            duration_seconds=settings.VIDEO_DURATION_SECONDS,
            resolution=settings.VIDEO_RESOLUTION,
            number_of_videos=1,
        )

    async def generate(self, prompt: str, reference_bytes: Optional[bytes] = None) -> GeneratedMedia:
        """
        Generate a video, using the reference photo as the first frame when given.

        Raises:
            GenerationFailure: the operation errored or produced no video
            GenerationTimeout: the operation did not finish within VEO_MAX_WAIT_TIME
        """
        image = None
        if reference_bytes:
            image = types.Image(image_bytes=reference_bytes, mime_type=sniff_image_mime(reference_bytes))

        logger.info(f"[Veo] Generating video with {self.model_name}")
        try:
            operation = await self.client.aio.models.generate_videos(
                model=self.model_name,
                prompt=prompt,
                image=image,
                config=self._config(),
            )
        except Exception as e:
            raise GenerationFailure(f"Veo request failed: {e}")

        operation = await self._wait_for_operation(operation)

        if operation.error:
            raise GenerationFailure(f"Veo operation failed: {operation.error}")

        videos = getattr(operation.response, "generated_videos", None) or []
        if not videos or videos[0].video is None:
            raise GenerationFailure("Veo returned no video")

        data = await self._download(videos[0].video)
        return GeneratedMedia(data=data, mime_type="video/mp4", model=self.model_name)

    async def _wait_for_operation(self, operation):
        """Poll operation until complete."""
        started = time.monotonic()
        while not operation.done:
            if time.monotonic() - started > self.max_wait:
                raise GenerationTimeout(f"Veo operation exceeded {self.max_wait}s")
            logger.info(f"[Veo] Still generating ({int(time.monotonic() - started)}s)...")
            await asyncio.sleep(self.poll_interval)
            try:
                operation = await self.client.aio.operations.get(operation)
            except Exception as e:
                raise GenerationFailure(f"Veo polling failed: {e}")
        return operation

    async def _download(self, video) -> bytes:
        # The API returns either inline bytes or a file uri
        if getattr(video, "video_bytes", None):
            return video.video_bytes
        if getattr(video, "uri", None):
            try:
                async with httpx.AsyncClient(follow_redirects=True) as http_client:
                    response = await http_client.get(
                        video.uri,
                        headers={"x-goog-api-key": settings.GEMINI_API_KEY},
                        timeout=300.0,
                    )
                    response.raise_for_status()
                    return response.content
            except httpx.HTTPError as e:
                raise GenerationFailure(f"Could not download Veo video: {e}")
        raise GenerationFailure("Veo video has neither bytes nor uri")


__all__ = ["VeoVideoService"]
