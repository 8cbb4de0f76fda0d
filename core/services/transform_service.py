# =============================================================================
# core/services/transform_service.py - Image Transformation (OpenAI Images)
# =============================================================================
# Sends an image plus an instruction ("make it cyberpunk") to the image
# generation API and returns exactly one generated image.
#
# The API may answer with inline base64 data or with a URL; URL results are
# fetched so callers always receive bytes. A response without an image is a
# hard failure.
# =============================================================================

import base64
import binascii
import logging
from dataclasses import dataclass

import httpx

from app.config import settings
from app.exceptions import TransformationError

logger = logging.getLogger(__name__)

# Lazy-loaded OpenAI client
_client = None


def get_openai_client():
    """Get or create OpenAI client (lazy initialization)."""
    global _client
    if _client is None:
        from openai import OpenAI
        _client = OpenAI(api_key=settings.OPENAI_API_KEY)
    return _client


@dataclass(frozen=True)
class GeneratedImage:
    content: bytes
    content_type: str = "image/png"

    @property
    def extension(self) -> str:
        return self.content_type.rsplit("/", 1)[-1].replace("jpeg", "jpg")


class ImageTransformService:
    """
    Prompt-driven image editing via the OpenAI Images API.

    No timeout is applied beyond the SDK's own defaults; generation can
    legitimately take a long time.
    """

    def __init__(self, client=None, model: str | None = None):
        self._client = client
        self.model = model or settings.OPENAI_IMAGE_MODEL

    @property
    def client(self):
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def transform(
        self,
        image: bytes,
        filename: str,
        content_type: str,
        prompt: str,
    ) -> GeneratedImage:
        """
        Transform `image` according to `prompt`.

        Args:
            image: Source image bytes
            filename: Original filename (sent as the multipart filename)
            content_type: Source MIME type
            prompt: Instruction text

        Returns:
            GeneratedImage with the output bytes

        Raises:
            TransformationError: If the call fails or no image comes back
        """
        try:
            response = self.client.images.edit(
                model=self.model,
                image=(filename, image, content_type),
                prompt=prompt,
            )
        except Exception as e:
            logger.error(f"Image generation call failed: {e}")
            raise TransformationError(str(e))

        items = getattr(response, "data", None) or []
        if not items:
            raise TransformationError("Image generation failed: no image in response")

        item = items[0]
        b64_data = getattr(item, "b64_json", None)
        url = getattr(item, "url", None)

        if b64_data:
            try:
                content = base64.b64decode(b64_data)
            except (binascii.Error, ValueError) as e:
                raise TransformationError(f"Invalid image payload: {e}")
            logger.info(f"Generated image ({len(content)} bytes) with {self.model}")
            return GeneratedImage(content=content, content_type="image/png")

        if url:
            return self._fetch(url)

        raise TransformationError("Image generation failed: no image in response")

    @staticmethod
    def _fetch(url: str) -> GeneratedImage:
        """Download a URL-form result."""
        try:
            response = httpx.get(url, timeout=60, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransformationError(f"Could not fetch generated image: {e}")

        content_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        if not content_type.startswith("image/"):
            content_type = "image/png"
        logger.info(f"Fetched generated image ({len(response.content)} bytes)")
        return GeneratedImage(content=response.content, content_type=content_type)
