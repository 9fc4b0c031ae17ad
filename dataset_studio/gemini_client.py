"""Gemini API client for reference analysis and pose synthesis.

Wraps the two provider calls the studio needs:
1. analyze   - reference image -> identity profile text
2. synthesize - reference image + prompt -> generated image as a data URI

Provider failures are mapped onto a small exception taxonomy. AuthExpired
is the only class the batch pipeline treats as fatal; everything else is a
per-image failure.
"""

import base64
import binascii
import logging
from typing import Optional, Union

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .config import (
    ANALYSIS_INSTRUCTION, DEFAULT_ANALYSIS_RESULT,
    AspectRatio, Resolution, StudioConfig,
)

logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = (401, 403)
AUTH_ERROR_MARKERS = (
    "Requested entity was not found",
    "API_KEY_INVALID",
    "API key expired",
)


class GenerationError(Exception):
    """Base class for provider failures."""


class AuthExpired(GenerationError):
    """The provider rejected the API key."""


class NoCandidates(GenerationError):
    def __init__(self, message: str = "The model did not return any candidates."):
        super().__init__(message)


class EmptyResponse(GenerationError):
    def __init__(self, message: str = "Generation blocked by safety filters or empty response."):
        super().__init__(message)


class NoImagePayload(GenerationError):
    def __init__(self, message: str = "No image data found in the response parts."):
        super().__init__(message)


def is_auth_failure(exc: Exception) -> bool:
    if isinstance(exc, AuthExpired):
        return True
    if isinstance(exc, genai_errors.ClientError) and exc.code in AUTH_ERROR_CODES:
        return True
    message = str(exc)
    return any(marker in message for marker in AUTH_ERROR_MARKERS)


def decode_reference(image: Union[bytes, str]) -> bytes:
    """Accept raw bytes, a base64 string or a data URI."""
    if isinstance(image, (bytes, bytearray)):
        return bytes(image)
    if "base64," in image:
        image = image.split("base64,", 1)[1]
    try:
        return base64.b64decode(image, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Reference image is not valid base64: {e}") from e


def sniff_mime_type(data: bytes) -> str:
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


def extract_image_data_uri(response) -> str:
    """Pull the first inline image out of a generate_content response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        raise NoCandidates()

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    if not parts:
        raise EmptyResponse()

    for part in parts:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if not data:
            continue
        if isinstance(data, (bytes, bytearray)):
            encoded = base64.b64encode(bytes(data)).decode("ascii")
        else:
            encoded = str(data)
        mime_type = getattr(inline, "mime_type", None) or "image/png"
        return f"data:{mime_type};base64,{encoded}"

    raise NoImagePayload()


class GeminiClient:
    """Async client for the Gemini image models."""

    def __init__(self, api_key: Optional[str] = None,
                 config: Optional[StudioConfig] = None,
                 client=None):
        self.config = config or StudioConfig()
        if client is None:
            client = genai.Client(api_key=api_key or self.config.api_key())
        self._client = client

    @property
    def _models(self):
        return self._client.aio.models

    # -------------------------------------------------------------------------
    # ANALYSIS
    # -------------------------------------------------------------------------

    async def analyze(self, reference_image: Union[bytes, str]) -> str:
        """Describe the permanent identity traits visible in the reference.

        Raises:
            AuthExpired: the API key was rejected
        """
        data = decode_reference(reference_image)
        logger.debug(f"Analyzing reference ({len(data)} bytes) with {self.config.models.analysis}")
        try:
            response = await self._models.generate_content(
                model=self.config.models.analysis,
                contents=[
                    types.Part.from_bytes(data=data, mime_type=sniff_mime_type(data)),
                    ANALYSIS_INSTRUCTION,
                ],
            )
        except Exception as e:
            if is_auth_failure(e):
                raise AuthExpired(f"API_KEY_EXPIRED: {e}") from e
            raise

        text = (getattr(response, "text", None) or "").strip()
        return text or DEFAULT_ANALYSIS_RESULT

    # -------------------------------------------------------------------------
    # SYNTHESIS
    # -------------------------------------------------------------------------

    async def synthesize(
        self,
        reference_image: Union[bytes, str],
        prompt: str,
        resolution: str = Resolution.ONE_K.value,
        aspect_ratio: str = AspectRatio.SQUARE.value,
    ) -> str:
        """Generate one image of the referenced character.

        Args:
            reference_image: Reference portrait (bytes, base64 or data URI)
            prompt: Complete synthesis instruction
            resolution: "1K", "2K" or "4K"
            aspect_ratio: One of the AspectRatio values

        Returns:
            The generated image as a data URI

        Raises:
            AuthExpired, NoCandidates, EmptyResponse, NoImagePayload
        """
        data = decode_reference(reference_image)
        image_config = types.ImageConfig(
            aspect_ratio=AspectRatio(aspect_ratio).value,
            image_size=Resolution(resolution).value,
        )
        try:
            response = await self._models.generate_content(
                model=self.config.models.image,
                contents=[
                    types.Part.from_bytes(data=data, mime_type=sniff_mime_type(data)),
                    prompt,
                ],
                config=types.GenerateContentConfig(image_config=image_config),
            )
        except Exception as e:
            if is_auth_failure(e):
                raise AuthExpired(f"API_KEY_EXPIRED: {e}") from e
            raise

        return extract_image_data_uri(response)
