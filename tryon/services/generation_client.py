"""Client for the external multimodal image generation API."""

import base64
import logging

import httpx

from ..config import UpstreamConfig
from ..errors import (
    ConfigurationError,
    UpstreamServerError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .envelope import normalize_response

logger = logging.getLogger(__name__)


TRYON_INSTRUCTION = (
    "Dress the person in the first image in the garment shown in the second image. "
    "Preserve the person's identity, face, hairstyle, skin tone, body shape, pose "
    "and background exactly. Make the fit realistic, with natural fabric drape and "
    "lighting consistent with the original photo. Only the clothing should change. "
    "Return a single photorealistic image."
)


class GenerationClient:
    """Issues one try-on generation call per ``generate``."""

    def __init__(
        self,
        config: UpstreamConfig,
        api_key: str | None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def generate(
        self,
        subject_bytes: bytes,
        garment_bytes: bytes,
        subject_mime_type: str = "image/jpeg",
        garment_mime_type: str = "image/jpeg",
    ) -> bytes:
        """Generate one try-on image.

        Args:
            subject_bytes: Encoded photo of the person
            garment_bytes: Encoded photo of the clothing item
            subject_mime_type: Mime type of the person photo
            garment_mime_type: Mime type of the clothing photo

        Returns:
            Encoded bytes of the generated image

        Raises:
            UpstreamTimeout: the call exceeded the configured timeout
            UpstreamUnavailable: the service could not be reached
            UpstreamServerError: the service answered with a non-2xx status
            UpstreamDecodeFailure: a 2xx answer carried no image
        """
        if not self.api_key:
            raise ConfigurationError("GOOGLE_API_KEY not configured")

        payload = self._build_payload(
            subject_bytes, garment_bytes, subject_mime_type, garment_mime_type
        )

        try:
            response = await self.client.post(
                self.config.url,
                json=payload,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.TimeoutException as e:
            logger.error("Generation request timed out after %ss", self.config.timeout)
            raise UpstreamTimeout(
                f"Generation timed out after {self.config.timeout:.0f}s", details=str(e)
            ) from e
        except httpx.RequestError as e:
            logger.error("Generation request failed: %s", e)
            raise UpstreamUnavailable(f"Request failed: {e}") from e

        if not response.is_success:
            message = self._error_message(response)
            logger.error("Generation API error %d: %s", response.status_code, message)
            raise UpstreamServerError(response.status_code, message)

        images = normalize_response(response.headers.get("content-type"), response.content)
        if len(images) > 1:
            logger.debug("Generation returned %d images, using the first", len(images))
        return images[0]

    def _build_payload(
        self,
        subject_bytes: bytes,
        garment_bytes: bytes,
        subject_mime_type: str,
        garment_mime_type: str,
    ) -> dict:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": TRYON_INSTRUCTION},
                        {
                            "inline_data": {
                                "mime_type": subject_mime_type,
                                "data": base64.b64encode(subject_bytes).decode("ascii"),
                            }
                        },
                        {
                            "inline_data": {
                                "mime_type": garment_mime_type,
                                "data": base64.b64encode(garment_bytes).decode("ascii"),
                            }
                        },
                    ],
                }
            ],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
            },
        }

    def _error_message(self, response: httpx.Response) -> str:
        """Best-effort message from an error response."""
        try:
            data = response.json()
        except ValueError:
            return response.text[:500] or response.reason_phrase
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str):
                return error
        return response.text[:500]

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
