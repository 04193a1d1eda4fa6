"""Client for the try-on proxy's ``POST /api/tryon`` endpoint."""

import logging

import httpx

from ..config import ClientConfig
from ..errors import (
    ERRORS_BY_KIND,
    TryOnError,
    UpstreamServerError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .encoder import EncodingMode, RequestEncoder
from .envelope import normalize_response

logger = logging.getLogger(__name__)


class TryOnApiClient:
    """Sends encoded image pairs to the proxy and decodes its answer."""

    def __init__(
        self,
        config: ClientConfig,
        encoder: RequestEncoder | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.encoder = encoder or RequestEncoder()
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

    async def try_on(
        self,
        subject_bytes: bytes,
        garment_bytes: bytes,
        image_count: int = 1,
        is_free_retry: bool = False,
    ) -> list[bytes]:
        """Request ``image_count`` try-on images.

        Returns:
            The generated images in issue order, never empty
        """
        payload = self.encoder.encode(
            subject_bytes,
            garment_bytes,
            EncodingMode(self.config.encoding),
            image_count=image_count,
            is_free_retry=is_free_retry,
        )

        try:
            response = await self.client.post(
                self.config.api_url,
                content=payload.body,
                headers={"Content-Type": payload.content_type},
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(
                f"No response within {self.config.timeout:.0f}s", details=str(e)
            ) from e
        except httpx.RequestError as e:
            raise UpstreamUnavailable(str(e) or type(e).__name__) from e

        if not response.is_success:
            raise self._error_from_response(response)

        images = normalize_response(response.headers.get("content-type"), response.content)
        logger.info("Received %d try-on image(s)", len(images))
        return images

    def _error_from_response(self, response: httpx.Response) -> TryOnError:
        """Map a proxy error body back onto the error taxonomy."""
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return UpstreamServerError(response.status_code, response.text[:500] or "Unknown error")

        message = str(data.get("error") or "Unknown error")
        details = data.get("details")
        error_type = ERRORS_BY_KIND.get(data.get("kind") or "")
        if error_type is None or error_type is UpstreamUnavailable:
            return UpstreamServerError(response.status_code, message, details=details)
        return error_type(message, details=details)

    async def close(self):
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
