"""Fan-out of one try-on request into parallel generation calls."""

import asyncio
import logging
import time
from typing import Protocol

from ..models import TryOnRequest, TryOnResponse, clamp_image_count

logger = logging.getLogger(__name__)


class ImageGenerator(Protocol):
    async def generate(
        self,
        subject_bytes: bytes,
        garment_bytes: bytes,
        subject_mime_type: str = "image/jpeg",
        garment_mime_type: str = "image/jpeg",
    ) -> bytes: ...


class FanoutCoordinator:
    """Runs N generation calls concurrently and aggregates all-or-nothing.

    Results are never cached; every request regenerates.
    """

    def __init__(self, generator: ImageGenerator, max_images: int = 4):
        self.generator = generator
        self.max_images = max_images

    async def handle(self, request: TryOnRequest) -> TryOnResponse:
        """Generate ``request.image_count`` images (clamped to [1, max]).

        If any single call fails the whole request fails with that call's
        error; no partial image set is returned.
        """
        count = clamp_image_count(request.image_count, self.max_images)
        logger.info(
            "Try-on %s: generating %d image(s)%s",
            request.request_id, count, " (free retry)" if request.is_free_retry else "",
        )
        started = time.monotonic()

        try:
            images = await asyncio.gather(*(
                self.generator.generate(
                    request.subject_image,
                    request.garment_image,
                    request.subject_mime_type,
                    request.garment_mime_type,
                )
                for _ in range(count)
            ))
        except Exception:
            logger.warning(
                "Try-on %s failed after %.1fs",
                request.request_id, time.monotonic() - started,
            )
            raise

        logger.info(
            "Try-on %s: %d image(s) in %.1fs",
            request.request_id, len(images), time.monotonic() - started,
        )
        return TryOnResponse(images=list(images))
