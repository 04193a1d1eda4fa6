"""Resize and progressively compress images to an upload budget."""

import asyncio
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import TranscodeConfig
from ..errors import EncodingFailure, InvalidInput
from ..models import ImageAsset, TranscodeBudget, TranscodeResult

logger = logging.getLogger(__name__)


def scaled_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Size after fitting the longer side into ``max_dimension``.

    Images already within the limit keep their size.
    """
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    shortest = max(1, round(max_dimension * min(width, height) / longest))
    if width >= height:
        return max_dimension, shortest
    return shortest, max_dimension


class ImageTranscoder:
    """Turns a user-picked image into a JPEG that fits a byte budget.

    Encoding happens in worker threads, one attempt at a time, so the
    event loop stays responsive and only the accepted buffer is kept.
    """

    def __init__(
        self,
        initial_quality: float = 0.8,
        quality_step: float = 0.1,
        max_attempts: int = 5,
    ):
        self.initial_quality = initial_quality
        self.quality_step = quality_step
        self.max_attempts = max_attempts

    @classmethod
    def from_config(cls, config: TranscodeConfig) -> "ImageTranscoder":
        return cls(
            initial_quality=config.initial_quality,
            quality_step=config.quality_step,
            max_attempts=config.max_attempts,
        )

    @staticmethod
    def budget_from_config(config: TranscodeConfig) -> TranscodeBudget:
        return TranscodeBudget(
            max_dimension=config.max_dimension,
            target_bytes=config.target_bytes,
            max_bytes=config.max_bytes,
            min_quality=config.min_quality,
        )

    async def transcode(
        self,
        image: ImageAsset,
        budget: TranscodeBudget,
        role: str | None = None,
    ) -> TranscodeResult:
        """Resize and compress ``image`` until it fits ``budget``.

        Quality steps down from ``initial_quality``; whatever the step size,
        the final attempt is made at ``budget.min_quality``.

        Args:
            image: The source image
            budget: Dimension and size limits
            role: "subject" or "garment", used in error reporting

        Returns:
            TranscodeResult with the accepted JPEG bytes

        Raises:
            EncodingFailure: if even the lowest quality exceeds ``max_bytes``
        """
        prepared = await asyncio.to_thread(self._prepare, image.data, budget.max_dimension)
        try:
            quality = max(self.initial_quality, budget.min_quality)
            if self.max_attempts <= 1:
                quality = budget.min_quality
            attempts = 0

            while True:
                attempts += 1
                data = await asyncio.to_thread(self._encode, prepared, quality)
                logger.debug(
                    "Transcode attempt %d at quality %.2f: %d bytes",
                    attempts, quality, len(data),
                )

                if len(data) <= budget.target_bytes:
                    return self._result(prepared, data, quality, attempts, within_target=True)

                if attempts >= self.max_attempts or quality <= budget.min_quality:
                    break
                quality = max(round(quality - self.quality_step, 4), budget.min_quality)
                # The last allowed attempt always encodes at the floor
                if attempts + 1 >= self.max_attempts:
                    quality = budget.min_quality

            if len(data) <= budget.max_bytes:
                logger.warning(
                    "Accepting %d bytes above target %d at quality %.2f",
                    len(data), budget.target_bytes, quality,
                )
                return self._result(prepared, data, quality, attempts, within_target=False)

            raise EncodingFailure(
                f"Image too large: {len(data)} bytes at quality {quality:.2f} "
                f"exceeds {budget.max_bytes} bytes",
                role=role,
            )
        finally:
            prepared.close()

    def _prepare(self, data: bytes, max_dimension: int) -> Image.Image:
        """Decode, orient, flatten to RGB and downscale."""
        try:
            with Image.open(io.BytesIO(data)) as source:
                img = ImageOps.exif_transpose(source)
                img.load()
        except UnidentifiedImageError as e:
            raise InvalidInput("Unsupported image type", details=str(e)) from e

        if img.mode in ("RGBA", "LA", "P"):
            rgba = img.convert("RGBA")
            flattened = Image.new("RGB", rgba.size, (255, 255, 255))
            flattened.paste(rgba, mask=rgba.getchannel("A"))
            img = flattened
        elif img.mode != "RGB":
            img = img.convert("RGB")

        new_size = scaled_size(img.width, img.height, max_dimension)
        if new_size != img.size:
            img = img.resize(new_size, Image.LANCZOS)
        return img

    def _encode(self, img: Image.Image, quality: float) -> bytes:
        with io.BytesIO() as buf:
            img.save(buf, format="JPEG", quality=int(round(quality * 100)), optimize=True)
            return buf.getvalue()

    def _result(
        self,
        img: Image.Image,
        data: bytes,
        quality: float,
        attempts: int,
        within_target: bool,
    ) -> TranscodeResult:
        return TranscodeResult(
            data=data,
            width=img.width,
            height=img.height,
            quality=quality,
            attempts=attempts,
            within_target=within_target,
        )
