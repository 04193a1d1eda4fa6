"""Image and transcode-budget models."""

import io

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field, model_validator

from ..errors import InvalidInput


_FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "HEIF": "image/heic",
}


class ImageAsset(BaseModel):
    """An encoded image picked by the user, with its declared size.

    Dimensions are not validated here; the orchestrator rejects empty or
    oversized images with a user-facing error.
    """

    data: bytes = Field(repr=False)
    width: int
    height: int
    mime_type: str = "image/jpeg"

    @property
    def estimated_uncompressed_bytes(self) -> int:
        return max(self.width, 0) * max(self.height, 0) * 4

    @classmethod
    def from_bytes(cls, data: bytes) -> "ImageAsset":
        """Probe size and format of encoded image bytes with Pillow."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
                mime_type = _FORMAT_MIME_TYPES.get(img.format or "", "image/jpeg")
        except UnidentifiedImageError as e:
            raise InvalidInput("Unsupported image type", details=str(e)) from e
        return cls(data=data, width=width, height=height, mime_type=mime_type)


class TranscodeBudget(BaseModel):
    """Size constraints an image must meet before upload."""

    max_dimension: int = Field(gt=0)
    target_bytes: int = Field(gt=0)
    max_bytes: int = Field(gt=0)
    min_quality: float = Field(gt=0.0, le=1.0)

    @model_validator(mode="after")
    def _target_within_max(self) -> "TranscodeBudget":
        if self.target_bytes > self.max_bytes:
            raise ValueError("target_bytes must not exceed max_bytes")
        return self


class TranscodeResult(BaseModel):
    """Output of a successful transcode."""

    data: bytes = Field(repr=False)
    width: int
    height: int
    quality: float
    attempts: int
    within_target: bool
    mime_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.data)
