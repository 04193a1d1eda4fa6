"""Wire and result models for try-on requests."""

import base64
from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


MIN_IMAGE_COUNT = 1
MAX_IMAGE_COUNT = 4


def clamp_image_count(value: int | None, upper: int = MAX_IMAGE_COUNT) -> int:
    """Clamp a requested image count into [1, upper]; missing means 1."""
    if value is None:
        return MIN_IMAGE_COUNT
    return max(MIN_IMAGE_COUNT, min(upper, value))


class ImagePart(BaseModel):
    """One base64-encoded image in the JSON envelope."""
    data: str
    mime_type: str = "image/jpeg"


class TryOnRequestBody(BaseModel):
    """JSON body of ``POST /api/tryon``."""
    person: ImagePart
    clothing: ImagePart
    imageCount: int | None = None
    isFreeRetry: bool | None = None


class TryOnRequest(BaseModel):
    """Decoded try-on request as seen by the fan-out coordinator."""
    subject_image: bytes = Field(repr=False)
    garment_image: bytes = Field(repr=False)
    subject_mime_type: str = "image/jpeg"
    garment_mime_type: str = "image/jpeg"
    image_count: int = 1
    is_free_retry: bool = False
    request_id: UUID = Field(default_factory=uuid4)


class TryOnResponse(BaseModel):
    """Ordered generated images for one request.

    A single image goes over the wire as a binary body; several go as a
    JSON ``images`` array.
    """
    images: list[bytes] = Field(repr=False)
    media_type: str = "image/png"

    @property
    def is_single(self) -> bool:
        return len(self.images) == 1

    def to_json(self) -> dict[str, list[str]]:
        return {"images": [base64.b64encode(image).decode("ascii") for image in self.images]}


class ErrorBody(BaseModel):
    """JSON error body returned by the proxy."""
    error: str
    details: str | None = None
    kind: str | None = None


class HistoryEntry(BaseModel):
    """A committed try-on result."""
    id: UUID = Field(default_factory=uuid4)
    result_id: UUID
    timestamp: datetime = Field(default_factory=datetime.now)
    subject_image: bytes = Field(repr=False)
    garment_image: bytes = Field(repr=False)
    result_image: bytes = Field(repr=False)
