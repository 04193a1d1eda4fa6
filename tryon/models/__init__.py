"""Data models for the try-on pipeline."""

from .images import ImageAsset, TranscodeBudget, TranscodeResult
from .tryon import (
    ErrorBody,
    HistoryEntry,
    ImagePart,
    TryOnRequest,
    TryOnRequestBody,
    TryOnResponse,
    clamp_image_count,
)

__all__ = [
    "ImageAsset",
    "TranscodeBudget",
    "TranscodeResult",
    "ErrorBody",
    "HistoryEntry",
    "ImagePart",
    "TryOnRequest",
    "TryOnRequestBody",
    "TryOnResponse",
    "clamp_image_count",
]
