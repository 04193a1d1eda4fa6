"""Request payload encoding for the try-on endpoint.

Two encodings exist: a multipart form (the original mobile upload) and a
base64 JSON envelope. Both must hand the server byte-identical images.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from enum import Enum

import httpx

from ..errors import InvalidInput
from ..models import TryOnRequest, TryOnRequestBody, clamp_image_count


# Only the body and headers of this request are used
_FORM_URL = "http://localhost/api/tryon"


class EncodingMode(str, Enum):
    MULTIPART = "multipart"
    JSON = "json"


@dataclass(frozen=True)
class EncodedPayload:
    """A ready-to-send request body and its Content-Type header."""
    content_type: str
    body: bytes


class RequestEncoder:
    """Packages subject and garment images into a request body."""

    def encode(
        self,
        subject_bytes: bytes,
        garment_bytes: bytes,
        mode: EncodingMode | str = EncodingMode.JSON,
        *,
        image_count: int | None = None,
        is_free_retry: bool | None = None,
        subject_mime_type: str = "image/jpeg",
        garment_mime_type: str = "image/jpeg",
    ) -> EncodedPayload:
        mode = EncodingMode(mode)
        if mode is EncodingMode.MULTIPART:
            return self.encode_multipart(
                subject_bytes,
                garment_bytes,
                image_count=image_count,
                is_free_retry=is_free_retry,
            )
        return self.encode_json(
            subject_bytes,
            garment_bytes,
            image_count=image_count,
            is_free_retry=is_free_retry,
            subject_mime_type=subject_mime_type,
            garment_mime_type=garment_mime_type,
        )

    def encode_multipart(
        self,
        subject_bytes: bytes,
        garment_bytes: bytes,
        *,
        image_count: int | None = None,
        is_free_retry: bool | None = None,
        boundary: str | None = None,
    ) -> EncodedPayload:
        fields: dict[str, str] = {}
        if image_count is not None:
            fields["imageCount"] = str(image_count)
        if is_free_retry is not None:
            fields["isFreeRetry"] = "true" if is_free_retry else "false"

        # httpx picks a random boundary unless one is set on the header
        headers = {"Content-Type": f"multipart/form-data; boundary={boundary}"} if boundary else None
        request = httpx.Request(
            "POST",
            _FORM_URL,
            headers=headers,
            data=fields,
            files={
                "person": ("person.jpg", subject_bytes, "image/jpeg"),
                "clothing": ("clothing.jpg", garment_bytes, "image/jpeg"),
            },
        )
        return EncodedPayload(
            content_type=request.headers["Content-Type"],
            body=request.read(),
        )

    def encode_json(
        self,
        subject_bytes: bytes,
        garment_bytes: bytes,
        *,
        image_count: int | None = None,
        is_free_retry: bool | None = None,
        subject_mime_type: str = "image/jpeg",
        garment_mime_type: str = "image/jpeg",
    ) -> EncodedPayload:
        payload: dict = {
            "person": {
                "data": base64.b64encode(subject_bytes).decode("ascii"),
                "mime_type": subject_mime_type,
            },
            "clothing": {
                "data": base64.b64encode(garment_bytes).decode("ascii"),
                "mime_type": garment_mime_type,
            },
        }
        if image_count is not None:
            payload["imageCount"] = image_count
        if is_free_retry is not None:
            payload["isFreeRetry"] = is_free_retry
        return EncodedPayload(
            content_type="application/json",
            body=json.dumps(payload).encode("utf-8"),
        )


def decode_base64_image(data: str, field: str) -> bytes:
    """Decode a base64 image, tolerating a ``data:`` URL prefix."""
    if data.startswith("data:"):
        _, data = data.split(",", 1)
    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput(f"'{field}' is not valid base64", details=str(e)) from e
    if not decoded:
        raise InvalidInput(f"'{field}' image is empty")
    return decoded


def decode_json_request(body: TryOnRequestBody, max_images: int = 4) -> TryOnRequest:
    """Turn the JSON envelope into a ``TryOnRequest``."""
    return TryOnRequest(
        subject_image=decode_base64_image(body.person.data, "person"),
        garment_image=decode_base64_image(body.clothing.data, "clothing"),
        subject_mime_type=body.person.mime_type,
        garment_mime_type=body.clothing.mime_type,
        image_count=clamp_image_count(body.imageCount, max_images),
        is_free_retry=bool(body.isFreeRetry),
    )


def parse_form_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


def parse_form_count(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as e:
        raise InvalidInput(f"'imageCount' must be an integer, got {value!r}") from e
