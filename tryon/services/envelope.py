"""Normalization of generation-service responses.

The service answers in one of three shapes: a raw ``image/*`` body, a
``generateContent`` JSON document with images nested under
``candidates[0].content.parts[].inlineData``, or a plain
``{"images": [...]}`` bundle (also produced by our own proxy). Responses
are first classified into one of the envelope types below and then turned
into image bytes; anything else is a decode failure.
"""

import base64
import binascii
import json
from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..errors import UpstreamDecodeFailure


class InlineData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mime_type: str | None = Field(
        default=None, validation_alias=AliasChoices("mimeType", "mime_type")
    )
    data: str


class Part(BaseModel):
    text: str | None = None
    inline_data: InlineData | None = Field(
        default=None, validation_alias=AliasChoices("inlineData", "inline_data")
    )


class Content(BaseModel):
    parts: list[Part] = Field(default_factory=list)


class Candidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: Content | None = None
    finish_reason: str | None = Field(
        default=None, validation_alias=AliasChoices("finishReason", "finish_reason")
    )


class PromptFeedback(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    block_reason: str | None = Field(
        default=None, validation_alias=AliasChoices("blockReason", "block_reason")
    )


class GenerateContentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    candidates: list[Candidate] = Field(default_factory=list)
    prompt_feedback: PromptFeedback | None = Field(
        default=None, validation_alias=AliasChoices("promptFeedback", "prompt_feedback")
    )


@dataclass(frozen=True)
class BinaryEnvelope:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class CandidatesEnvelope:
    response: GenerateContentResponse


@dataclass(frozen=True)
class ImagesEnvelope:
    images: list[str]


UpstreamEnvelope = BinaryEnvelope | CandidatesEnvelope | ImagesEnvelope


def parse_envelope(content_type: str | None, body: bytes) -> UpstreamEnvelope:
    """Classify a 2xx response body by content type and shape."""
    media_type = (content_type or "").split(";", 1)[0].strip().lower()

    if media_type.startswith("image/"):
        return BinaryEnvelope(data=body, mime_type=media_type)

    if media_type != "application/json" and not media_type.endswith("+json"):
        raise UpstreamDecodeFailure(
            f"Unexpected content type: {content_type or 'none'}"
        )

    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise UpstreamDecodeFailure("Response is not valid JSON", details=str(e)) from e

    if isinstance(document, list):
        if all(isinstance(item, str) for item in document):
            return ImagesEnvelope(images=document)
        raise UpstreamDecodeFailure("Unexpected JSON array in response")

    if not isinstance(document, dict):
        raise UpstreamDecodeFailure("Unexpected JSON value in response")

    if "images" in document:
        images = document["images"]
        if not isinstance(images, list) or not all(isinstance(i, str) for i in images):
            raise UpstreamDecodeFailure("'images' must be a list of base64 strings")
        return ImagesEnvelope(images=images)

    if "candidates" in document or "promptFeedback" in document:
        try:
            return CandidatesEnvelope(response=GenerateContentResponse.model_validate(document))
        except ValidationError as e:
            raise UpstreamDecodeFailure("Malformed candidates response", details=str(e)) from e

    raise UpstreamDecodeFailure("Response contains no image data")


def extract_images(envelope: UpstreamEnvelope) -> list[bytes]:
    """Pull image bytes out of a classified envelope; never empty."""
    if isinstance(envelope, BinaryEnvelope):
        if not envelope.data:
            raise UpstreamDecodeFailure("Empty image body")
        return [envelope.data]

    if isinstance(envelope, ImagesEnvelope):
        if not envelope.images:
            raise UpstreamDecodeFailure("Response contains an empty image list")
        return [_b64decode(image) for image in envelope.images]

    response = envelope.response
    if not response.candidates:
        reason = response.prompt_feedback.block_reason if response.prompt_feedback else None
        if reason:
            raise UpstreamDecodeFailure(f"No candidates in response (blocked: {reason})")
        raise UpstreamDecodeFailure("No candidates in response")

    content = response.candidates[0].content
    images = [
        _b64decode(part.inline_data.data)
        for part in (content.parts if content else [])
        if part.inline_data is not None
        and (part.inline_data.mime_type or "image/").startswith("image/")
    ]
    if not images:
        finish_reason = response.candidates[0].finish_reason
        suffix = f" (finish reason: {finish_reason})" if finish_reason else ""
        raise UpstreamDecodeFailure(f"No image data in candidate{suffix}")
    return images


def normalize_response(content_type: str | None, body: bytes) -> list[bytes]:
    return extract_images(parse_envelope(content_type, body))


def _b64decode(data: str) -> bytes:
    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise UpstreamDecodeFailure("Image data is not valid base64", details=str(e)) from e
    if not decoded:
        raise UpstreamDecodeFailure("Image data is empty")
    return decoded
