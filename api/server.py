"""FastAPI proxy for Virtual Try-On.

Receives requests from the mobile client with:
- person: photo of the user (base64 JSON part or multipart file)
- clothing: photo of the garment (base64 JSON part or multipart file)
- imageCount: optional number of candidates (clamped to 1-4)
- isFreeRetry: optional flag for free regenerations
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from tryon import __version__
from tryon.config import TryOnConfig
from tryon.errors import ConfigurationError, InvalidInput, UpstreamError
from tryon.models import ErrorBody, TryOnRequest, TryOnRequestBody, clamp_image_count
from tryon.services import FanoutCoordinator, GenerationClient
from tryon.services.encoder import decode_json_request, parse_form_count, parse_form_flag


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the upstream client on shutdown."""
    yield
    if _coordinator is not None and isinstance(_coordinator.generator, GenerationClient):
        await _coordinator.generator.close()


app = FastAPI(
    title="Try-On Proxy",
    description="Fans a virtual try-on request out to an image generation API",
    version=__version__,
    lifespan=lifespan,
)

# Mobile clients and the test page call from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Initialized on first request
_config: TryOnConfig | None = None
_coordinator: FanoutCoordinator | None = None


def get_config() -> TryOnConfig:
    """Get or load the configuration."""
    global _config
    if _config is None:
        _config = TryOnConfig()  # Loads from .env automatically via pydantic-settings
    return _config


def get_coordinator() -> FanoutCoordinator:
    """Get or create the fan-out coordinator."""
    global _coordinator
    if _coordinator is None:
        config = get_config()
        client = GenerationClient(config.upstream, api_key=config.google_api_key)
        _coordinator = FanoutCoordinator(client, max_images=config.upstream.max_images)
    return _coordinator


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Virtual Try-On Proxy", "version": __version__}


@app.get("/health")
async def health():
    """Detailed health check."""
    configured = bool(get_config().google_api_key)
    return {
        "status": "ok" if configured else "degraded",
        "upstream": "configured" if configured else "not configured",
    }


def error_response(
    status_code: int,
    error: str,
    details: str | None = None,
    kind: str | None = None,
) -> JSONResponse:
    body = ErrorBody(error=error, details=details, kind=kind)
    return JSONResponse(body.model_dump(exclude_none=True), status_code=status_code)


async def read_tryon_request(request: Request, max_images: int = 4) -> TryOnRequest:
    """Decode a JSON or multipart try-on request body."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        person = form.get("person")
        clothing = form.get("clothing")
        if not isinstance(person, UploadFile) or not isinstance(clothing, UploadFile):
            raise InvalidInput("Missing 'person' or 'clothing' file")

        subject_bytes = await person.read()
        garment_bytes = await clothing.read()
        if not subject_bytes or not garment_bytes:
            raise InvalidInput("Uploaded image is empty")

        image_count = form.get("imageCount")
        is_free_retry = form.get("isFreeRetry")
        return TryOnRequest(
            subject_image=subject_bytes,
            garment_image=garment_bytes,
            subject_mime_type=person.content_type or "image/jpeg",
            garment_mime_type=clothing.content_type or "image/jpeg",
            image_count=clamp_image_count(
                parse_form_count(image_count if isinstance(image_count, str) else None),
                max_images,
            ),
            is_free_retry=parse_form_flag(is_free_retry if isinstance(is_free_retry, str) else None),
        )

    try:
        body = TryOnRequestBody.model_validate_json(await request.body())
    except ValidationError as e:
        raise InvalidInput("Invalid request body", details=str(e)) from e
    return decode_json_request(body, max_images)


@app.post("/api/tryon")
async def generate_tryon(request: Request):
    """Generate one or more virtual try-on images.

    Returns:
        A binary ``image/png`` body for a single image, otherwise
        ``{"images": [<base64>, ...]}`` in generation order
    """
    try:
        tryon_request = await read_tryon_request(request, get_config().upstream.max_images)
    except InvalidInput as e:
        return error_response(400, e.message, e.details, e.kind)

    try:
        result = await get_coordinator().handle(tryon_request)
    except ConfigurationError as e:
        logger.error("Upstream not configured: %s", e)
        return error_response(500, "Service not properly configured", str(e))
    except UpstreamError as e:
        logger.error("Upstream failure: %s", e)
        return error_response(500, str(e), e.details, e.kind)
    except Exception as e:
        logger.exception("Unexpected error in try-on endpoint")
        return error_response(500, "Internal server error", str(e))

    if result.is_single:
        return Response(content=result.images[0], media_type=result.media_type)
    return JSONResponse(result.to_json())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
