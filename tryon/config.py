"""Configuration management for the try-on proxy and client."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


GEMINI_IMAGE_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-2.0-flash-exp-image-generation:generateContent"
)


class UpstreamConfig(BaseModel):
    """Generation API connection settings."""
    url: str = GEMINI_IMAGE_URL
    timeout: float = 75.0  # generation is slow, but never unbounded
    max_images: int = 4


class TranscodeConfig(BaseModel):
    """Client-side image preparation settings."""
    max_dimension: int = 1024
    target_bytes: int = 500 * 1024
    max_bytes: int = 1024 * 1024
    min_quality: float = 0.3
    initial_quality: float = 0.8
    quality_step: float = 0.1
    max_attempts: int = 5
    max_uncompressed_bytes: int = 10 * 1024 * 1024  # estimated at 4 bytes/pixel


class ClientConfig(BaseModel):
    """Settings for talking to the try-on proxy."""
    api_url: str = "http://127.0.0.1:8000/api/tryon"
    timeout: float = 90.0
    encoding: str = "json"  # "json" or "multipart"
    max_free_retries: int = 1
    history_limit: int = 10


class AnalyticsConfig(BaseModel):
    """Plausible-compatible event endpoint."""
    endpoint: str | None = None
    domain: str | None = None


class TryOnConfig(BaseSettings):
    """Main configuration."""

    # Sub-configs
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)

    # Upstream key (loaded from .env)
    google_api_key: str | None = None

    class Config:
        env_file = ".env"
        env_prefix = ""
        env_nested_delimiter = "__"
        extra = "ignore"


def load_config() -> TryOnConfig:
    """Load configuration from environment and defaults."""
    return TryOnConfig()
