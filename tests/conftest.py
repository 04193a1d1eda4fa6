# Test fixtures and configuration
import asyncio
import io
import os
import sys
from pathlib import Path

import pytest
from PIL import Image

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tryon.models import ImageAsset, TranscodeBudget  # noqa: E402


def encode_image(width: int, height: int, fmt: str = "JPEG", color=(180, 60, 90)) -> bytes:
    """Solid-color image of the given size, encoded in ``fmt``."""
    img = Image.new("RGB", (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def encode_noise(width: int, height: int, fmt: str = "PNG") -> bytes:
    """Random-noise image; compresses badly at any JPEG quality."""
    img = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


class FakeGenerator:
    """Stand-in for GenerationClient returning canned images in call order."""

    def __init__(self, results=None, fail_on: int | None = None, error: Exception | None = None):
        self.results = results
        self.fail_on = fail_on
        self.error = error
        self.calls: list[tuple[bytes, bytes]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, subject_bytes, garment_bytes, subject_mime_type="image/jpeg", garment_mime_type="image/jpeg"):
        index = len(self.calls)
        self.calls.append((subject_bytes, garment_bytes))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # Let every sibling call start before any finishes
            await asyncio.sleep(0.01)
            if self.fail_on is not None and index == self.fail_on:
                raise self.error
            if self.results is not None:
                return self.results[index]
            return f"image-{index}".encode()
        finally:
            self.in_flight -= 1


@pytest.fixture
def subject_asset():
    """800x1200 JPEG photo of the user."""
    return ImageAsset.from_bytes(encode_image(800, 1200, "JPEG"))


@pytest.fixture
def garment_asset():
    """600x600 PNG photo of the garment."""
    return ImageAsset.from_bytes(encode_image(600, 600, "PNG", color=(20, 40, 200)))


@pytest.fixture
def budget():
    return TranscodeBudget(
        max_dimension=1024,
        target_bytes=500 * 1024,
        max_bytes=1024 * 1024,
        min_quality=0.3,
    )
