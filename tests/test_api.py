"""API endpoint tests using FastAPI TestClient."""

import base64
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api.server import app
from tryon.config import UpstreamConfig
from tryon.errors import ConfigurationError, UpstreamServerError, UpstreamTimeout
from tryon.services import FanoutCoordinator, GenerationClient, RequestEncoder

from conftest import FakeGenerator, encode_image


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def test_root_endpoint(self, client):
        """Root endpoint returns OK status."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "service" in data
        assert "version" in data

    def test_health_endpoint(self, client):
        """Health endpoint reports upstream configuration."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] in ("ok", "degraded")
        assert "upstream" in data


class TestRoundTrip:
    """Both request encodings reach the generator byte-identical."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    @pytest.fixture
    def images(self):
        return encode_image(320, 480, "JPEG"), encode_image(200, 200, "PNG")

    @pytest.mark.parametrize("mode", ["json", "multipart"])
    def test_images_arrive_unchanged(self, client, images, mode):
        subject, garment = images
        generator = FakeGenerator()
        payload = RequestEncoder().encode(subject, garment, mode)

        with patch("api.server.get_coordinator", return_value=FanoutCoordinator(generator)):
            response = client.post(
                "/api/tryon", content=payload.body, headers={"Content-Type": payload.content_type}
            )

        assert response.status_code == 200
        assert generator.calls == [(subject, garment)]

    @pytest.mark.parametrize("mode", ["json", "multipart"])
    def test_image_count_and_retry_flag_are_read(self, client, images, mode):
        subject, garment = images
        generator = FakeGenerator()
        payload = RequestEncoder().encode(subject, garment, mode, image_count=3, is_free_retry=True)

        with patch("api.server.get_coordinator", return_value=FanoutCoordinator(generator)):
            response = client.post(
                "/api/tryon", content=payload.body, headers={"Content-Type": payload.content_type}
            )

        assert response.status_code == 200
        assert len(response.json()["images"]) == 3


class TestResponseCardinality:
    """Single images are binary; several are a JSON array."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def post(self, client, generator, image_count):
        payload = RequestEncoder().encode(b"subject", b"garment", "json", image_count=image_count)
        with patch("api.server.get_coordinator", return_value=FanoutCoordinator(generator)):
            return client.post(
                "/api/tryon", content=payload.body, headers={"Content-Type": payload.content_type}
            )

    def test_single_image_is_binary_png(self, client):
        response = self.post(client, FakeGenerator(results=[b"\x89PNGresult"]), 1)

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content == b"\x89PNGresult"

    def test_four_images_are_json(self, client):
        response = self.post(client, FakeGenerator(), 4)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        images = [base64.b64decode(i) for i in response.json()["images"]]
        assert images == [b"image-0", b"image-1", b"image-2", b"image-3"]

    def test_seven_is_clamped_to_four(self, client):
        generator = FakeGenerator()
        response = self.post(client, generator, 7)

        assert len(response.json()["images"]) == 4
        assert len(generator.calls) == 4

    def test_zero_is_clamped_to_one(self, client):
        response = self.post(client, FakeGenerator(), 0)

        assert response.headers["content-type"] == "image/png"
        assert response.content == b"image-0"

    def test_scenario_four_distinct_images(self, client):
        """800x1200 JPEG subject, 600x600 PNG garment, four distinct results."""
        subject = encode_image(800, 1200, "JPEG")
        garment = encode_image(600, 600, "PNG")
        results = [b"result-a", b"result-b", b"result-c", b"result-d"]
        generator = FakeGenerator(results=results)
        payload = RequestEncoder().encode(
            subject, garment, "json", image_count=4,
            subject_mime_type="image/jpeg", garment_mime_type="image/png",
        )

        with patch("api.server.get_coordinator", return_value=FanoutCoordinator(generator)):
            response = client.post(
                "/api/tryon", content=payload.body, headers={"Content-Type": payload.content_type}
            )

        assert response.status_code == 200
        assert response.json() == {"images": [base64.b64encode(r).decode() for r in results]}


class TestErrorResponses:
    """Failures produce JSON error bodies and never partial results."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def post_json(self, client, generator, image_count=1):
        payload = RequestEncoder().encode(b"subject", b"garment", "json", image_count=image_count)
        with patch("api.server.get_coordinator", return_value=FanoutCoordinator(generator)):
            return client.post(
                "/api/tryon", content=payload.body, headers={"Content-Type": payload.content_type}
            )

    def test_one_failed_call_fails_everything(self, client):
        generator = FakeGenerator(fail_on=2, error=UpstreamServerError(503, "overloaded"))

        response = self.post_json(client, generator, image_count=4)

        assert response.status_code == 500
        data = response.json()
        assert "images" not in data
        assert "503" in data["error"]
        assert data["kind"] == "upstream_unavailable"

    def test_timeout_kind(self, client):
        generator = FakeGenerator(fail_on=0, error=UpstreamTimeout("Generation timed out after 75s"))

        response = self.post_json(client, generator)

        assert response.status_code == 500
        assert response.json()["kind"] == "upstream_timeout"

    def test_missing_api_key(self, client):
        generator = FakeGenerator(fail_on=0, error=ConfigurationError("GOOGLE_API_KEY not configured"))

        response = self.post_json(client, generator)

        assert response.status_code == 500
        assert response.json()["error"] == "Service not properly configured"

    def test_missing_clothing(self, client):
        response = client.post("/api/tryon", json={"person": {"data": "YWJj", "mime_type": "image/jpeg"}})

        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_input"

    def test_invalid_base64(self, client):
        response = client.post("/api/tryon", json={
            "person": {"data": "!!!", "mime_type": "image/jpeg"},
            "clothing": {"data": "YWJj", "mime_type": "image/jpeg"},
        })

        assert response.status_code == 400

    def test_multipart_missing_part(self, client):
        response = client.post(
            "/api/tryon",
            files={"person": ("person.jpg", b"\xff\xd8data", "image/jpeg")},
        )

        assert response.status_code == 400
        assert "clothing" in response.json()["error"]


class TestLifespan:

    def test_shutdown_closes_upstream_client(self):
        generator = GenerationClient(UpstreamConfig(url="https://upstream.test/generate"), api_key="key")
        http_client = generator.client

        with patch("api.server._coordinator", FanoutCoordinator(generator)):
            with TestClient(app):
                pass

        assert http_client.is_closed
