"""Tests for FastAPI application and exception handlers.

REST API with a consistent error envelope and security headers.
"""

from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from profile_builder.api.deps import get_collaborators
from profile_builder.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from profile_builder.main import create_app
from tests.conftest import FakeCollaborators


@pytest.fixture
def app():
    """Create test application instance with fake collaborators."""
    application = create_app()
    application.dependency_overrides[get_collaborators] = FakeCollaborators
    return application


@pytest_asyncio.fixture
async def client(app):
    """Create async HTTP client for testing."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_returns_healthy_status(self, client):
        """Health endpoint should return 200 with healthy status."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestAPIVersioning:
    """Tests for API versioning."""

    @pytest.mark.asyncio
    async def test_v1_router_mounted(self, client):
        """Pipelines router should be mounted at /api/v1."""
        response = await client.get("/api/v1/pipelines/unknown-id")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestExceptionHandlers:
    """Tests for exception handlers.

    These tests verify that our custom exceptions are properly
    converted to HTTP responses with the correct error envelope.
    """

    @pytest.mark.asyncio
    async def test_validation_error_returns_400(self, app, client):
        """ValidationError should return 400 with error envelope."""

        @app.get("/test/validation-error")
        async def raise_validation_error():
            raise ValidationError("Invalid input", details=[{"field": "value"}])

        response = await client.get("/test/validation-error")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"] == [{"field": "value"}]

    @pytest.mark.asyncio
    async def test_not_found_error_returns_404(self, app, client):
        """NotFoundError should return 404 with error envelope."""

        @app.get("/test/not-found-error")
        async def raise_not_found_error():
            raise NotFoundError("Pipeline", "123")

        response = await client.get("/test/not-found-error")

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Pipeline with id '123' not found"

    @pytest.mark.asyncio
    async def test_conflict_error_returns_409(self, app, client):
        """ConflictError should keep its own code."""

        @app.get("/test/conflict-error")
        async def raise_conflict_error():
            raise ConflictError("PIPELINE_BUSY", "A step is already running")

        response = await client.get("/test/conflict-error")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "PIPELINE_BUSY"

    @pytest.mark.asyncio
    async def test_invalid_state_error_returns_422(self, app, client):
        """InvalidStateError should return 422 with error envelope."""

        @app.get("/test/invalid-state-error")
        async def raise_invalid_state_error():
            raise InvalidStateError("No question is awaiting an answer")

        response = await client.get("/test/invalid-state-error")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_STATE_TRANSITION"

    @pytest.mark.asyncio
    async def test_request_validation_uses_envelope(self, client, monkeypatch):
        """Malformed request bodies should return 400 VALIDATION_ERROR."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        response = await client.post("/api/v1/pipelines", json={"rawText": 12})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["message"] == "Request validation failed"
        assert error["details"][0]["loc"] == ["body", "rawText"]

    @pytest.mark.asyncio
    async def test_unhandled_exception_returns_500(self, app, client):
        """Unexpected exceptions should not leak their message."""

        @app.get("/test/unhandled")
        async def raise_unhandled():
            raise RuntimeError("collaborator host 10.0.0.5 refused")

        response = await client.get("/test/unhandled")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert "10.0.0.5" not in error["message"]

    @pytest.mark.asyncio
    async def test_error_response_has_correct_envelope(self, app, client):
        """All error responses should use {"error": {...}} envelope."""

        @app.get("/test/envelope-check")
        async def raise_error():
            raise NotFoundError("Pending diff")

        response = await client.get("/test/envelope-check")
        data = response.json()

        assert "error" in data
        assert "code" in data["error"]
        assert "message" in data["error"]
        assert "data" not in data


class TestCORSMiddleware:
    """Tests for CORS middleware configuration."""

    @pytest.mark.asyncio
    async def test_cors_allows_configured_origin(self, client):
        """CORS should allow requests from configured origins."""
        response = await client.options(
            "/health",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code == 200
        assert (
            response.headers.get("access-control-allow-origin")
            == "http://localhost:3000"
        )

    @pytest.mark.asyncio
    async def test_cors_denies_unconfigured_origin(self):
        """CORS should deny requests from unconfigured origins."""
        with patch(
            "profile_builder.main.settings.allowed_origins", ["http://allowed-origin.com"]
        ):
            test_app = create_app()
            transport = ASGITransport(app=test_app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                response = await ac.options(
                    "/health",
                    headers={
                        "Origin": "http://malicious-site.com",
                        "Access-Control-Request-Method": "GET",
                    },
                )

        allowed_origin = response.headers.get("access-control-allow-origin")
        assert allowed_origin != "http://malicious-site.com"


class TestSecurityHeadersMiddleware:
    """Tests for security headers middleware."""

    @pytest.mark.asyncio
    async def test_x_frame_options_header(self, client):
        """X-Frame-Options header should be DENY."""
        response = await client.get("/health")
        assert response.headers.get("x-frame-options") == "DENY"

    @pytest.mark.asyncio
    async def test_x_content_type_options_header(self, client):
        """X-Content-Type-Options header should be nosniff."""
        response = await client.get("/health")
        assert response.headers.get("x-content-type-options") == "nosniff"

    @pytest.mark.asyncio
    async def test_cache_control_on_api_endpoints(self, client):
        """API responses carry profile data and must not be cached."""
        response = await client.get("/api/v1/pipelines/unknown-id")
        assert "no-store" in response.headers.get("cache-control", "")

    @pytest.mark.asyncio
    async def test_cache_control_not_on_health(self, client):
        """Health endpoint (not under /api/) may be cached."""
        response = await client.get("/health")
        assert "no-store" not in response.headers.get("cache-control", "")

    @pytest.mark.asyncio
    async def test_hsts_only_in_production(self, client):
        """Strict-Transport-Security should be added in production only."""
        response = await client.get("/health")
        assert "strict-transport-security" not in response.headers

        with patch("profile_builder.main.settings.environment", "production"):
            response = await client.get("/health")

        assert "max-age=31536000" in response.headers["strict-transport-security"]
