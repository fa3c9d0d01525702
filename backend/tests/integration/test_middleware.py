"""
Integration tests for FastAPI middleware (CORS, correlation_id) and the
error envelope.
"""
import uuid

import pytest
from fastapi.testclient import TestClient

from salonbook.api.app import app

client = TestClient(app)


def test_cors_headers_included():
    """Test that CORS headers are included in responses."""
    response = client.get(
        "/health",
        headers={"Origin": "http://localhost:3000"}
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_cors_preflight_request():
    """Test CORS preflight (OPTIONS) request."""
    response = client.options(
        "/bookings",
        headers={
            "Origin": "http://localhost:8081",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization,content-type",
        }
    )

    assert response.status_code == 200
    assert "access-control-allow-origin" in response.headers
    assert "access-control-allow-methods" in response.headers


def test_unknown_origin_not_allowed():
    response = client.get("/health", headers={"Origin": "http://evil.example"})

    assert response.status_code == 200
    assert "access-control-allow-origin" not in response.headers


def test_correlation_id_generated():
    """Test that correlation ID is generated if not provided."""
    response = client.get("/health")

    assert response.status_code == 200
    correlation_id = response.headers["X-Correlation-ID"]
    try:
        uuid.UUID(correlation_id)
    except ValueError:
        pytest.fail(f"Correlation ID is not a valid UUID: {correlation_id}")


def test_correlation_id_preserved():
    """Test that provided correlation ID is preserved in response."""
    custom_correlation_id = str(uuid.uuid4())

    response = client.get(
        "/health",
        headers={"X-Correlation-ID": custom_correlation_id}
    )

    assert response.status_code == 200
    assert response.headers["X-Correlation-ID"] == custom_correlation_id


def test_correlation_id_in_error_body():
    """Auth failures use the error envelope and echo the correlation ID."""
    custom_correlation_id = str(uuid.uuid4())

    response = client.get(
        "/bookings/my-bookings",
        headers={"X-Correlation-ID": custom_correlation_id}
    )

    assert response.status_code == 401
    assert response.headers["X-Correlation-ID"] == custom_correlation_id
    body = response.json()
    assert body["error"] == "Access token required"
    assert body["correlation_id"] == custom_correlation_id


def test_request_validation_error_envelope():
    """Malformed path parameters produce a 422 with field details."""
    response = client.get("/bookings/availability/not-a-uuid/also-not/2030-01-07")

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Validation error"
    assert body["details"]["errors"]
    assert "correlation_id" in body


def test_unknown_route_is_404_envelope():
    response = client.get("/no-such-route")

    assert response.status_code == 404
    assert "error" in response.json()


def test_cors_credentials_allowed():
    """Test that CORS credentials are allowed."""
    response = client.get(
        "/health",
        headers={"Origin": "http://localhost:3000"}
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-credentials"] == "true"


def test_multiple_origins_supported():
    """Test that multiple configured origins are supported."""
    origins = [
        "http://localhost:3000",
        "http://localhost:8081",
        "http://127.0.0.1:3000",
    ]

    for origin in origins:
        response = client.get(
            "/health",
            headers={"Origin": origin}
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == origin


def test_lifespan_events():
    """
    Test that lifespan events execute without errors.
    The scheduler is disabled in tests, so nothing is started.
    """
    with TestClient(app) as test_client:
        response = test_client.get("/health")
        assert response.status_code == 200
