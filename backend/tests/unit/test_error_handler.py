"""
Tests for error handler middleware and custom exceptions.
"""
import pytest
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from salonbook.api.middleware.error_handler import (
    AppException,
    NotFoundException,
    UnauthorizedException,
    ForbiddenException,
    ConflictException,
    ValidationException,
    CorrelationException,
    SignatureException,
    GatewayException,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)


@pytest.mark.unit
def test_not_found_exception():
    exc = NotFoundException("Booking", "123")

    assert exc.message == "Booking with id '123' not found"
    assert exc.status_code == 404
    assert exc.details == {"resource": "Booking", "resource_id": "123"}


@pytest.mark.unit
def test_not_found_exception_without_id():
    exc = NotFoundException("Store")

    assert exc.message == "Store not found"
    assert exc.status_code == 404


@pytest.mark.unit
@pytest.mark.parametrize(
    "exc,expected_status",
    [
        (UnauthorizedException(), 401),
        (ForbiddenException(), 403),
        (ConflictException("Time slot not available"), 409),
        (ValidationException("Invalid"), 422),
        (CorrelationException("Invalid receipt format"), 422),
        (SignatureException(), 400),
        (GatewayException("Gateway down"), 502),
        (AppException("Boom"), 500),
    ],
)
def test_exception_status_codes(exc, expected_status):
    assert exc.status_code == expected_status


@pytest.mark.unit
def test_validation_exception_wraps_errors():
    exc = ValidationException("Invalid availability", errors={"availability[0]": "bad day"})
    assert exc.details == {"errors": {"availability[0]": "bad day"}}


class Item(BaseModel):
    name: str = Field(..., min_length=2)


@pytest.fixture
def error_app():
    """Minimal app wired with the handlers, routes raising each error type."""
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.middleware("http")
    async def set_correlation(request: Request, call_next):
        request.state.correlation_id = "test-correlation"
        return await call_next(request)

    @app.get("/conflict")
    def conflict():
        raise ConflictException("Time slot not available")

    @app.get("/not-found")
    def not_found():
        raise NotFoundException("Booking", "abc")

    @app.post("/items")
    def create_item(item: Item):
        return item

    @app.get("/crash")
    def crash():
        raise RuntimeError("unexpected")

    return app


@pytest.mark.unit
def test_app_exception_response_shape(error_app):
    response = TestClient(error_app).get("/conflict")

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "Time slot not available"
    assert body["correlation_id"] == "test-correlation"
    assert "details" not in body


@pytest.mark.unit
def test_app_exception_includes_details(error_app):
    body = TestClient(error_app).get("/not-found").json()
    assert body["details"]["resource"] == "Booking"


@pytest.mark.unit
def test_request_validation_error_is_422(error_app):
    response = TestClient(error_app).post("/items", json={"name": "x"})

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Validation error"
    assert body["details"]["errors"][0]["loc"] == ["body", "name"]


@pytest.mark.unit
def test_unknown_route_uses_http_handler(error_app):
    response = TestClient(error_app).get("/missing")

    assert response.status_code == 404
    assert response.json()["error"] == "Not Found"


@pytest.mark.unit
def test_unhandled_exception_is_500(error_app):
    client = TestClient(error_app, raise_server_exceptions=False)
    response = client.get("/crash")

    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"
