"""
Integration tests for /metrics endpoint and metrics collection.
"""

import pytest
from httpx import AsyncClient, ASGITransport

from salonbook.api.app import app
from salonbook.lib.metrics import get_metrics_collector, reset_metrics


@pytest.fixture(autouse=True)
def clear_metrics():
    """Clear metrics before each test."""
    reset_metrics()
    yield
    reset_metrics()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_metrics_endpoint_returns_prometheus_format():
    """Test /metrics endpoint returns Prometheus text format."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/plain; version=0.0.4; charset=utf-8"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_metrics_endpoint_empty_when_no_metrics():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert response.text == ""


@pytest.mark.integration
@pytest.mark.asyncio
async def test_metrics_endpoint_exports_after_activity():
    """Counters recorded by the services show up in the export."""
    metrics = get_metrics_collector()
    metrics.increment_bookings_created(payment_percentage=50, amount=2)
    metrics.increment_booking_conflicts()
    metrics.increment_payment_events("CAPTURED", "WEBHOOK", "duplicate")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/metrics")

    assert response.status_code == 200
    text = response.text
    assert "# TYPE bookings_created_total counter" in text
    assert 'bookings_created_total{payment_percentage="50"} 2' in text
    assert "booking_conflicts_total 1" in text
    assert 'payment_events_total{kind="CAPTURED",outcome="duplicate",source="WEBHOOK"} 1' in text
