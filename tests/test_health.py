"""
Tests for health check endpoints.
"""
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from swarmhook.main import app

client = TestClient(app)


def test_health_liveness():
    """Test liveness health check."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["service"] == "swarmhook"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data


def test_health_readiness(app_service):
    """Test readiness health check."""
    r = client.get("/health/ready")
    # Should be 200 (ready) or 503 (not ready)
    assert r.status_code in [200, 503]
    data = r.json()
    assert data["service"] == "swarmhook"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data
    assert data["checks"]["store"] == {
        "status": "ok",
        "backend": "MemoryStore",
        "latency_ms": data["checks"]["store"]["latency_ms"],
    }
    assert "status" in data


def test_health_readiness_store_down(app_service):
    """Readiness fails when the store cannot be reached."""
    app_service.store.health_check = AsyncMock(return_value=False)

    r = client.get("/health/ready")
    assert r.status_code == 503
    data = r.json()
    assert data["status"] == "not_ready"
    assert data["checks"]["store"]["status"] == "error"


def test_metrics_endpoint(app_service):
    """Test Prometheus metrics endpoint."""
    r = client.get("/metrics")
    assert r.status_code == 200
    # Check for expected metrics
    content = r.text
    assert "http_requests_total" in content
    assert "http_request_duration_seconds" in content
    assert "app_up" in content
    assert "swarmhook_webhooks_received_total" in content
    assert "swarmhook_polls_total" in content


def test_correlation_id_in_response():
    """Test that correlation ID is added to response headers."""
    r = client.get("/health")
    assert "x-correlation-id" in r.headers


def test_correlation_id_propagation():
    """Test that provided correlation ID is propagated."""
    correlation_id = "test-correlation-id-123"
    r = client.get("/health", headers={"x-correlation-id": correlation_id})
    assert r.headers["x-correlation-id"] == correlation_id
