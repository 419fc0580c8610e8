"""Tests for middleware components."""
import pytest
from httpx import AsyncClient, ASGITransport
from swarmhook.main import app
from swarmhook.config import get_settings

settings = get_settings()


@pytest.mark.asyncio
async def test_correlation_id_injection(app_service):
    """Test that correlation ID is auto-generated if not provided."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/v1/inboxes", json={})
        assert response.status_code == 201
        assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_correlation_id_preserved(app_service):
    """Test that provided correlation ID is preserved."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        correlation_id = "test-correlation-123"
        response = await client.get(
            "/in/inbox_missing",
            headers={"X-Correlation-ID": correlation_id}
        )
        assert response.status_code == 404
        assert response.headers["X-Correlation-ID"] == correlation_id
        assert response.json()["correlation_id"] == correlation_id


@pytest.mark.asyncio
async def test_payload_too_large_rejection(app_service):
    """Test that oversized payloads are rejected before reaching the route."""
    inbox = await app_service.create_inbox("agent_1")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            f"/in/{inbox.id}",
            content=b"x" * (settings.MAX_PAYLOAD_BYTES + 1),
            headers={"Content-Type": "text/plain"},
        )
        assert response.status_code == 413
        data = response.json()
        assert data["error"] == "PayloadTooLarge"
        assert data["max_size"] == settings.MAX_PAYLOAD_BYTES

    counts = await app_service.event_log.counts(inbox.id)
    assert counts.total == 0


@pytest.mark.asyncio
async def test_invalid_json_rejection(app_service):
    """Test that invalid JSON is rejected."""
    inbox = await app_service.create_inbox("agent_1")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            f"/in/{inbox.id}",
            content=b"{invalid json}",
            headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "InvalidArgument"
        assert data["message"] == "Invalid request body"


@pytest.mark.asyncio
async def test_structured_error_response(app_service):
    """Test that errors return structured responses."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/in/inbox_missing", json={"x": 1})
        assert response.status_code == 404
        data = response.json()
        assert data["error"] == "NotFound"
        assert data["message"] == "Inbox not found or expired"
        assert data["status_code"] == 404
        assert data["path"] == "/in/inbox_missing"


@pytest.mark.asyncio
async def test_request_metrics_use_route_template(app_service):
    """Inbox ids never become metric label values."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        await client.get("/in/inbox_label_check")
        response = await client.get("/metrics/")

    assert response.status_code == 200
    assert 'path="/in/{inbox_id}"' in response.text
    assert "inbox_label_check" not in response.text


@pytest.mark.asyncio
async def test_rate_limit_headers(app_service):
    inbox = await app_service.create_inbox("agent_1")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get(
            f"/api/v1/inboxes/{inbox.id}", headers={"X-API-Key": inbox.api_key}
        )
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == str(app_service.settings.RATE_LIMIT_PER_MINUTE)
        assert "X-RateLimit-Remaining" in response.headers
