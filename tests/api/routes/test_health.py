"""
Tests for the health routes.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient

from leadflow.main import app


@pytest.fixture
def client():
    return TestClient(app)


class TestHealth:

    def test_liveness(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, client):
        with patch("leadflow.api.routes.health.check_redis_connection", AsyncMock(return_value=True)):
            response = client.get("/health/ready")

        assert response.json()["status"] == "ready"

    def test_degraded_without_redis(self, client):
        with patch("leadflow.api.routes.health.check_redis_connection", AsyncMock(return_value=False)):
            response = client.get("/health/ready")

        assert response.json() == {"status": "degraded", "checks": {"redis": "error"}}

    def test_circuits(self, client):
        response = client.get("/health/circuits")

        assert response.json()["circuits"]["whatsapp"]["state"] == "closed"

    def test_reply_queue_absent(self, client):
        app.state.reply_queue = None

        response = client.get("/health/reply-queue")

        assert response.json()["reply_queue"] is None

    def test_reply_queue_stats(self, client):
        queue = MagicMock()
        queue.stats.return_value = {"queued": 2, "processed": 5}
        app.state.reply_queue = queue
        try:
            response = client.get("/health/reply-queue")
        finally:
            app.state.reply_queue = None

        assert response.json()["reply_queue"] == {"queued": 2, "processed": 5}
