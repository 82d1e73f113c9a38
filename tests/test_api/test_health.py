"""Tests for health check and metrics endpoints."""

from __future__ import annotations


class TestHealthEndpoints:
    """Tests for /health and /health/detailed endpoints."""

    def test_health_basic(self, api_env) -> None:
        """Test GET /health returns 200 with status=healthy."""
        client, _ = api_env
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_detailed(self, api_env) -> None:
        client, _ = api_env
        response = client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["checks"] == {
            "database": "ok",
            "realtime": "configured",
            "groq": "configured",
        }

    def test_metrics_endpoint(self, api_env) -> None:
        client, _ = api_env
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "mentorvoice_" in response.text
