"""
Tests for the health check endpoint.

These tests verify:
- A reachable database and cache report healthy
- An open provider circuit degrades the status without failing the probe
- A database outage returns 503
"""

from unittest.mock import patch

from django.db import DatabaseError
from django.urls import reverse

from aid.adapters import paymongo_circuit


class TestHealthCheck:
    def test_healthy(self, db, client):
        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["cache"] == "connected"
        assert body["circuits"][paymongo_circuit.name] == "closed"

    def test_open_circuit_degrades(self, db, client):
        for _ in range(paymongo_circuit.config.failure_threshold):
            paymongo_circuit.record_failure()

        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["circuits"][paymongo_circuit.name] == "open"

    def test_database_unreachable(self, db, client):
        with patch("core.views.connection.cursor", side_effect=DatabaseError("down")):
            response = client.get(reverse("health_check"))

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["database"] == "disconnected"
