from django.core.cache import cache
from django.db import DatabaseError

from modules.workflow.models import ItemStatus


class TestHealthCheck:
    def test_health_check_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "services" in data

    def test_health_check_reports_database_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["database"]["status"] == "up"
        assert "response_time_ms" in data["services"]["database"]

    def test_health_check_reports_seeded_catalog(self, client, statuses):
        database = client.get("/health").json()["services"]["database"]
        assert database["workflow_statuses"] == len(statuses)
        assert database["workflow_rules"] > 0

    def test_health_check_reports_empty_catalog(self, client):
        database = client.get("/health").json()["services"]["database"]
        assert database["workflow_statuses"] == 0
        assert database["workflow_rules"] == 0

    def test_health_check_reports_database_failure(self, client, monkeypatch):
        def _broken(*args, **kwargs):
            raise DatabaseError("connection refused")

        monkeypatch.setattr(ItemStatus.objects, "filter", _broken)
        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["services"]["database"] == {"status": "down"}

    def test_health_check_reports_cache_status(self, client):
        response = client.get("/health")
        data = response.json()
        assert data["services"]["cache"]["status"] == "up"
        assert "response_time_ms" in data["services"]["cache"]

    def test_health_check_reports_cache_failure(self, client, monkeypatch):
        def _broken(*args, **kwargs):
            raise ConnectionError("redis down")

        monkeypatch.setattr(cache, "set", _broken)
        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["services"]["cache"]["status"] == "down"
