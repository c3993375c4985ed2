"""
Unit tests for the cache service.
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_cache.app.adapters.store_client import StoreClient
from service_cache.app.caching.middleware import CacheRule
from service_cache.app.main import CacheService, create_app
from shared.config import get_config


class TestCacheService:
    """Test cases for CacheService."""

    @pytest.fixture
    def config(self):
        return get_config("cache", 8000, cache_key_prefix="cache:")

    @pytest.fixture
    def service(self, config, store):
        """CacheService wired to the fake store, with one cached read route."""
        service = CacheService(config, store=store, rules=[CacheRule("/api/channels", 120, namespace="channels")])
        service.reads = 0

        @service.app.get("/api/channels")
        async def list_channels():
            service.reads += 1
            return {"channels": ["news", "alerts"], "served": service.reads}

        return service

    @pytest.fixture
    def client(self, service):
        """Create test client (runs startup/shutdown hooks)."""
        with TestClient(service.app) as client:
            yield client

    def test_store_lifecycle(self, service, store):
        with TestClient(service.app):
            assert store.started is True
            assert store.closed is False
        assert store.closed is True

    def test_startup_survives_store_outage(self, service, store):
        store.available = False
        with TestClient(service.app) as client:
            response = client.get("/api/channels")
            assert response.status_code == 200
        assert store.started is False

    def test_default_store_client_from_config(self, config):
        service = CacheService(config, rules=[])
        assert isinstance(service.store, StoreClient)
        assert service.invalidator.store is service.store
        assert service.store.settings.host == config.redis_host

    def test_rules_from_config(self):
        config = get_config("cache", 8000, cache_rules={"/api/sms": 45})
        service = CacheService(config)
        assert service.rules == [CacheRule("/api/sms", 45)]

    def test_root_rule_leaves_service_routes_uncached(self, config, store):
        service = CacheService(config, store=store, rules=[CacheRule("/", 60)])

        with TestClient(service.app) as client:
            client.get("/health")
            client.get("/metrics")
            before = client.get("/api/v1/cache/keys").json()
            store.data["cache:/fresh"] = (b"{}", store.clock() + 60)
            after = client.get("/api/v1/cache/keys").json()

        assert before["count"] == 0
        assert after["keys"] == ["cache:/fresh"]
        assert store.operations("set") == []

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "cache"
        assert body["status"] == "ok"
        assert body["dependencies"] == {"store": "ok"}

    def test_health_reports_degraded_store(self, client, store):
        store.available = False
        body = client.get("/health").json()
        assert body["status"] == "degraded"
        assert body["dependencies"] == {"store": "unavailable"}

    def test_cached_route(self, client, service):
        first = client.get("/api/channels")
        second = client.get("/api/channels")

        assert first.json() == second.json()
        assert service.reads == 1
        assert "X-Request-ID" in second.headers

    def test_list_keys(self, client):
        client.get("/api/channels")

        response = client.get("/api/v1/cache/keys")

        assert response.status_code == 200
        assert response.json() == {
            "pattern": "cache:*",
            "count": 1,
            "keys": ["cache:channels:/api/channels"],
        }

    def test_list_keys_invalid_pattern(self, client):
        response = client.get("/api/v1/cache/keys", params={"pattern": "cache:[a"})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_PATTERN"

    def test_invalidate_key_then_miss(self, client, service):
        client.get("/api/channels")

        response = client.delete("/api/v1/cache/keys/cache:channels:/api/channels")

        assert response.status_code == 200
        assert response.json() == {"key": "cache:channels:/api/channels", "deleted": 1}
        client.get("/api/channels")
        assert service.reads == 2

    def test_invalidate_absent_key(self, client):
        response = client.delete("/api/v1/cache/keys/cache:/nothing")
        assert response.status_code == 200
        assert response.json()["deleted"] == 0

    def test_invalidate_pattern(self, client, store, clock):
        for key in ("cache:/a/1", "cache:/a/2", "cache:/b/1"):
            store.data[key] = (b"{}", clock() + 60)

        response = client.post("/api/v1/cache/invalidate", json={"pattern": "cache:/a/*"})

        assert response.status_code == 200
        assert response.json() == {"pattern": "cache:/a/*", "deleted": 2}
        assert list(store.data) == ["cache:/b/1"]

    def test_invalidate_pattern_store_unavailable(self, client, store):
        store.available = False

        response = client.post("/api/v1/cache/invalidate", json={"pattern": "cache:/a/*"})

        assert response.status_code == 503
        body = response.json()
        assert body["code"] == "STORE_UNAVAILABLE"
        assert body["request_id"]

    def test_clear_cache(self, client, store, clock):
        store.data["cache:/a/1"] = (b"{}", clock() + 60)
        store.data["queue:jobs"] = (b"[]", clock() + 60)

        response = client.delete("/api/v1/cache")

        assert response.status_code == 200
        assert response.json() == {"pattern": "cache:*", "deleted": 1}
        assert list(store.data) == ["queue:jobs"]

    def test_metrics_endpoint(self, client):
        client.get("/api/channels")
        client.get("/api/channels")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'cache_lookups_total{namespace="channels",result="hit"} 1.0' in response.text
        assert 'cache_lookups_total{namespace="channels",result="miss"} 1.0' in response.text


def test_create_app():
    app = create_app()
    paths = {route.path for route in app.routes}
    assert {"/health", "/metrics", "/api/v1/cache", "/api/v1/cache/invalidate"} <= paths
