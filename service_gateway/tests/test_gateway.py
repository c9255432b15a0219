"""
Tests for Gateway service.
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from service_gateway.app.adapters.upstream_client import UpstreamResponse
from service_gateway.app.main import GatewayService, create_app
from service_gateway.app.registry import DEFAULT_APPS, AppRegistry
from shared.config import get_config
from shared.errors import GatewayTimeoutError
from shared.secrets_manager import StaticSecretStore

BLOG = {"Origin": "http://localhost:5500"}


@pytest.fixture
def forwarder():
    forwarder = MagicMock()
    forwarder.forward = AsyncMock(return_value=UpstreamResponse(
        status_code=200,
        body=b'{"location": "London"}',
        content_type="application/json",
    ))
    forwarder.aclose = AsyncMock()
    return forwarder


@pytest.fixture
def service(forwarder):
    return GatewayService(
        get_config("gateway", 8000, rate_limit_sweep_probability=0.0),
        registry=AppRegistry.from_dict(DEFAULT_APPS),
        secret_store=StaticSecretStore({
            "MYBLOG_WEATHER_KEY": "weather-secret",
            "MYBLOG_ANALYTICS_KEY": "analytics-secret",
        }),
        forwarder=forwarder,
    )


@pytest.fixture
def client(service):
    with TestClient(service.app) as test_client:
        yield test_client


class TestGatewayRoutes:

    def test_invalid_route(self, client):
        response = client.get("/invalid")

        assert response.status_code == 404
        assert "Invalid route" in response.json()["error"]
        assert response.json()["example"] == "/myblog/weather?q=London"

    def test_root_is_invalid_route(self, client):
        response = client.get("/")
        assert response.status_code == 404
        assert "Invalid route" in response.json()["error"]

    def test_unknown_app(self, client):
        response = client.get("/unknownapp/weather")

        assert response.status_code == 404
        assert response.json()["error"] == "Unknown app"
        assert response.json()["availableApps"] == ["myblog", "myshop"]

    def test_unknown_api(self, client):
        response = client.get("/myblog/unknownapi")

        assert response.status_code == 404
        assert response.json()["error"] == "Unknown API endpoint"
        assert response.json()["availableApis"] == ["weather", "analytics"]

    def test_forbidden_origin(self, client, forwarder):
        response = client.get("/myblog/weather?q=London", headers={"Origin": "https://evil.com"})

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}
        forwarder.forward.assert_not_awaited()

    def test_preflight(self, client):
        response = client.options("/myblog/weather", headers={"Origin": "https://anything.example"})

        assert response.status_code == 204
        assert "GET" in response.headers["access-control-allow-methods"]
        assert "POST" in response.headers["access-control-allow-methods"]
        assert response.headers["access-control-allow-origin"] == "https://anything.example"
        assert response.headers["access-control-allow-headers"] == "Content-Type"
        assert response.headers["access-control-max-age"] == "86400"

    def test_successful_get(self, client, forwarder):
        response = client.get("/myblog/weather?q=London&q=Paris&extra=1", headers=BLOG)

        assert response.status_code == 200
        assert response.json() == {"location": "London"}
        assert response.headers["x-cache"] == "MISS"
        assert response.headers["x-statenv-app"] == "myblog"
        assert response.headers["x-statenv-api"] == "weather"
        assert response.headers["x-ratelimit-limit"] == "100"
        assert response.headers["x-ratelimit-remaining"] == "99"
        assert response.headers["access-control-allow-origin"] == "http://localhost:5500"
        assert "x-request-id" in response.headers

        api_config, secret, query, body = forwarder.forward.await_args.args
        assert secret == "weather-secret"
        assert query["q"] == "London"

    def test_post_body_forwarded(self, client, forwarder):
        response = client.post("/myblog/analytics", content=b'{"event": "view"}', headers=BLOG)

        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-cache"
        assert forwarder.forward.await_args.args[3] == b'{"event": "view"}'

    def test_missing_secret(self, client, forwarder):
        response = client.post("/myshop/stripe", json={"amount": 100}, headers={"Origin": "https://shop.com"})

        assert response.status_code == 500
        assert response.json() == {"error": "Configuration error"}
        forwarder.forward.assert_not_awaited()

    def test_gateway_timeout(self, client, forwarder):
        forwarder.forward.side_effect = GatewayTimeoutError()

        response = client.get("/myblog/weather?q=London", headers=BLOG)

        assert response.status_code == 504
        assert response.json()["error"] == "Gateway Timeout"

    def test_rate_limit_101st_request(self, client):
        for _ in range(100):
            assert client.post("/myblog/analytics", json={}, headers=BLOG).status_code == 200

        response = client.post("/myblog/analytics", json={}, headers=BLOG)

        assert response.status_code == 429
        assert response.json()["error"] == "Too Many Requests"
        assert int(response.headers["retry-after"]) > 0
        assert response.headers["x-ratelimit-remaining"] == "0"

    def test_unsupported_method(self, client):
        response = client.put("/myblog/weather", headers=BLOG)
        assert response.status_code == 405

    def test_request_id_echoed(self, client):
        response = client.get("/invalid", headers={"X-Request-ID": "req-123"})
        assert response.headers["x-request-id"] == "req-123"


class TestOperationalEndpoints:

    def test_health(self, client):
        client.get("/myblog/weather?q=London", headers=BLOG)

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "gateway"
        assert data["status"] == "ok"
        assert data["apps"] == 2
        assert data["rate_limit_entries"] == 1
        assert "pending_cache_writes" in data
        assert data["uptime_seconds"] >= 0

    def test_metrics(self, client):
        client.get("/myblog/weather?q=London", headers={"Origin": "https://evil.com"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "proxy_requests_total" in response.text
        assert 'outcome="forbidden"' in response.text

    def test_shutdown_closes_forwarder(self, service, forwarder):
        with TestClient(service.app):
            pass

        forwarder.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_closes_forwarder_when_cache_close_fails(self, service, forwarder):
        service.response_cache.close = AsyncMock(side_effect=ConnectionError("redis down"))

        with pytest.raises(ConnectionError):
            await service.app.router.shutdown()

        forwarder.aclose.assert_awaited_once()

    def test_create_app_loads_registry_file(self, tmp_path):
        registry_file = tmp_path / "apps.json"
        registry_file.write_text(
            '{"demo": {"origins": ["https://demo.dev"], "apis": '
            '{"echo": {"url": "https://echo.dev", "secret": "DEMO_KEY", "method": "GET"}}}}'
        )

        app = create_app(get_config("gateway", 8000, apps_file=str(registry_file)))
        service = app.state.gateway_service

        assert service.registry.list_apps() == ["demo"]

    def test_default_registry(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        service = GatewayService(get_config("gateway", 8000))

        assert service.registry.list_apps() == ["myblog", "myshop"]
