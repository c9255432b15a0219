"""
Unit tests for the upstream forwarder.
"""

import asyncio
import json
import time

import httpx
import pytest
from respx import MockRouter

from service_gateway.app.adapters.upstream_client import (
    UpstreamForwarder,
    build_body,
    build_query,
    parse_client_body,
)
from service_gateway.app.registry import ApiConfig
from shared.errors import BadGatewayError, GatewayTimeoutError

WEATHER = ApiConfig(
    url="https://api.weatherapi.com/v1/current.json",
    secret="MYBLOG_WEATHER_KEY",
    method="GET",
    params=["q"],
    cache=300,
)
ANALYTICS = ApiConfig(
    url="https://api.example.com/track",
    secret="MYBLOG_ANALYTICS_KEY",
    method="POST",
    bodyFields=["event", "data"],
)


class TestRequestShaping:

    def test_query_keeps_only_whitelisted_params(self):
        params = build_query(WEATHER, "s3cret", {"q": "London", "evil": "1"})
        assert params == {"key": "s3cret", "q": "London"}

    def test_query_drops_empty_values(self):
        assert build_query(WEATHER, "s3cret", {"q": ""}) == {"key": "s3cret"}

    def test_secret_overrides_client_key(self):
        api = WEATHER.model_copy(update={"allowed_params": ("q", "key")})
        assert build_query(api, "s3cret", {"key": "stolen"})["key"] == "s3cret"
        assert build_body(ANALYTICS, "s3cret", {"key": "stolen"}) == {"key": "s3cret"}

    def test_body_keeps_only_whitelisted_fields(self):
        body = build_body(ANALYTICS, "s3cret", {"event": "view", "data": {"page": 1}, "admin": True})
        assert body == {"event": "view", "data": {"page": 1}, "key": "s3cret"}

    def test_body_keeps_falsy_values_that_are_present(self):
        assert build_body(ANALYTICS, "k", {"event": None, "data": 0}) == {"event": None, "data": 0, "key": "k"}

    @pytest.mark.parametrize("raw", [
        b"",
        b"not json",
        b"[1, 2]",
        b'"text"',
        b"\xff\xfe",
        b"[" * 100000 + b"]" * 100000,
    ])
    def test_malformed_body_becomes_empty(self, raw):
        assert parse_client_body(raw) == {}

    def test_valid_body_parsed(self):
        assert parse_client_body(b'{"event": "click"}') == {"event": "click"}


class TestUpstreamForwarder:

    @pytest.fixture
    def forwarder(self):
        return UpstreamForwarder(timeout=10.0, client=httpx.AsyncClient())

    @pytest.mark.asyncio
    async def test_get_injects_key_param(self, forwarder, respx_mock: MockRouter):
        route = respx_mock.get(host="api.weatherapi.com", path="/v1/current.json").mock(
            return_value=httpx.Response(200, json={"temp_c": 12.5})
        )

        result = await forwarder.forward(WEATHER, "s3cret", {"q": "London", "other": "x"})

        request = route.calls.last.request
        assert request.url.params["key"] == "s3cret"
        assert request.url.params["q"] == "London"
        assert "other" not in request.url.params
        assert request.headers["user-agent"] == "StatEnv-Proxy/1.0"
        assert request.headers["content-type"] == "application/json"
        assert result.status_code == 200
        assert json.loads(result.body) == {"temp_c": 12.5}
        assert result.content_type == "application/json"
        assert result.ok is True

    @pytest.mark.asyncio
    async def test_post_sends_filtered_body(self, forwarder, respx_mock: MockRouter):
        route = respx_mock.post("https://api.example.com/track").mock(
            return_value=httpx.Response(202, json={"ok": True})
        )

        result = await forwarder.forward(ANALYTICS, "s3cret", {}, b'{"event": "view", "admin": true}')

        sent = json.loads(route.calls.last.request.content)
        assert sent == {"event": "view", "key": "s3cret"}
        assert result.status_code == 202

    @pytest.mark.asyncio
    async def test_post_with_malformed_body(self, forwarder, respx_mock: MockRouter):
        route = respx_mock.post("https://api.example.com/track").mock(
            return_value=httpx.Response(200, json={})
        )

        await forwarder.forward(ANALYTICS, "s3cret", {}, b"{broken")

        assert json.loads(route.calls.last.request.content) == {"key": "s3cret"}

    @pytest.mark.asyncio
    async def test_upstream_error_status_passed_through(self, forwarder, respx_mock: MockRouter):
        respx_mock.get(host="api.weatherapi.com").mock(
            return_value=httpx.Response(401, text="bad key", headers={"Content-Type": "text/plain"})
        )

        result = await forwarder.forward(WEATHER, "s3cret", {"q": "London"})

        assert result.status_code == 401
        assert result.body == b"bad key"
        assert result.content_type == "text/plain"
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_missing_content_type_defaults_to_json(self, forwarder, respx_mock: MockRouter):
        respx_mock.get(host="api.weatherapi.com").mock(
            return_value=httpx.Response(200, content=b"{}")
        )

        result = await forwarder.forward(WEATHER, "s3cret", {})

        assert result.content_type == "application/json"

    @pytest.mark.asyncio
    async def test_timeout_raises_gateway_timeout(self, forwarder, respx_mock: MockRouter):
        respx_mock.get(host="api.weatherapi.com").mock(side_effect=httpx.ReadTimeout)

        with pytest.raises(GatewayTimeoutError) as exc_info:
            await forwarder.forward(WEATHER, "s3cret", {"q": "London"})

        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_timeout_caps_slow_drip_body(self):
        body = b'{"a": 1}'

        async def drip(reader, writer):
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
                + f"Content-Length: {len(body)}\r\n\r\n".encode()
            )
            try:
                for byte in body:
                    writer.write(bytes([byte]))
                    await writer.drain()
                    await asyncio.sleep(0.2)
            except ConnectionError:
                pass
            finally:
                writer.close()

        server = await asyncio.start_server(drip, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        api = WEATHER.model_copy(update={"url": f"http://127.0.0.1:{port}/slow"})
        client = httpx.AsyncClient(trust_env=False)
        forwarder = UpstreamForwarder(timeout=0.5, client=client)

        started = time.monotonic()
        try:
            with pytest.raises(GatewayTimeoutError):
                await forwarder.forward(api, "s3cret", {"q": "London"})
            elapsed = time.monotonic() - started
        finally:
            await client.aclose()
            server.close()
            await server.wait_closed()

        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_connect_error_raises_bad_gateway(self, forwarder, respx_mock: MockRouter):
        respx_mock.get(host="api.weatherapi.com").mock(side_effect=httpx.ConnectError)

        with pytest.raises(BadGatewayError) as exc_info:
            await forwarder.forward(WEATHER, "s3cret", {"q": "London"})

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self):
        client = httpx.AsyncClient()
        forwarder = UpstreamForwarder(client=client)

        await forwarder.aclose()

        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_owned_client(self):
        forwarder = UpstreamForwarder()

        await forwarder.aclose()

        assert forwarder._client.is_closed is True
