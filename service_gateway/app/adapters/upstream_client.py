"""
Upstream API forwarder for Gateway.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from shared.logging import get_logger
from shared.errors import BadGatewayError, GatewayTimeoutError
from ..registry import ApiConfig, HttpMethod

USER_AGENT = "StatEnv-Proxy/1.0"
SECRET_FIELD = "key"
DEFAULT_CONTENT_TYPE = "application/json"


@dataclass
class UpstreamResponse:
    """Status, headers and raw body returned by an upstream API."""
    status_code: int
    body: bytes
    content_type: str = DEFAULT_CONTENT_TYPE
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def parse_client_body(body: bytes) -> Dict[str, Any]:
    """Parse the inbound JSON body; anything but a JSON object becomes ``{}``."""
    if not body:
        return {}
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError, RecursionError):
        return {}
    return data if isinstance(data, dict) else {}


def build_query(api_config: ApiConfig, secret: str, query_params: Mapping[str, str]) -> Dict[str, str]:
    """Outbound query for GET: the secret plus non-empty whitelisted params."""
    params = {}
    for name in api_config.allowed_params:
        value = query_params.get(name)
        if value:
            params[name] = value
    params[SECRET_FIELD] = secret
    return params


def build_body(api_config: ApiConfig, secret: str, client_body: Mapping[str, Any]) -> Dict[str, Any]:
    """Outbound JSON for POST: whitelisted fields present in the client body plus the secret."""
    payload = {
        name: client_body[name]
        for name in api_config.allowed_body_fields
        if name in client_body
    }
    payload[SECRET_FIELD] = secret
    return payload


class UpstreamForwarder:
    """Calls the configured upstream API with the secret injected."""

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self.logger = get_logger("gateway.upstream")
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def forward(
        self,
        api_config: ApiConfig,
        secret: str,
        query_params: Mapping[str, str],
        body: bytes = b"",
    ) -> UpstreamResponse:
        """
        Forward one request upstream.

        Raises ``GatewayTimeoutError`` when the whole call, body included,
        exceeds the timeout and ``BadGatewayError`` for any other transport
        failure. Upstream error statuses are returned, not raised.
        """
        headers = {"Content-Type": DEFAULT_CONTENT_TYPE, "User-Agent": USER_AGENT}
        request_kwargs: Dict[str, Any] = {"headers": headers, "timeout": self.timeout}

        if api_config.method == HttpMethod.GET:
            request_kwargs["params"] = build_query(api_config, secret, query_params)
        else:
            payload = build_body(api_config, secret, parse_client_body(body))
            request_kwargs["content"] = json.dumps(payload).encode("utf-8")

        try:
            # httpx limits each connect/read step; wait_for caps the total.
            response = await asyncio.wait_for(
                self._client.request(api_config.method.value, api_config.url, **request_kwargs),
                self.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            self.logger.error("Upstream timeout", url=api_config.url, error=type(exc).__name__)
            raise GatewayTimeoutError() from exc
        except httpx.HTTPError as exc:
            self.logger.error("Upstream request failed", url=api_config.url, error=type(exc).__name__)
            raise BadGatewayError() from exc

        content_type = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
        self.logger.debug("Upstream responded", url=api_config.url, status_code=response.status_code)
        return UpstreamResponse(
            status_code=response.status_code,
            body=response.content,
            content_type=content_type,
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
