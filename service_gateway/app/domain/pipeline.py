"""
Request pipeline for the Gateway proxy route.

A request moves through a fixed sequence of stages: parse the route,
resolve the app and API, validate the origin, apply the rate limit, look up
the response cache, resolve the secret, forward upstream, schedule a cache
store, and assemble the response. The first stage that fails ends the
request with its error response.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from fastapi import Response

from shared.logging import get_logger, set_route_context
from shared.errors import (
    ConfigurationError,
    ForbiddenOriginError,
    GatewayError,
    InternalGatewayError,
    InvalidRouteError,
    RateLimitError,
    UnknownApiError,
    UnknownAppError,
)
from shared.metrics import MetricsCollector
from shared.secrets_manager import SecretStore
from ..adapters.upstream_client import UpstreamForwarder
from ..caching.response_cache import CachedResponse, ResponseCache
from ..ratelimit import FixedWindowRateLimiter
from ..registry import ApiConfig, AppConfig, AppRegistry
from .origin import is_allowed
from .responses import error_response, preflight_response, success_response


@dataclass
class InboundRequest:
    """The parts of an inbound HTTP request the pipeline reads."""
    method: str
    path: str
    url: str
    query_params: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_host: Optional[str] = None

    def __post_init__(self):
        self.method = self.method.upper()
        self.headers = {name.lower(): value for name, value in self.headers.items()}

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


def parse_route(path: str) -> Tuple[str, str]:
    """Split ``/{app}/{api}[/...]`` into its first two segments."""
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) < 2:
        raise InvalidRouteError()
    return segments[0], segments[1]


def client_ip(request: InboundRequest, ip_header: str = "CF-Connecting-IP") -> str:
    """Client IP from the edge header, then X-Forwarded-For, then the peer."""
    value = request.header(ip_header)
    if value:
        return value.strip()

    forwarded = request.header("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    return request.client_host or "unknown"


class RequestPipeline:
    """Runs one inbound request through the proxy stages."""

    def __init__(
        self,
        registry: AppRegistry,
        rate_limiter: FixedWindowRateLimiter,
        cache: ResponseCache,
        forwarder: UpstreamForwarder,
        secret_store: SecretStore,
        *,
        metrics: Optional[MetricsCollector] = None,
        rate_limit_per_app: bool = False,
        client_ip_header: str = "CF-Connecting-IP",
        strict_origin_matching: bool = False,
        cors_max_age: int = 86400,
    ):
        self.registry = registry
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.forwarder = forwarder
        self.secret_store = secret_store
        self.metrics = metrics
        self.rate_limit_per_app = rate_limit_per_app
        self.client_ip_header = client_ip_header
        self.strict_origin_matching = strict_origin_matching
        self.cors_max_age = cors_max_age
        self.logger = get_logger("gateway.pipeline")

    async def handle(self, request: InboundRequest) -> Response:
        """Produce the response for ``request``; never raises."""
        if request.method == "OPTIONS":
            return preflight_response(request.header("Origin"), self.cors_max_age)

        state: Dict[str, Optional[str]] = {"app": None, "api": None, "origin": None}
        try:
            return await self._process(request, state)
        except GatewayError as exc:
            self._record_outcome(state, exc.code.lower())
            return error_response(exc, state["origin"])
        except Exception as exc:
            self.logger.error("Unhandled pipeline error", error=str(exc), exc_info=True)
            if self.metrics:
                self.metrics.record_error("internal")
            self._record_outcome(state, "internal_error")
            return error_response(InternalGatewayError(str(exc)), state["origin"])

    async def _process(self, request: InboundRequest, state: Dict[str, Optional[str]]) -> Response:
        app_name, api_name = parse_route(request.path)
        app_config = self._resolve_app(app_name)
        api_config = self._resolve_api(app_config, api_name)
        state["app"], state["api"] = app_name, api_name
        set_route_context(app_name, api_name)

        origin = request.header("Origin")
        referer = request.header("Referer")
        if not is_allowed(app_config, origin, referer, strict=self.strict_origin_matching):
            self.logger.warning("Blocked request from origin", origin=origin or referer)
            raise ForbiddenOriginError()
        state["origin"] = origin

        identifier = app_name if self.rate_limit_per_app else client_ip(request, self.client_ip_header)
        rate_limit = self.rate_limiter.check(identifier)
        if not rate_limit.allowed:
            retry_after = rate_limit.retry_after_seconds(self.rate_limiter.now())
            self.logger.warning("Rate limit exceeded", identifier=identifier)
            if self.metrics:
                self.metrics.increment_counter("rate_limit_hits_total", app=app_name)
            raise RateLimitError(retry_after, rate_limit.limit, rate_limit.reset_at)

        use_cache = api_config.caching_enabled and request.method == "GET"
        cache_key = ResponseCache.make_key(request.method, request.url) if use_cache else None

        if cache_key is not None:
            cached = await self.cache.lookup(cache_key)
            if cached is not None:
                self.logger.info("Cache HIT", app=app_name, api=api_name)
                self._count("cache_hits_total", app_name, api_name)
                self._record_outcome(state, "cache_hit")
                return success_response(
                    status_code=cached.status_code,
                    body=cached.body,
                    content_type=cached.headers.get("content-type", "application/json"),
                    app_name=app_name,
                    api_name=api_name,
                    cache_ttl=api_config.cache_ttl_seconds,
                    rate_limit=rate_limit,
                    cache_status="HIT",
                    origin=origin,
                )
            self.logger.info("Cache MISS", app=app_name, api=api_name)
            self._count("cache_misses_total", app_name, api_name)

        secret = self._resolve_secret(api_config)

        started = time.perf_counter()
        upstream = await self.forwarder.forward(api_config, secret, request.query_params, request.body)
        if self.metrics:
            self.metrics.observe_histogram(
                "upstream_duration_seconds", time.perf_counter() - started, app=app_name, api=api_name
            )

        if cache_key is not None and upstream.ok:
            self.cache.schedule_store(
                cache_key,
                CachedResponse(
                    status_code=upstream.status_code,
                    body=upstream.body,
                    headers={"content-type": upstream.content_type},
                ),
                api_config.cache_ttl_seconds,
            )

        self._record_outcome(state, "success")
        return success_response(
            status_code=upstream.status_code,
            body=upstream.body,
            content_type=upstream.content_type,
            app_name=app_name,
            api_name=api_name,
            cache_ttl=api_config.cache_ttl_seconds,
            rate_limit=rate_limit,
            cache_status="MISS",
            origin=origin,
        )

    def _resolve_app(self, app_name: str) -> AppConfig:
        app_config = self.registry.get_app(app_name)
        if app_config is None:
            raise UnknownAppError(self.registry.list_apps())
        return app_config

    def _resolve_api(self, app_config: AppConfig, api_name: str) -> ApiConfig:
        api_config = app_config.get_api(api_name)
        if api_config is None:
            raise UnknownApiError(app_config.api_names())
        return api_config

    def _resolve_secret(self, api_config: ApiConfig) -> str:
        secret = self.secret_store.get(api_config.secret_ref)
        if not secret:
            self.logger.error("Secret not found", secret_name=api_config.secret_ref)
            raise ConfigurationError(api_config.secret_ref)
        return secret

    def _count(self, metric_name: str, app_name: str, api_name: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, app=app_name, api=api_name)

    def _record_outcome(self, state: Dict[str, Optional[str]], outcome: str) -> None:
        # Unresolved routes carry no labels.
        if self.metrics and state["app"] and state["api"]:
            self.metrics.increment_counter(
                "proxy_requests_total", app=state["app"], api=state["api"], outcome=outcome
            )
