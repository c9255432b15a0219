"""
StatEnv gateway service.

Static apps call ``/{app}/{api}``; the gateway checks the caller's origin,
applies the rate limit, injects the upstream secret and forwards the call.
"""

from typing import Any, Dict, Optional

from fastapi import Request

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.secrets_manager import SecretsManager, SecretStore
from .adapters.upstream_client import UpstreamForwarder
from .caching.response_cache import (
    CacheBackend,
    InMemoryCacheBackend,
    RedisCacheBackend,
    ResponseCache,
)
from .domain.pipeline import InboundRequest, RequestPipeline
from .ratelimit import FixedWindowRateLimiter
from .registry import AppRegistry, load_registry


class GatewayService(BaseService):
    """StatEnv proxy service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        registry: Optional[AppRegistry] = None,
        secret_store: Optional[SecretStore] = None,
        forwarder: Optional[UpstreamForwarder] = None,
        cache_backend: Optional[CacheBackend] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
    ):
        super().__init__("gateway", 8000, config)

        self.registry = registry if registry is not None else load_registry(self.config.apps_file)
        self.secret_store = secret_store or SecretsManager(
            master_key=self.config.master_key,
            secrets_file=self.config.secrets_file,
        )
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            self.config.rate_limit_max_requests,
            self.config.rate_limit_window_ms,
            sweep_probability=self.config.rate_limit_sweep_probability,
        )
        self.response_cache = ResponseCache(
            cache_backend if cache_backend is not None else self._create_cache_backend(),
            metrics=self.metrics,
        )
        self.forwarder = forwarder or UpstreamForwarder(timeout=self.config.upstream_timeout_seconds)

        self.pipeline = RequestPipeline(
            self.registry,
            self.rate_limiter,
            self.response_cache,
            self.forwarder,
            self.secret_store,
            metrics=self.metrics,
            rate_limit_per_app=self.config.rate_limit_per_app,
            client_ip_header=self.config.client_ip_header,
            strict_origin_matching=self.config.strict_origin_matching,
            cors_max_age=self.config.cors_max_age,
        )

        @self.app.on_event("startup")
        async def _startup():
            missing = [name for name in self.registry.required_secrets() if not self.secret_store.get(name)]
            if missing:
                self.logger.warning("Secrets not configured", missing=missing)
            self.logger.info(
                "Gateway started",
                apps=self.registry.list_apps(),
                rate_limit=self.config.rate_limit_max_requests,
                window_ms=self.config.rate_limit_window_ms,
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            try:
                await self.response_cache.close()
            finally:
                await self.forwarder.aclose()
                self.logger.info("Gateway stopped")

        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _create_cache_backend(self) -> CacheBackend:
        backend = self.config.cache_backend.lower()
        if backend == "redis":
            return RedisCacheBackend(self.config.redis_url)
        if backend != "memory":
            self.logger.warning("Unknown cache backend, using memory", backend=backend)
        return InMemoryCacheBackend(self.config.cache_max_entries)

    async def _health_details(self) -> Dict[str, Any]:
        return {
            "apps": len(self.registry),
            "rate_limit_entries": len(self.rate_limiter.store),
            "pending_cache_writes": self.response_cache.pending,
        }

    def _setup_gateway_routes(self):
        """Set up the catch-all proxy route."""

        @self.app.api_route("/{full_path:path}", methods=["GET", "POST", "OPTIONS"])
        async def proxy(full_path: str, request: Request):
            """Proxy ``/{app}/{api}`` to the configured upstream API."""
            query: Dict[str, str] = {}
            for name, value in request.query_params.multi_items():
                query.setdefault(name, value)

            body = await request.body() if request.method == "POST" else b""
            inbound = InboundRequest(
                method=request.method,
                path=request.url.path,
                url=str(request.url),
                query_params=query,
                headers=dict(request.headers),
                body=body,
                client_host=request.client.host if request.client else None,
            )
            return await self.pipeline.handle(inbound)


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = GatewayService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
