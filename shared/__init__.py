"""
Shared utilities for the StatEnv gateway.

This package aggregates common building blocks consumed by the gateway
service and its tooling:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical gateway error types and responses
- secrets_manager: Secret store capabilities (env, static, encrypted file)
- base_service: FastAPI service scaffolding (health, metrics, handlers)

Any cross-service logic should live here to avoid import cycles. Do not
import from service_gateway into shared/.
"""
