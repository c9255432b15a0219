"""
App registry data models for the Gateway.
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class HttpMethod(str, Enum):
    """Upstream HTTP methods the gateway can proxy."""
    GET = "GET"
    POST = "POST"


class ApiConfig(BaseModel):
    """One upstream API an app may call through the gateway."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(..., description="Upstream endpoint URL")
    secret_ref: str = Field(..., alias="secret", description="Name of the secret injected as `key`")
    method: HttpMethod = Field(HttpMethod.GET, description="Upstream HTTP method")
    allowed_params: Tuple[str, ...] = Field((), alias="params", description="Query params copied on GET")
    allowed_body_fields: Tuple[str, ...] = Field((), alias="bodyFields", description="Body fields copied on POST")
    cache_ttl_seconds: int = Field(0, alias="cache", ge=0, description="Response cache TTL; 0 disables")

    @property
    def caching_enabled(self) -> bool:
        return self.cache_ttl_seconds > 0


class AppConfig(BaseModel):
    """A static app: its whitelisted origins and the APIs it may call."""

    model_config = ConfigDict(frozen=True)

    name: str
    origins: Tuple[str, ...]
    apis: Mapping[str, ApiConfig]

    def get_api(self, api_name: str) -> Optional[ApiConfig]:
        return self.apis.get(api_name)

    def api_names(self) -> List[str]:
        return list(self.apis.keys())


class AppRegistry:
    """Immutable mapping of app name to ``AppConfig``."""

    def __init__(self, apps: Mapping[str, AppConfig]):
        self._apps = MappingProxyType(dict(apps))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Mapping]) -> "AppRegistry":
        """Build a registry from the on-disk format (already validated)."""
        apps: Dict[str, AppConfig] = {}
        for app_name, app_raw in raw.items():
            apis = {
                api_name: ApiConfig.model_validate(api_raw)
                for api_name, api_raw in (app_raw.get("apis") or {}).items()
            }
            apps[app_name] = AppConfig(
                name=app_name,
                origins=tuple(app_raw.get("origins") or ()),
                apis=MappingProxyType(apis),
            )
        return cls(apps)

    @property
    def apps(self) -> Mapping[str, AppConfig]:
        return self._apps

    def get_app(self, app_name: str) -> Optional[AppConfig]:
        return self._apps.get(app_name)

    def list_apps(self) -> List[str]:
        return list(self._apps.keys())

    def required_secrets(self) -> List[str]:
        """Secret names referenced anywhere in the registry, sorted."""
        return sorted({
            api.secret_ref
            for app in self._apps.values()
            for api in app.apis.values()
        })

    def __len__(self) -> int:
        return len(self._apps)

    def __contains__(self, app_name: object) -> bool:
        return app_name in self._apps
