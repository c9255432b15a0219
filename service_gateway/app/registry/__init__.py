"""
App registry package for the Gateway.

The registry is loaded once at startup and never mutated afterwards; the
request pipeline only reads it.
"""

from .models import ApiConfig, AppConfig, AppRegistry, HttpMethod
from .loader import (
    DEFAULT_APPS,
    RegistryError,
    ValidationReport,
    build_registry,
    find_config_file,
    load_registry,
    read_config,
    validate_config,
)

__all__ = [
    "ApiConfig",
    "AppConfig",
    "AppRegistry",
    "HttpMethod",
    "DEFAULT_APPS",
    "RegistryError",
    "ValidationReport",
    "build_registry",
    "find_config_file",
    "load_registry",
    "read_config",
    "validate_config",
]
