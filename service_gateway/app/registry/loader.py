"""
Registry loading and validation.

The registry file is JSON in the same shape operators write by hand::

    {
      "myblog": {
        "origins": ["https://myblog.com"],
        "apis": {
          "weather": {"url": "...", "secret": "MYBLOG_WEATHER_KEY",
                      "method": "GET", "params": ["q"], "cache": 300}
        }
      }
    }
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import urlparse

from shared.logging import get_logger
from .models import AppRegistry

logger = get_logger("gateway.registry")

CONFIG_FILES = (".statenvrc", "statenv.config.json", ".statenv.json")

APP_NAME_RE = re.compile(r"^[a-z][a-z0-9_-]*$", re.IGNORECASE)
API_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$", re.IGNORECASE)
SECRET_NAME_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")
SUPPORTED_METHODS = ("GET", "POST")

DEFAULT_APPS: Dict[str, Any] = {
    "myblog": {
        "origins": ["http://localhost:5500"],
        "apis": {
            "weather": {
                "url": "https://api.weatherapi.com/v1/current.json",
                "secret": "MYBLOG_WEATHER_KEY",
                "method": "GET",
                "params": ["q"],
                "cache": 300,
            },
            "analytics": {
                "url": "https://api.example.com/track",
                "secret": "MYBLOG_ANALYTICS_KEY",
                "method": "POST",
                "bodyFields": ["event", "data"],
            },
        },
    },
    "myshop": {
        "origins": ["https://shop.com", "http://localhost:8080"],
        "apis": {
            "stripe": {
                "url": "https://api.stripe.com/v1/payment_intents",
                "secret": "MYSHOP_STRIPE_KEY",
                "method": "POST",
                "bodyFields": ["amount", "currency"],
            },
        },
    },
}


class RegistryError(Exception):
    """Registry file is missing, unreadable or invalid."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


@dataclass
class ValidationReport:
    """Outcome of ``validate_config``."""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _is_absolute_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _validate_api(prefix: str, api: Any, report: ValidationReport) -> None:
    if not isinstance(api, Mapping):
        report.errors.append(f"{prefix}: API definition must be an object")
        return

    url = api.get("url")
    if not url:
        report.errors.append(f"{prefix}: url is required")
    elif not _is_absolute_url(url):
        report.errors.append(f"{prefix}: invalid URL: {url}")

    secret = api.get("secret")
    if not secret:
        report.errors.append(f"{prefix}: secret is required")
    elif not isinstance(secret, str):
        report.errors.append(f"{prefix}: secret must be a string")
    elif not SECRET_NAME_RE.match(secret):
        report.warnings.append(f"{prefix}: secret name should be UPPERCASE_WITH_UNDERSCORES")

    method = api.get("method")
    if method is None:
        report.warnings.append(f"{prefix}: method not specified, defaults to GET")
    elif method not in SUPPORTED_METHODS:
        report.errors.append(f"{prefix}: invalid method: {method}")

    for key in ("params", "bodyFields"):
        if key in api and not _is_string_list(api[key]):
            report.errors.append(f"{prefix}: {key} must be an array")

    if "cache" in api:
        cache = api["cache"]
        if isinstance(cache, bool) or not isinstance(cache, (int, float)) or cache < 0:
            report.errors.append(f"{prefix}: cache must be a positive number")
        elif isinstance(cache, float) and not cache.is_integer():
            report.errors.append(f"{prefix}: cache must be a whole number of seconds")


def validate_config(config: Any) -> ValidationReport:
    """Validate a raw registry mapping, collecting every problem found."""
    report = ValidationReport()

    if not isinstance(config, Mapping):
        report.errors.append("Config must be an object")
        return report

    for app_name, app in config.items():
        if not isinstance(app_name, str) or not APP_NAME_RE.match(app_name):
            report.errors.append(f"Invalid app name: {app_name}")

        if not isinstance(app, Mapping):
            report.errors.append(f"{app_name}: app definition must be an object")
            continue

        origins = app.get("origins")
        if not isinstance(origins, list):
            report.errors.append(f"{app_name}: origins must be an array")
        elif not origins:
            report.errors.append(f"{app_name}: at least one origin is required")
        else:
            for origin in origins:
                if not _is_absolute_url(origin):
                    report.errors.append(f"{app_name}: invalid origin URL: {origin}")

        apis = app.get("apis")
        if not isinstance(apis, Mapping):
            report.errors.append(f"{app_name}: apis must be an object")
            continue

        if not apis:
            report.warnings.append(f"{app_name}: no APIs defined")

        for api_name, api in apis.items():
            prefix = f"{app_name}.{api_name}"
            if not isinstance(api_name, str) or not API_NAME_RE.match(api_name):
                report.errors.append(f"{prefix}: invalid API name")
            _validate_api(prefix, api, report)

    return report


def find_config_file(directory: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Return the first known registry file present in ``directory``."""
    base = Path(directory) if directory is not None else Path.cwd()
    for name in CONFIG_FILES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def read_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a registry file as raw JSON."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RegistryError(f"Cannot read config file {path}: {exc}") from exc

    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise RegistryError(f"Invalid config file {path.name}: {exc}") from exc


def build_registry(raw: Any) -> AppRegistry:
    """Validate a raw mapping and turn it into an ``AppRegistry``."""
    report = validate_config(raw)
    for warning in report.warnings:
        logger.warning("Registry warning", detail=warning)
    if not report.valid:
        raise RegistryError(
            f"Invalid app registry: {len(report.errors)} error(s)",
            errors=report.errors,
        )
    return AppRegistry.from_dict(raw)


def load_registry(path: Optional[Union[str, Path]] = None,
                  search_dir: Optional[Union[str, Path]] = None) -> AppRegistry:
    """
    Load the app registry.

    An explicit ``path`` must exist. Otherwise the known file names are
    searched in ``search_dir`` (default: CWD), and the built-in demo
    registry is used when none is found.
    """
    if path is not None:
        config_path = Path(path)
        if not config_path.is_file():
            raise RegistryError(f"Config file not found: {config_path}")
    else:
        config_path = find_config_file(search_dir)

    if config_path is None:
        logger.info("No registry file found, using built-in apps", apps=list(DEFAULT_APPS))
        return build_registry(DEFAULT_APPS)

    registry = build_registry(read_config(config_path))
    logger.info("Registry loaded", path=str(config_path), apps=registry.list_apps())
    return registry
