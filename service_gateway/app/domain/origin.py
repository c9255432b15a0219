"""
Origin whitelisting for Gateway requests.
"""

from typing import Optional
from urllib.parse import urlsplit

from ..registry import AppConfig


def _origin_of(value: str) -> Optional[str]:
    """Reduce a URL to scheme://host[:port]."""
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def is_allowed(app_config: AppConfig, origin: Optional[str], referer: Optional[str],
               strict: bool = False) -> bool:
    """
    Check the caller's Origin/Referer against the app's whitelist.

    Either header suffices. By default a header matches when it starts with
    a whitelisted origin, so ``http://localhost:3000`` admits
    ``http://localhost:3000/page``. With ``strict`` the header's
    scheme://host:port must equal a whitelisted origin exactly. No header
    means no access.
    """
    candidates = [value for value in (origin, referer) if value]
    if not candidates:
        return False

    if strict:
        allowed = {_origin_of(entry) for entry in app_config.origins}
        allowed.discard(None)
        return any(_origin_of(value) in allowed for value in candidates)

    return any(
        value.startswith(entry)
        for entry in app_config.origins
        for value in candidates
    )
