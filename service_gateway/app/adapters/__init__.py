"""
Adapters package for the Gateway Service.

Contains the HTTP client wrapper for upstream APIs. The adapter owns:

- Request shapes (query params for GET, JSON body for POST)
- Secret injection as the ``key`` field
- Mapping transport failures to shared errors

Nothing is retried.
"""

from .upstream_client import UpstreamForwarder, UpstreamResponse

__all__ = [
    "UpstreamForwarder",
    "UpstreamResponse",
]
