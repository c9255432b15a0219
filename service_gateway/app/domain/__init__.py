"""
Domain utilities for the Gateway Service.

Includes the proxy request pipeline and the helpers it runs through:
origin checks and response assembly.
"""

from .origin import is_allowed
from .pipeline import InboundRequest, RequestPipeline, client_ip, parse_route

__all__ = [
    "InboundRequest",
    "RequestPipeline",
    "client_ip",
    "is_allowed",
    "parse_route",
]
