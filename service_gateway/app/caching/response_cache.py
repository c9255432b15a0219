"""
Response cache for the Gateway.

Stores complete upstream responses (status, headers, body) under a key
derived from the inbound request method and URL. Backends are either a
process-local TTL map or Redis.
"""

import asyncio
import base64
import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Set, TYPE_CHECKING

import redis.asyncio as redis

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


@dataclass
class CachedResponse:
    """A stored upstream response."""
    status_code: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({
            "status_code": self.status_code,
            "headers": self.headers,
            "body": base64.b64encode(self.body).decode("ascii"),
        })

    @classmethod
    def from_json(cls, raw: str) -> "CachedResponse":
        data = json.loads(raw)
        return cls(
            status_code=int(data["status_code"]),
            body=base64.b64decode(data["body"]),
            headers=dict(data.get("headers") or {}),
        )


class CacheBackend(Protocol):
    """Storage used by ``ResponseCache``."""

    async def get(self, key: str) -> Optional[CachedResponse]:
        ...

    async def put(self, key: str, response: CachedResponse, ttl_seconds: int) -> None:
        ...

    async def close(self) -> None:
        ...


class InMemoryCacheBackend:
    """Bounded TTL cache held in process memory."""

    def __init__(self, max_entries: int = 1000, clock=time.monotonic):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()

    async def get(self, key: str) -> Optional[CachedResponse]:
        item = self._entries.get(key)
        if item is None:
            return None
        expires_at, response = item
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return response

    async def put(self, key: str, response: CachedResponse, ttl_seconds: int) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, response)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend:
    """Redis-backed response storage."""

    KEY_PREFIX = "statenv:response:"

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.redis = client if client is not None else redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    async def get(self, key: str) -> Optional[CachedResponse]:
        raw = await self.redis.get(self.KEY_PREFIX + key)
        if not raw:
            return None
        return CachedResponse.from_json(raw)

    async def put(self, key: str, response: CachedResponse, ttl_seconds: int) -> None:
        await self.redis.setex(self.KEY_PREFIX + key, ttl_seconds, response.to_json())

    async def close(self) -> None:
        await self.redis.aclose()


class ResponseCache:
    """Cache lookups plus tracked background stores."""

    def __init__(self, backend: CacheBackend, *, metrics: Optional["MetricsCollector"] = None):
        self.backend = backend
        self.metrics = metrics
        self.logger = get_logger("gateway.response_cache")
        self._pending: Set[asyncio.Task] = set()

    @staticmethod
    def make_key(method: str, url: str) -> str:
        return hashlib.sha256(f"{method.upper()} {url}".encode("utf-8")).hexdigest()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def lookup(self, key: str) -> Optional[CachedResponse]:
        """Return the stored response, treating backend errors as a miss."""
        try:
            return await self.backend.get(key)
        except Exception as exc:
            self.logger.error("Cache fetch error", error=str(exc))
            if self.metrics:
                self.metrics.record_error("cache_lookup")
            return None

    async def store(self, key: str, response: CachedResponse, ttl_seconds: int) -> bool:
        try:
            await self.backend.put(key, response, ttl_seconds)
            return True
        except Exception as exc:
            self.logger.error("Cache store error", error=str(exc))
            if self.metrics:
                self.metrics.record_error("cache_store")
            return False

    def schedule_store(self, key: str, response: CachedResponse, ttl_seconds: int) -> asyncio.Task:
        """Store in the background; the task is kept until it finishes."""
        task = asyncio.get_running_loop().create_task(self.store(key, response, ttl_seconds))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every pending background store."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.backend.close()
