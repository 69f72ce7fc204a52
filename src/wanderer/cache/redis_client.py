"""Redis connection + JSON cache helpers.

Every operation is wrapped in try/except; a Redis failure never breaks routing.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

log = logging.getLogger(__name__)


def connect(redis_url: str):
    """Return a connected ``redis.Redis`` or ``None`` if disabled/unavailable."""
    if not redis_url:
        return None
    try:
        import redis

        client = redis.Redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=3)
        client.ping()
        log.info("Redis connected: %s", redis_url)
        return client
    except Exception as exc:
        log.warning("Redis unavailable (%s), running without cache", exc)
        return None


class JSONCache:
    """Thin JSON get/set over a redis client; a ``None`` client is a no-op cache."""

    def __init__(self, client=None):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "JSONCache":
        return cls(connect(redis_url))

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except Exception:
            return False

    def get_json(self, key: str) -> Optional[Any]:
        if self.client is None:
            return None
        try:
            raw = self.client.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as exc:
            log.debug("cache get %s failed: %s", key, exc)
            return None

    def set_json(self, key: str, value: Any, ttl: int) -> None:
        if self.client is None:
            return
        try:
            self.client.set(key, json.dumps(value), ex=ttl)
        except Exception as exc:
            log.debug("cache set %s failed: %s", key, exc)
