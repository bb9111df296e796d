"""Redis try-lock (SET NX PX) for several processes sharing one OTP cache."""

from __future__ import annotations

import uuid
from typing import Optional

from redis.asyncio import Redis

from otpradar.utils.env import get_str_env
from otpradar.utils.logging import get_logger

from .locks import AsyncLock, LockManager


DEFAULT_REDIS_URL = "redis://localhost:6379/0"
LOCK_NAMESPACE = "otpradar:lock"

# Delete the key only while it still carries our token.
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

logger = get_logger("RedisLock")


class _RedisLock:
    def __init__(self, manager: "RedisLockManager", key: str, ttl_ms: int) -> None:
        self._manager = manager
        self._key = f"{manager.namespace}:{key}"
        self._ttl_ms = ttl_ms
        self._token = uuid.uuid4().hex
        self._acquired = False

    async def __aenter__(self) -> bool:
        stored = await self._manager.redis.set(self._key, self._token, px=self._ttl_ms, nx=True)
        self._acquired = bool(stored)
        if not self._acquired:
            logger.debug("Lock %s is held elsewhere", self._key)
        return self._acquired

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self._acquired:
            return
        try:
            released = await self._manager.release(self._key, self._token)
            if not released:
                logger.warning("Lock %s expired before the refresh finished", self._key)
        finally:
            self._acquired = False


class RedisLockManager(LockManager):
    def __init__(
        self,
        url: Optional[str] = None,
        *,
        client: Optional[Redis] = None,
        namespace: str = LOCK_NAMESPACE,
    ) -> None:
        self.redis = client or Redis.from_url(url or get_str_env("REDIS_URL", default=DEFAULT_REDIS_URL))
        self.namespace = namespace
        self._release = self.redis.register_script(_RELEASE_SCRIPT)

    def lock(self, key: str, ttl_ms: int = 30000) -> AsyncLock:
        return _RedisLock(self, key, ttl_ms)

    async def release(self, key: str, token: str) -> bool:
        return bool(await self._release(keys=[key], args=[token]))

    async def close(self) -> None:
        await self.redis.aclose()
