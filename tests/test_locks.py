from __future__ import annotations

import pytest

from otpradar.app.wiring import build_lock_manager
from otpradar.core.locks import LocalLockManager
from otpradar.core.locks_redis import RedisLockManager
from otpradar.core.settings import RuntimeSettings


class FakeRedis:
    """Just enough of redis.asyncio.Redis for SET NX PX plus the release script."""

    def __init__(self) -> None:
        self.data = {}
        self.ttls = {}
        self.closed = False

    async def set(self, key, value, px=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = px
        return True

    def register_script(self, script):
        async def release(keys, args):
            if self.data.get(keys[0]) == args[0]:
                del self.data[keys[0]]
                return 1
            return 0

        return release

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_local_lock_is_a_try_lock():
    manager = LocalLockManager()

    async with manager.lock("otp-refresh") as first:
        async with manager.lock("otp-refresh") as second:
            assert (first, second) == (True, False)
        assert manager.is_held("otp-refresh")
        async with manager.lock("other") as unrelated:
            assert unrelated is True

    assert not manager.is_held("otp-refresh")


@pytest.mark.asyncio
async def test_local_lock_released_on_error():
    manager = LocalLockManager()
    with pytest.raises(RuntimeError):
        async with manager.lock("otp-refresh"):
            raise RuntimeError("boom")
    assert not manager.is_held("otp-refresh")


@pytest.mark.asyncio
async def test_redis_lock_uses_namespaced_key_and_token():
    client = FakeRedis()
    manager = RedisLockManager(client=client)

    async with manager.lock("otp-refresh", ttl_ms=5000) as first:
        assert first is True
        assert client.ttls == {"otpradar:lock:otp-refresh": 5000}
        async with manager.lock("otp-refresh") as second:
            assert second is False
        # the failed attempt must not release the holder's key
        assert "otpradar:lock:otp-refresh" in client.data

    assert client.data == {}
    await manager.close()
    assert client.closed


@pytest.mark.asyncio
async def test_redis_lock_leaves_foreign_token_alone():
    client = FakeRedis()
    manager = RedisLockManager(client=client)

    async with manager.lock("otp-refresh"):
        # ttl expired and another process took the lock
        client.data["otpradar:lock:otp-refresh"] = "someone-else"

    assert client.data == {"otpradar:lock:otp-refresh": "someone-else"}


def test_memory_backend_is_default():
    assert isinstance(build_lock_manager(RuntimeSettings()), LocalLockManager)
