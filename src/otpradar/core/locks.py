"""Lock interfaces guarding refresh passes against overlap."""

from __future__ import annotations

import abc
from typing import Dict, Protocol


class AsyncLock(Protocol):
    async def __aenter__(self) -> bool: ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...


class LockManager(abc.ABC):
    @abc.abstractmethod
    def lock(self, key: str, ttl_ms: int = 30000) -> AsyncLock:  # pragma: no cover - interface
        """Return an async context manager that attempts to acquire a lock.

        Entering yields True when the lock was acquired and False when
        another holder has it; it never waits.
        """
        raise NotImplementedError


class _LocalLock:
    def __init__(self, held: Dict[str, bool], key: str) -> None:
        self._held = held
        self._key = key
        self._acquired = False

    async def __aenter__(self) -> bool:
        if self._held.get(self._key):
            return False
        self._held[self._key] = True
        self._acquired = True
        return True

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._acquired:
            self._held.pop(self._key, None)
            self._acquired = False


class LocalLockManager(LockManager):
    """In-process try-lock; enough when a single event loop owns the cache."""

    def __init__(self) -> None:
        self._held: Dict[str, bool] = {}

    def lock(self, key: str, ttl_ms: int = 30000) -> AsyncLock:
        # ttl only matters across processes
        return _LocalLock(self._held, key)

    def is_held(self, key: str) -> bool:
        return bool(self._held.get(key))
