"""Key-value stores and the persisted refresh cache."""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import TypeAdapter, ValidationError

from otpradar.core.models import OTPEntry
from otpradar.utils.logging import get_logger


OTP_CACHE_KEY = "cached-otps"
LAST_REFRESH_KEY = "last-background-refresh"

_entries_adapter = TypeAdapter(List[OTPEntry])


class KeyValueStore(Protocol):
    """String store the refresh cache persists into."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    """Process-local store, mostly useful for tests and one-shot runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStore:
    """JSON file store with an async-friendly API and optional Fernet encryption.

    The file is re-read on every access so several processes can share it;
    writes replace it atomically.
    """

    def __init__(self, path: Path, *, encryption_key: Optional[str] = None) -> None:
        self._path = path
        self._lock = asyncio.Lock()
        self._fernet = self._init_fernet(encryption_key)
        self.logger = get_logger(self.__class__.__name__)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def _init_fernet(self, key: Optional[str]) -> Optional["Fernet"]:
        key = key or os.getenv("OTPRADAR_CACHE_KEY")
        if not key:
            return None
        from cryptography.fernet import Fernet

        key_bytes = key.encode("utf-8") if isinstance(key, str) else key
        try:
            return Fernet(key_bytes)
        except Exception as exc:
            raise ValueError("Invalid OTPRADAR_CACHE_KEY provided for cache encryption") from exc

    def _load(self) -> Dict[str, str]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return {}
        if self._fernet:
            from cryptography.fernet import InvalidToken

            try:
                raw = self._fernet.decrypt(raw)
            except InvalidToken:
                self.logger.warning("Cache file %s cannot be decrypted; starting empty", self._path)
                return {}
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            self.logger.warning("Cache file %s is not valid JSON; starting empty", self._path)
            return {}
        if not isinstance(data, dict):
            self.logger.warning("Cache file %s has an unexpected layout; starting empty", self._path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _dump(self, data: Dict[str, str]) -> None:
        payload = json.dumps(data, indent=2).encode("utf-8")
        if self._fernet:
            payload = self._fernet.encrypt(payload)
        tmp = self._path.with_name(f"{self._path.name}.{os.getpid()}.tmp")
        tmp.write_bytes(payload)
        tmp.replace(self._path)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            data[key] = value
            await asyncio.to_thread(self._dump, data)


def serialize_entries(entries: List[OTPEntry]) -> str:
    return _entries_adapter.dump_json(entries).decode("utf-8")


def deserialize_entries(payload: str) -> List[OTPEntry]:
    return _entries_adapter.validate_json(payload)


class RefreshCache:
    """Handle over the persisted aggregation result and last-refresh instant.

    Unreadable records degrade to an empty result and "never refreshed"
    instead of raising.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self.logger = get_logger(self.__class__.__name__)

    async def load_entries(self) -> List[OTPEntry]:
        cached = await self.store.get(OTP_CACHE_KEY)
        if not cached:
            return []
        try:
            return deserialize_entries(cached)
        except (ValidationError, ValueError) as exc:
            self.logger.warning("Discarding corrupt OTP cache: %s", exc)
            return []

    async def save_entries(self, entries: List[OTPEntry]) -> None:
        await self.store.set(OTP_CACHE_KEY, serialize_entries(entries))

    async def remove_entry(self, entry_id: str) -> bool:
        entries = await self.load_entries()
        remaining = [entry for entry in entries if entry.id != entry_id]
        if len(remaining) == len(entries):
            return False
        await self.save_entries(remaining)
        return True

    async def last_refresh(self) -> Optional[dt.datetime]:
        raw = await self.store.get(LAST_REFRESH_KEY)
        if not raw:
            return None
        try:
            value = dt.datetime.fromisoformat(raw)
        except ValueError:
            self.logger.warning("Ignoring unreadable last refresh value %r", raw)
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return value

    async def mark_refreshed(self, when: dt.datetime) -> None:
        await self.store.set(LAST_REFRESH_KEY, when.isoformat())
