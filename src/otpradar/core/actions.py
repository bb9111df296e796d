"""Mark-as-read and delete, routed to the provider an entry came from."""

from __future__ import annotations

from typing import Dict, Optional, Sequence

from otpradar.core.models import OTPEntry, OTPSource
from otpradar.data.cache_store import RefreshCache
from otpradar.services.audit_logger import AuditLogger
from otpradar.sources.base import CapabilitySource, MessageActions
from otpradar.utils.logging import get_logger, mask_code


class MessageActionService:
    """Dispatches message actions; unsupported providers are a no-op."""

    def __init__(
        self,
        sources: Sequence[CapabilitySource],
        cache: RefreshCache,
        *,
        audit_logger: Optional[AuditLogger] = None,
    ) -> None:
        self._sources: Dict[OTPSource, CapabilitySource] = {source.name: source for source in sources}
        self._cache = cache
        self._audit = audit_logger
        self.logger = get_logger(self.__class__.__name__)

    def supports(self, entry: OTPEntry) -> bool:
        return isinstance(self._sources.get(entry.source), MessageActions)

    def _target(self, entry: OTPEntry) -> Optional[MessageActions]:
        if not entry.message_id:
            return None
        source = self._sources.get(entry.source)
        if not isinstance(source, MessageActions):
            return None
        return source

    async def mark_as_read(self, entry: OTPEntry) -> bool:
        """Return True when the provider was asked to mark the message read."""
        target = self._target(entry)
        if target is None:
            return False
        await target.mark_as_read(entry)
        self.logger.info("Marked %s (%s) as read", entry.id, mask_code(entry.code))
        await self._record("message_marked_read", entry)
        return True

    async def delete_message(self, entry: OTPEntry) -> bool:
        """Delete the message upstream and drop the entry from the cache."""
        target = self._target(entry)
        if target is None:
            return False
        await target.delete_message(entry)
        await self._cache.remove_entry(entry.id)
        self.logger.info("Deleted %s (%s)", entry.id, mask_code(entry.code))
        await self._record("message_deleted", entry)
        return True

    async def find(self, entry_id: str) -> Optional[OTPEntry]:
        for entry in await self._cache.load_entries():
            if entry.id == entry_id:
                return entry
        return None

    async def _record(self, event: str, entry: OTPEntry) -> None:
        if not self._audit:
            return
        try:
            await self._audit.log(event=event, payload={"id": entry.id, "source": entry.source.value})
        except Exception:
            self.logger.debug("Failed to persist audit log", exc_info=True)
